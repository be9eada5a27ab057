"""Flat migration of Google Photos Takeout exports."""

__version__ = "0.1.0"
