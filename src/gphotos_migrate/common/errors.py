"""Base error definitions."""

from typing import Any, Dict


class GPMigrateError(Exception):
    """Base exception for all gphotos-flat-migrate errors.

    Keyword arguments are kept in ``context`` so callers can log the
    offending path or tool output without parsing the message.
    """

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context
