"""Tests for exiftool tag parsing and formatting."""

from datetime import datetime, timedelta, timezone

import pytest

from gphotos_migrate.flat_migrator.media_types import MetaType
from gphotos_migrate.flat_migrator.metadata.tags import (
    format_exiftool_datetime,
    parse_existing_tags,
    parse_exiftool_datetime,
    parse_gps_coordinate,
)
from gphotos_migrate.flat_migrator.models import ExistingTags, GeoData


class TestExiftoolDatetime:
    """Test datetime formatting and parsing."""

    def test_format_converts_to_utc(self):
        """Test that aware datetimes are written in UTC."""
        dt = datetime(2020, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_exiftool_datetime(dt) == "2020:01:01 12:00:00"
        assert format_exiftool_datetime(dt, with_offset=True) == "2020:01:01 12:00:00+00:00"

    def test_parse_naive_as_utc(self):
        """Test that values without a zone are taken as UTC."""
        assert parse_exiftool_datetime("2020:01:01 12:00:00") == \
            datetime(2020, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_with_zone(self):
        """Test inline zones and separate offset tags."""
        expected = datetime(2020, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_exiftool_datetime("2020:01:01 12:00:00+02:00") == expected
        assert parse_exiftool_datetime("2020:01:01 12:00:00", "+02:00") == expected
        assert parse_exiftool_datetime("2020:01:01 10:00:00.123Z") == expected

    @pytest.mark.parametrize("value", ["0000:00:00 00:00:00", "", "garbage", None, 20200101])
    def test_parse_unusable(self, value):
        """Test that empty and zero dates give None."""
        assert parse_exiftool_datetime(value) is None


class TestParseGpsCoordinate:
    """Test parse_gps_coordinate function."""

    def test_numbers(self):
        """Test numeric values with references."""
        assert parse_gps_coordinate(48.5) == 48.5
        assert parse_gps_coordinate(48.5, "S") == -48.5
        assert parse_gps_coordinate(-2.25, "West") == -2.25

    def test_dms_string(self):
        """Test degree/minute/second strings."""
        value = parse_gps_coordinate("37 deg 46' 30.00\" N")
        assert value == pytest.approx(37.775)
        value = parse_gps_coordinate("122 deg 25' 12.00\" W")
        assert value == pytest.approx(-122.42)

    def test_decimal_string(self):
        """Test decimal strings with a trailing direction."""
        assert parse_gps_coordinate("12.5 S") == -12.5

    def test_unparseable(self):
        """Test that garbage gives None."""
        assert parse_gps_coordinate("somewhere") is None
        assert parse_gps_coordinate(None) is None


class TestParseExistingTags:
    """Test parse_existing_tags function."""

    def test_exif_record(self):
        """Test a JPEG record read with -n."""
        data = {
            "SourceFile": "/x/IMG.jpg",
            "DateTimeOriginal": "2020:01:01 12:00:00",
            "OffsetTimeOriginal": "+01:00",
            "ImageDescription": "Beach",
            "GPSLatitude": 48.8584,
            "GPSLatitudeRef": "N",
            "GPSLongitude": 2.2945,
            "GPSLongitudeRef": "E",
            "GPSAltitude": 12,
            "GPSAltitudeRef": 1,
        }
        tags = parse_existing_tags(data, MetaType.EXIF)
        assert tags.taken_time == datetime(2020, 1, 1, 11, 0, tzinfo=timezone.utc)
        assert tags.description == "Beach"
        assert tags.title is None
        assert tags.geo == GeoData(48.8584, 2.2945, -12.0)

    def test_exif_create_date_fallback(self):
        """Test that CreateDate is used without DateTimeOriginal."""
        tags = parse_existing_tags({"CreateDate": "2019:05:05 05:05:05"}, MetaType.EXIF)
        assert tags.taken_time == datetime(2019, 5, 5, 5, 5, 5, tzinfo=timezone.utc)

    def test_exif_without_gps(self):
        """Test that a missing longitude means no location."""
        tags = parse_existing_tags({"GPSLatitude": 1.0}, MetaType.EXIF)
        assert tags.geo is None

    def test_quicktime_record(self):
        """Test a video record."""
        data = {
            "CreateDate": "2021:06:01 08:30:00",
            "Title": "Clip",
            "GPSCoordinates": "40.7128 -74.006 10",
        }
        tags = parse_existing_tags(data, MetaType.QUICKTIME)
        assert tags.taken_time == datetime(2021, 6, 1, 8, 30, tzinfo=timezone.utc)
        assert tags.title == "Clip"
        assert tags.geo == GeoData(40.7128, -74.006, 10.0)

    def test_quicktime_zero_date(self):
        """Test that an unset QuickTime date is ignored."""
        tags = parse_existing_tags({"CreateDate": "0000:00:00 00:00:00"}, MetaType.QUICKTIME)
        assert tags == ExistingTags()

    def test_no_embedded_family(self):
        """Test formats that only carry a file date."""
        tags = parse_existing_tags({"FileModifyDate": "2020:01:01 12:00:00+00:00"}, MetaType.NONE)
        assert tags == ExistingTags(taken_time=datetime(2020, 1, 1, 12, 0, tzinfo=timezone.utc))
