"""
Unit tests for date validity helpers.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from shared.errors import ValidationError
from service_proxy.app.domain.dates import (
    DateValidityWindow,
    parse_date_param,
    parse_iso_datetime,
    seconds_until,
    start_of_day,
)


class TestParseDateParam:
    """Test cases for parse_date_param."""

    def test_valid_date(self):
        assert parse_date_param("2024-06-10") == date(2024, 6, 10)

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_date(self, value):
        """Test a missing date is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            parse_date_param(value)

        assert exc_info.value.status_code == 422

    @pytest.mark.parametrize("value", ["2024-6-1", "20240601", "2024-06-01T00:00", "2024-02-30"])
    def test_malformed_date(self, value):
        """Test malformed and impossible dates are rejected."""
        with pytest.raises(ValidationError):
            parse_date_param(value)


class TestDateValidityWindow:
    """Test cases for DateValidityWindow."""

    @pytest.fixture
    def window(self):
        return DateValidityWindow.for_date(date(2024, 6, 10))

    def test_bounds(self, window):
        """Test the date opens at UTC+14 midnight and settles at UTC-12 midnight."""
        assert window.opens_at == datetime(2024, 6, 9, 10, 0, tzinfo=timezone.utc)
        assert window.settles_at == datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)

    def test_is_future(self, window):
        """Test the date is future only before it opens in UTC+14."""
        opens = datetime(2024, 6, 9, 10, 0, tzinfo=timezone.utc)

        assert window.is_future(opens - timedelta(seconds=1))
        assert not window.is_future(opens)

    def test_tomorrow_in_first_zone_is_future(self):
        """Test the next day in UTC+14 is rejected while today there is accepted."""
        now = datetime(2024, 6, 9, 12, 0, tzinfo=timezone.utc)  # 2024-06-10 02:00 in UTC+14

        assert DateValidityWindow.for_date(date(2024, 6, 11)).is_future(now)
        assert not DateValidityWindow.for_date(date(2024, 6, 10)).is_future(now)

    def test_seconds_until_settled(self, window):
        now = datetime(2024, 6, 9, 10, 0, tzinfo=timezone.utc)

        assert window.seconds_until_settled(now) == 26 * 3600

    def test_settled_dates_are_negative(self, window):
        now = datetime(2024, 6, 20, tzinfo=timezone.utc)

        assert window.seconds_until_settled(now) < 0


class TestTimeHelpers:
    """Test cases for timestamp helpers."""

    def test_seconds_until_floors(self):
        now = datetime(2024, 6, 9, 9, 59, 59, 500000, tzinfo=timezone.utc)

        assert seconds_until(start_of_day(date(2024, 6, 10), "Pacific/Kiritimati"), now) == 0

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-06-01T12:00Z", datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)),
            ("2024-06-01T12:00:00", datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)),
            ("2024-06-01T14:00:00+02:00", datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_parse_iso_datetime(self, value, expected):
        assert parse_iso_datetime(value) == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", 1717243200])
    def test_parse_iso_datetime_invalid(self, value):
        assert parse_iso_datetime(value) is None
