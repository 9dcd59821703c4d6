"""
Calendar date helpers for date-keyed upstream resources.

A calendar date begins first in UTC+14 and last in UTC-12. Until it has
begun in UTC+14 the date is in the future everywhere; until it has begun in
UTC-12 upstream content for it may still appear.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from shared.errors import ValidationError


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_date_param(value: Optional[str], name: str = "date") -> date:
    """Validate a ``YYYY-MM-DD`` request parameter."""
    if not value:
        raise ValidationError(f"Missing required parameter '{name}'", {"parameter": name})

    if not DATE_PATTERN.match(value):
        raise ValidationError(
            f"Invalid {name} format. Use YYYY-MM-DD",
            {"parameter": name, "value": value},
        )

    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {name} '{value}'", {"parameter": name, "value": value})


def start_of_day(day: date, tz_name: str) -> datetime:
    """Local midnight of ``day`` in the given IANA zone."""
    return datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))


def seconds_until(moment: datetime, now: datetime) -> int:
    """Whole seconds from ``now`` until ``moment`` (negative when past)."""
    return math.floor((moment - now).total_seconds())


def parse_iso_datetime(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are UTC. Returns None when invalid."""
    if not isinstance(value, str) or not value.strip():
        return None

    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class DateValidityWindow:
    """
    The span between a date opening somewhere on Earth and opening everywhere.

    ``opens_at`` is local midnight in the first zone to reach the date,
    ``settles_at`` local midnight in the last one.
    """

    day: date
    opens_at: datetime
    settles_at: datetime

    @classmethod
    def for_date(
        cls,
        day: date,
        first_tz: str = "Pacific/Kiritimati",
        last_tz: str = "Etc/GMT+12",
    ) -> "DateValidityWindow":
        return cls(day=day, opens_at=start_of_day(day, first_tz), settles_at=start_of_day(day, last_tz))

    def is_future(self, now: datetime) -> bool:
        return now < self.opens_at

    def seconds_until_settled(self, now: datetime) -> int:
        return seconds_until(self.settles_at, now)
