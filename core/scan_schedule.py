"""
scan_schedule.py
-----------------
When a scheduled duplicate scan should run.

A schedule fires once per period at a UTC time of day:
    - daily:   every day
    - weekly:  on one weekday (0 = Sunday ... 6 = Saturday)
    - monthly: on one day of the month

Design decisions:
    - Pure functions of the clock passed in. The caller (a cron tick, a
      scheduler loop, a test) supplies `now`, so nothing here reads the
      system time.
    - is_due() matches on the hour only. A tick that arrives a few minutes
      late still triggers the scan; a tick every hour is enough.
    - next_run() returns the first slot strictly after `now`, so a run that
      finishes inside its own slot is scheduled for the following period.
    - A monthly schedule on day 29-31 skips months that are too short rather
      than sliding to another day.
    - Naive datetimes are taken to be UTC.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from config.config_loader import get_scan_schedule_config

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)


@dataclass(frozen=True)
class ScanSchedule:
    frequency: str                   # "daily" | "weekly" | "monthly"
    time_of_day: str                 # "HH:MM", UTC
    day_of_week: int = 1             # weekly only; 0 = Sunday
    day_of_month: int = 1            # monthly only

    def __post_init__(self):
        if self.frequency not in FREQUENCIES:
            raise ValueError(f"Unknown schedule frequency '{self.frequency}'. Expected one of {FREQUENCIES}")
        hour, minute = _parse_time_of_day(self.time_of_day)
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"time_of_day out of range: {self.time_of_day!r}")
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be 0-6, got {self.day_of_week}")
        if not 1 <= self.day_of_month <= 31:
            raise ValueError(f"day_of_month must be 1-31, got {self.day_of_month}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScanSchedule":
        return cls(
            frequency=str(data.get("frequency", DAILY)),
            time_of_day=str(data.get("time_of_day", "00:00")),
            day_of_week=int(data.get("day_of_week", 1)),
            day_of_month=int(data.get("day_of_month", 1)),
        )

    @classmethod
    def from_config(cls) -> "ScanSchedule":
        """The schedule in config.yaml's scan_schedule block."""
        return cls.from_dict(get_scan_schedule_config())

    @property
    def hour(self) -> int:
        return _parse_time_of_day(self.time_of_day)[0]

    @property
    def minute(self) -> int:
        return _parse_time_of_day(self.time_of_day)[1]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def is_due(self, now: datetime) -> bool:
        """True if a scan should run during the hour containing `now`."""
        now = _as_utc(now)
        if now.hour != self.hour:
            return False

        if self.frequency == DAILY:
            return True
        if self.frequency == WEEKLY:
            return _sunday_based_weekday(now) == self.day_of_week
        return now.day == self.day_of_month

    def next_run(self, now: datetime) -> datetime:
        """First scheduled slot strictly after `now`, as an aware UTC datetime."""
        now = _as_utc(now)
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)

        if self.frequency == DAILY:
            if candidate <= now:
                candidate += timedelta(days=1)
            return candidate

        if self.frequency == WEEKLY:
            candidate += timedelta(days=(self.day_of_week - _sunday_based_weekday(candidate)) % 7)
            if candidate <= now:
                candidate += timedelta(days=7)
            return candidate

        year, month = now.year, now.month
        while True:
            if self.day_of_month <= calendar.monthrange(year, month)[1]:
                candidate = candidate.replace(year=year, month=month, day=self.day_of_month)
                if candidate > now:
                    return candidate
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)


# =============================================================================
# HELPERS
# =============================================================================

def _parse_time_of_day(value: str) -> tuple[int, int]:
    try:
        hour_text, minute_text = value.split(":")[:2]
        return int(hour_text), int(minute_text)
    except (AttributeError, ValueError):
        raise ValueError(f"time_of_day must look like 'HH:MM', got {value!r}") from None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sunday_based_weekday(value: datetime) -> int:
    return value.isoweekday() % 7
