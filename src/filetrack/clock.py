"""Clock: the single source of "now" for timestamps and temp-file names."""

from __future__ import annotations

from datetime import datetime


def format_iso8601(value: datetime) -> str:
    """Second precision, always with an offset (naive values are taken as local)."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.replace(microsecond=0).isoformat()


class Clock:
    """Wall clock in the local timezone. Tests substitute a fixed clock."""

    def now(self) -> datetime:
        return datetime.now().astimezone()

    def now_iso(self) -> str:
        return format_iso8601(self.now())

    def unix_seconds(self) -> int:
        return int(self.now().timestamp())
