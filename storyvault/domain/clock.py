"""Time source for lifecycle decisions."""

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock returning naive UTC datetimes.

    Timestamp columns are timezone-naive, so every datetime that reaches the
    database or gets compared with one is naive UTC.
    """

    def now(self) -> datetime:
        return datetime.now(UTC).replace(tzinfo=None)
