"""
Time windows and the booking timespan validator.

A Window is a half-open interval [starts_at, ends_at). A missing start
means "from the beginning of time", a missing end means "forever".

The validator is applied where a window is bound to a purchase attempt
(Cart.add). Cart-level storage keeps whatever the caller sends.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from bookman.exceptions import InvalidTimespan


@dataclass(frozen=True)
class Window:
    """Intervalo semiaberto [starts_at, ends_at)."""

    starts_at: datetime | None = None
    ends_at: datetime | None = None

    @classmethod
    def of(cls, starts_at=None, ends_at=None) -> Window | None:
        """Build a window from loose values, None when both ends are missing."""
        starts_at = coerce_datetime(starts_at)
        ends_at = coerce_datetime(ends_at)
        if starts_at is None and ends_at is None:
            return None
        return cls(starts_at, ends_at)

    @property
    def is_complete(self) -> bool:
        return self.starts_at is not None and self.ends_at is not None

    @property
    def is_ordered(self) -> bool:
        return not self.is_complete or self.starts_at < self.ends_at

    @property
    def duration(self) -> timedelta | None:
        if not self.is_complete:
            return None
        return self.ends_at - self.starts_at

    def contains(self, instant: datetime) -> bool:
        if self.starts_at is not None and instant < self.starts_at:
            return False
        if self.ends_at is not None and instant >= self.ends_at:
            return False
        return True

    def overlaps(self, other: Window | None) -> bool:
        """Standard half-open overlap; None on either side overlaps everything."""
        if other is None:
            return True
        if self.starts_at is not None and other.ends_at is not None:
            if self.starts_at >= other.ends_at:
                return False
        if self.ends_at is not None and other.starts_at is not None:
            if self.ends_at <= other.starts_at:
                return False
        return True

    def resolve(self, now: datetime) -> Window:
        """Anchor an open start at `now` (claims with no start are active immediately)."""
        if self.starts_at is not None:
            return self
        return Window(now, self.ends_at)

    def __str__(self) -> str:
        start = self.starts_at.isoformat() if self.starts_at else "-∞"
        end = self.ends_at.isoformat() if self.ends_at else "∞"
        return f"[{start}, {end})"


def windows_overlap(a: Window | None, b: Window | None) -> bool:
    """Overlap where a missing window means unbounded."""
    if a is None or b is None:
        return True
    return a.overlaps(b)


def coerce_datetime(value) -> datetime | None:
    """
    Accept datetime, date or ISO string; return an aware datetime.

    Dates become midnight of that day. Naive values are interpreted in
    the current timezone.
    """
    if value is None or value == "":
        return None

    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            parsed_date = parse_date(value)
            if parsed_date is None:
                raise InvalidTimespan(f"invalid date: {value!r}", value=value)
            parsed = datetime.combine(parsed_date, time.min)
        value = parsed
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)

    if not isinstance(value, datetime):
        raise InvalidTimespan(f"invalid date: {value!r}", value=str(value))

    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def validate_timespan(starts_at, ends_at, now: datetime | None = None) -> Window:
    """
    Validate a window being bound to a specific purchase.

    Raises:
        InvalidTimespan: exactly one date given, from >= until,
            or from strictly before `now`.
    """
    starts_at = coerce_datetime(starts_at)
    ends_at = coerce_datetime(ends_at)
    now = now or timezone.now()

    if starts_at is None or ends_at is None:
        raise InvalidTimespan("both dates must be provided together")

    if starts_at >= ends_at:
        raise InvalidTimespan(
            "from must be before until", starts_at=starts_at, ends_at=ends_at
        )

    if starts_at < now:
        raise InvalidTimespan("from is in the past", starts_at=starts_at, now=now)

    return Window(starts_at, ends_at)


def billable_periods(window: Window | None, period: timedelta | None = None) -> int:
    """
    Number of billing periods in a window.

    Whole periods only, minimum one: 36h at a daily rate bills 1 day,
    10 minutes bills 1 day. Open or missing windows bill one period.
    """
    if window is None or not window.is_complete:
        return 1

    if period is None:
        from bookman.conf import get_billing_period

        period = get_billing_period()

    return max(1, window.duration // period)
