from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from .domain import TimeSlot


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    duration: int

    def buffered_end(self, buffer_minutes: int) -> datetime:
        return self.start + timedelta(minutes=self.duration + buffer_minutes)


def overlaps(start: datetime, end: datetime, busy: BusyInterval, buffer_minutes: int) -> bool:
    # [start, end) against [busy.start, busy.start + duration + buffer)
    return start < busy.buffered_end(buffer_minutes) and end > busy.start


class SlotSequence:
    """Free slots of one business day.

    Iterating yields ``TimeSlot`` values lazily; every ``iter()`` starts over
    from opening time, so the same sequence can be walked more than once.
    """

    def __init__(
        self,
        day: date,
        busy: Iterable[BusyInterval],
        *,
        duration: int,
        open_hour: int,
        close_hour: int,
        step_minutes: int = 30,
        buffer_minutes: int = 15,
    ) -> None:
        if duration <= 0:
            raise ValueError("duration must be positive")
        if step_minutes <= 0:
            raise ValueError("step_minutes must be positive")
        self.day = day
        self.busy = tuple(busy)
        self.duration = duration
        self.open_at = datetime.combine(day, time(open_hour))
        self.close_at = datetime.combine(day, time()) + timedelta(hours=close_hour)
        self.step = timedelta(minutes=step_minutes)
        self.buffer_minutes = buffer_minutes

    def __iter__(self) -> Iterator[TimeSlot]:
        length = timedelta(minutes=self.duration)
        current = self.open_at
        while current + length <= self.close_at:
            end = current + length
            if not any(overlaps(current, end, b, self.buffer_minutes) for b in self.busy):
                yield TimeSlot(start=current, end=end)
            current += self.step

    def __repr__(self) -> str:
        return f"SlotSequence(day={self.day.isoformat()}, duration={self.duration}, busy={len(self.busy)})"
