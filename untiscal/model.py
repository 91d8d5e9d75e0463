"""
Central data model definitions used across the project.

This module defines the canonical structure of Period, Course/Room and
CalendarEvent objects so that:
- every pipeline stage shares the same field names
- fresh periods (from the timetable source) and periods decoded from a
  previously published calendar look exactly the same downstream
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union


# Lesson codes. The source sends the first four, the rest are ours.
STANDARD = "STANDARD"
ADDITIONAL = "ADDITIONAL"
CANCEL = "CANCEL"
SUBSTITUTION = "SUBSTITUTION"
BREAK = "BREAK"
SUMMARY = "SUMMARY"
PRIO = "PRIO"

SYNTHETIC_CODES = frozenset({BREAK, SUMMARY})

# Internal priority scale: 1 (least urgent) .. 9 (most urgent).
MIN_PRIORITY = 1
MAX_PRIORITY = 9
NEUTRAL_PRIORITY = 5
BREAK_PRIORITY = MIN_PRIORITY
SUMMARY_PRIORITY = MIN_PRIORITY

# Legend element types
ELEMENT_COURSE = 3
ELEMENT_ROOM = 4


@dataclass(frozen=True)
class Element:
    """
    One resolved legend element (course or room).

    display_name is the long name unless the user override mapping
    renames the short name.
    """

    element_id: Optional[int]
    name: str
    long_name: str
    display_name: str


@dataclass(frozen=True)
class Course(Element):
    pass


@dataclass(frozen=True)
class Room(Element):
    pass


@dataclass(frozen=True)
class Reschedule:
    """
    The other side of a moved lesson.

    is_source=True means the period we hold is the original slot and
    other_start/other_end is where it moved to.
    """

    other_start: datetime
    other_end: datetime
    is_source: bool


@dataclass
class Period:
    """
    Represents one scheduled slot (lesson, break or summary banner).
    """

    period_id: int
    start: datetime
    end: datetime
    course: Optional[Course] = None
    room: Optional[Room] = None
    lesson_code: str = STANDARD
    cell_state: str = STANDARD
    priority: int = NEUTRAL_PRIORITY
    note: str = ""
    reschedule: Optional[Reschedule] = None
    is_cancelled: bool = False
    is_standard: bool = True
    is_event: bool = False
    pre_existing: bool = False
    # Fixed DESCRIPTION text. Set for synthetic and decoded periods,
    # None means "build it from the fields above".
    description: Optional[str] = None
    # None means "derive from status"
    transparent: Optional[bool] = None
    tags: dict = field(default_factory=dict)

    @property
    def synthetic(self) -> bool:
        return self.lesson_code in SYNTHETIC_CODES

    @property
    def course_id(self) -> Optional[int]:
        return self.course.element_id if self.course else None

    @property
    def room_id(self) -> Optional[int]:
        return self.room.element_id if self.room else None

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


@dataclass
class CalendarEvent:
    """
    Text-format projection of a Period (one VEVENT block).

    start/end are datetimes for timed events and plain dates for
    all-day events. `extra` holds our X- properties (name -> text) in
    output order.
    """

    uid: str
    start: Union[datetime, date]
    end: Union[datetime, date]
    location: str
    summary: str
    description: str
    status: str
    category: str
    priority: int
    transparent: bool
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def all_day(self) -> bool:
        return not isinstance(self.start, datetime)


def sort_key(period: Period) -> tuple[datetime, datetime]:
    return (period.start, period.end)


def sort_periods(periods: Iterable[Period]) -> List[Period]:
    """
    Return periods ordered by (start, end). Stable for equal keys.
    """
    return sorted(periods, key=sort_key)


class IdSequence:
    """
    Run-scoped id generator for synthetic periods.

    Hands out increasing ids starting at `start`, skipping every id that
    is already reserved (fresh periods, decoded periods, earlier output).
    """

    def __init__(self, reserved: Iterable[int] = (), start: int = 1_000_000_000) -> None:
        self._reserved = set(reserved)
        self._next = start

    def reserve(self, ids: Iterable[int]) -> None:
        self._reserved.update(ids)

    def __contains__(self, period_id: int) -> bool:
        return period_id in self._reserved

    def next_id(self) -> int:
        while self._next in self._reserved:
            self._next += 1
        new_id = self._next
        self._reserved.add(new_id)
        self._next += 1
        return new_id
