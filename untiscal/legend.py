"""
Legend resolution and period normalization (raw JSON -> Period).

The timetable source delivers two kinds of records per window:
- period records, which only reference courses/rooms by (type, id)
- legend records ("elements"), which carry the names for those ids

A Legend collects the legend records of every fetched window in a map keyed
by (type, id). normalize_periods() then turns the raw period records into
Period objects whose course/room references are fully resolved.

Resolution rule: every referenced course/room must match exactly one legend
entry. Zero or several matches is fatal (LegendError).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from untiscal.errors import LegendError
from untiscal.model import (
    ELEMENT_COURSE,
    ELEMENT_ROOM,
    NEUTRAL_PRIORITY,
    STANDARD,
    Course,
    Period,
    Reschedule,
    Room,
    sort_periods,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Legend
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LegendEntry:
    element_type: int
    element_id: int
    name: str
    long_name: str = ""
    display_name: str = ""
    alternate_name: str = ""
    back_color: Optional[str] = None
    can_view_timetable: bool = False
    room_capacity: int = 0

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "LegendEntry":
        return cls(
            element_type=int(record["type"]),
            element_id=int(record["id"]),
            name=str(record.get("name") or "").strip(),
            long_name=str(record.get("longName") or "").strip(),
            display_name=str(record.get("displayname") or "").strip(),
            alternate_name=str(record.get("alternatename") or "").strip(),
            back_color=record.get("backColor"),
            can_view_timetable=bool(record.get("canViewTimetable", False)),
            room_capacity=int(record.get("roomCapacity") or 0),
        )


class LookupStatus(enum.Enum):
    FOUND = "found"
    MISSING = "missing"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Lookup:
    status: LookupStatus
    key: Tuple[int, int]
    entries: Tuple[LegendEntry, ...] = ()

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def entry(self) -> LegendEntry:
        if not self.found:
            raise LegendError(f"Legend lookup for (type, id)={self.key} is {self.status.value}")
        return self.entries[0]


class Legend:
    """
    Deduplicated legend of one run, keyed by (type, id).

    Windows repeat the same legend records; identical repeats are ignored.
    A differing record under an existing key is kept, which makes that key
    ambiguous.
    """

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()) -> None:
        self._entries: Dict[Tuple[int, int], List[LegendEntry]] = {}
        self.add_all(records)

    def add(self, record: Mapping[str, Any]) -> None:
        entry = LegendEntry.from_record(record)
        key = (entry.element_type, entry.element_id)
        bucket = self._entries.setdefault(key, [])
        if entry not in bucket:
            bucket.append(entry)

    def add_all(self, records: Iterable[Mapping[str, Any]]) -> None:
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, element_type: int, element_id: int) -> Lookup:
        key = (int(element_type), int(element_id))
        entries = self._entries.get(key, [])
        if not entries:
            return Lookup(LookupStatus.MISSING, key)
        if len(entries) > 1:
            return Lookup(LookupStatus.AMBIGUOUS, key, tuple(entries))
        return Lookup(LookupStatus.FOUND, key, (entries[0],))

    def require(self, element_type: int, element_id: int) -> LegendEntry:
        """
        Resolve a reference or raise LegendError.
        """
        return self.lookup(element_type, element_id).entry


# ---------------------------------------------------------------------------
# Raw value helpers
# ---------------------------------------------------------------------------


def parse_date(value: Any) -> date:
    """
    Parse the source date format YYYYMMDD (int or str).
    """
    return datetime.strptime(str(value).strip(), "%Y%m%d").date()


def parse_time(value: Any) -> time:
    """
    Parse the source time format HHmm. The source drops leading zeros
    (800 instead of 0800), so pad first.
    """
    return datetime.strptime(f"{int(value):04d}", "%H%M").time()


def dst_correction(zone: str, now: Optional[datetime] = None) -> timedelta:
    """
    Uniform shift applied to every fetched period when DST correction is on.

    +1h while the zone currently observes DST, -1h otherwise. The decision
    uses the current wall clock, not the date of each period.
    """
    tz = ZoneInfo(zone)
    current = now.astimezone(tz) if now is not None else datetime.now(tz)
    if current.dst():
        return timedelta(hours=1)
    return timedelta(hours=-1)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class _ElementCache:
    """
    Builds one Course/Room object per legend id so that periods share
    references.
    """

    def __init__(self, legend: Legend, overrides: Mapping[str, str]) -> None:
        self.legend = legend
        self.overrides = overrides
        self._courses: Dict[int, Course] = {}
        self._rooms: Dict[int, Room] = {}

    def _names(self, entry: LegendEntry) -> Tuple[str, str, str]:
        long_name = entry.long_name or entry.display_name or entry.name
        display = self.overrides.get(entry.name, long_name)
        return entry.name, long_name, display

    def course(self, element_id: int) -> Course:
        if element_id not in self._courses:
            entry = self.legend.require(ELEMENT_COURSE, element_id)
            self._courses[element_id] = Course(element_id, *self._names(entry))
        return self._courses[element_id]

    def room(self, element_id: int) -> Room:
        if element_id not in self._rooms:
            entry = self.legend.require(ELEMENT_ROOM, element_id)
            self._rooms[element_id] = Room(element_id, *self._names(entry))
        return self._rooms[element_id]


def _reschedule(info: Optional[Mapping[str, Any]], shift: timedelta) -> Optional[Reschedule]:
    if not info:
        return None
    day = parse_date(info["date"])
    return Reschedule(
        other_start=datetime.combine(day, parse_time(info["startTime"])) + shift,
        other_end=datetime.combine(day, parse_time(info["endTime"])) + shift,
        is_source=bool(info.get("isSource", False)),
    )


def normalize_period(
    record: Mapping[str, Any],
    cache: _ElementCache,
    shift: timedelta = timedelta(0),
) -> Period:
    """
    Convert one raw period record into a Period. `shift` moves the
    period and the other side of a reschedule alike.
    """
    day = parse_date(record["date"])
    start = datetime.combine(day, parse_time(record["startTime"])) + shift
    end = datetime.combine(day, parse_time(record["endTime"])) + shift

    course = None
    room = None
    for element in record.get("elements", []) or []:
        element_type = int(element.get("type", 0))
        if element_type == ELEMENT_COURSE and course is None:
            course = cache.course(int(element["id"]))
        elif element_type == ELEMENT_ROOM and room is None:
            room = cache.room(int(element["id"]))

    flags = record.get("is", {}) or {}
    priority = record.get("priority")

    return Period(
        period_id=int(record["id"]),
        start=start,
        end=end,
        course=course,
        room=room,
        lesson_code=str(record.get("lessonCode") or STANDARD),
        cell_state=str(record.get("cellState") or STANDARD),
        priority=int(priority) if priority is not None else NEUTRAL_PRIORITY,
        note=str(record.get("periodText") or "").strip(),
        reschedule=_reschedule(record.get("rescheduleInfo"), shift),
        is_cancelled=bool(flags.get("cancelled", False)),
        is_standard=bool(flags.get("standard", False)),
        is_event=bool(flags.get("event", False)),
    )


def normalize_periods(
    records: Iterable[Mapping[str, Any]],
    legend: Legend,
    overrides: Optional[Mapping[str, str]] = None,
    shift: timedelta = timedelta(0),
) -> List[Period]:
    """
    Normalize raw period records and return them sorted by (start, end).

    Records repeated across overlapping windows (same id) are kept once.
    Raises LegendError if any course/room reference cannot be resolved.
    """
    cache = _ElementCache(legend, overrides or {})
    by_id: Dict[int, Period] = {}
    for record in records:
        period = normalize_period(record, cache, shift)
        if period.period_id in by_id:
            log.debug("Duplicate period id %s ignored", period.period_id)
            continue
        by_id[period.period_id] = period

    log.info("Normalized %d periods (%d legend entries)", len(by_id), len(legend))
    return sort_periods(by_id.values())
