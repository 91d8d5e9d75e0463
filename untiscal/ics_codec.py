"""
iCalendar (.ics) codec.

Both directions live here:
- encode: Period -> CalendarEvent -> VEVENT text (and the VCALENDAR envelope)
- decode: VEVENT text -> CalendarEvent -> Period (pre_existing=True)

Decoding only has to understand what encoding produces: we read back our
own previously published calendar so that repeated runs append to it. For
any non-SUMMARY block we wrote, encode(decode(block)) reproduces the block
byte for byte.

Lesson fields the visible properties cannot hold (element ids, cell
state, note, flags, reschedule) travel in X-UNTISCAL-* properties.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from untiscal.errors import MalformedCalendarError, MissingFieldError
from untiscal.model import (
    CANCEL,
    MAX_PRIORITY,
    MIN_PRIORITY,
    NEUTRAL_PRIORITY,
    STANDARD,
    SUBSTITUTION,
    SUMMARY,
    SYNTHETIC_CODES,
    CalendarEvent,
    Course,
    Period,
    Reschedule,
    Room,
)

log = logging.getLogger(__name__)

CRLF = "\r\n"
UID_DOMAIN = "untiscal"
PRODID = "-//untiscal//EN"

CONFIRMED = "CONFIRMED"
TENTATIVE = "TENTATIVE"
CANCELLED = "CANCELLED"

OPAQUE = "OPAQUE"
TRANSPARENT = "TRANSPARENT"

_STATUS_BY_CELL_STATE = {
    "STANDARD": CONFIRMED,
    "EXAM": CONFIRMED,
    "SUBSTITUTION": TENTATIVE,
    "ROOMSUBSTITUTION": TENTATIVE,
    "ADDITIONAL": TENTATIVE,
    "SHIFT": TENTATIVE,
    "CANCEL": CANCELLED,
    "FREE": CANCELLED,
}

_CELL_STATE_BY_STATUS = {
    CONFIRMED: STANDARD,
    TENTATIVE: SUBSTITUTION,
    CANCELLED: CANCEL,
}

REQUIRED_FIELDS = ("UID", "DTSTART", "DTEND", "LOCATION", "SUMMARY", "DESCRIPTION", "STATUS", "CATEGORIES")

X_COURSE = "X-UNTISCAL-COURSE"
X_ROOM = "X-UNTISCAL-ROOM"
X_STATE = "X-UNTISCAL-STATE"
X_NOTE = "X-UNTISCAL-NOTE"
X_FLAGS = "X-UNTISCAL-FLAGS"
X_RESCHEDULE = "X-UNTISCAL-RESCHEDULE"

_DATETIME_FORMAT = "%Y%m%dT%H%M%S"
_DATE_FORMAT = "%Y%m%d"


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


_UNESCAPES = {"n": "\n", "N": "\n", ";": ";", ",": ",", "\\": "\\"}


def _ics_unescape(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _UNESCAPES.get(m.group(1), m.group(0)), text)


def _unfold(text: str) -> List[str]:
    """
    Split into content lines, joining RFC 5545 continuation lines.
    """
    lines: List[str] = []
    for raw in re.split(r"\r\n|\n|\r", text):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


_LINE_RE = re.compile(r"^(?P<name>[A-Za-z0-9-]+)(?P<params>(?:;[^:]*)?):(?P<value>.*)$")


def _parse_line(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    m = _LINE_RE.match(line)
    if not m:
        return None
    params: Dict[str, str] = {}
    for part in m.group("params").split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            params[key.upper()] = value
    return m.group("name").upper(), params, m.group("value")


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def event_status(period: Period) -> str:
    """
    Map the cell state to a VEVENT status; unknown states are confirmed.
    """
    if period.is_cancelled:
        return CANCELLED
    return _STATUS_BY_CELL_STATE.get(period.cell_state.upper(), CONFIRMED)


def output_priority(priority: int) -> int:
    """
    Internal priority (9 = most urgent) -> ICS PRIORITY (1 = most urgent).
    """
    return 10 - max(MIN_PRIORITY, min(MAX_PRIORITY, priority))


def describe(period: Period) -> str:
    """
    DESCRIPTION text of a lesson built from its fields.
    """
    if period.description is not None:
        return period.description

    lines: List[str] = []
    course = period.course
    if course and course.long_name and course.long_name != course.display_name:
        lines.append(course.long_name)
    if period.note:
        lines.append(period.note)
    if period.reschedule:
        r = period.reschedule
        direction = "Moved to" if r.is_source else "Moved from"
        lines.append(f"{direction} {r.other_start:%Y-%m-%d %H:%M}-{r.other_end:%H:%M}")
    return "\n".join(lines)


def _title(period: Period) -> str:
    if period.synthetic:
        return period.note or period.lesson_code.title()
    if period.course:
        return period.course.display_name
    return period.note or "Lesson"


def _element_ref(element) -> str:
    return "" if element.element_id is None else str(element.element_id)


def lesson_properties(period: Period) -> Dict[str, str]:
    """
    X- properties carrying the lesson fields the visible ones drop
    (element ids, cell state, note, flags, reschedule).

    Course and room are written only when present, so their absence
    survives decoding. Synthetic periods carry none.
    """
    if period.synthetic:
        return {}
    props: Dict[str, str] = {}
    if period.course:
        props[X_COURSE] = _element_ref(period.course)
    if period.room:
        props[X_ROOM] = _element_ref(period.room)
    props[X_STATE] = period.cell_state
    props[X_NOTE] = period.note
    flags = (("CANCELLED", period.is_cancelled), ("STANDARD", period.is_standard), ("EVENT", period.is_event))
    props[X_FLAGS] = " ".join(name for name, value in flags if value)
    if period.reschedule:
        r = period.reschedule
        direction = "TO" if r.is_source else "FROM"
        props[X_RESCHEDULE] = f"{direction} {r.other_start:%Y%m%dT%H%M%S} {r.other_end:%Y%m%dT%H%M%S}"
    return props


def encode(period: Period) -> CalendarEvent:
    """
    Project a Period onto a CalendarEvent.

    SUMMARY periods become all-day events (end date is exclusive).
    """
    status = event_status(period)
    if period.lesson_code == SUMMARY:
        start: date | datetime = period.start.date()
        end: date | datetime = period.end.date() + timedelta(days=1)
    else:
        start = period.start
        end = period.end

    transparent = period.transparent if period.transparent is not None else status != CONFIRMED

    return CalendarEvent(
        uid=f"{period.period_id}@{UID_DOMAIN}",
        start=start,
        end=end,
        location=period.room.display_name if period.room else "",
        summary=_title(period),
        description=describe(period),
        status=status,
        category=period.lesson_code,
        priority=output_priority(period.priority),
        transparent=transparent,
        extra=lesson_properties(period),
    )


def _dt_line(name: str, value: date | datetime, zone: str) -> str:
    if isinstance(value, datetime):
        return f"{name};TZID={zone}:{value.strftime(_DATETIME_FORMAT)}"
    return f"{name};VALUE=DATE:{value.strftime(_DATE_FORMAT)}"


def render_event(event: CalendarEvent, zone: str) -> str:
    """
    Render one VEVENT block (CRLF separated, no trailing line break).
    """
    lines = [
        "BEGIN:VEVENT",
        f"UID:{_ics_escape(event.uid)}",
        _dt_line("DTSTART", event.start, zone),
        _dt_line("DTEND", event.end, zone),
        f"LOCATION:{_ics_escape(event.location)}",
        f"SUMMARY:{_ics_escape(event.summary)}",
        f"DESCRIPTION:{_ics_escape(event.description)}",
        f"STATUS:{event.status}",
        f"CATEGORIES:{_ics_escape(event.category)}",
        f"PRIORITY:{event.priority}",
        f"TRANSP:{TRANSPARENT if event.transparent else OPAQUE}",
    ]
    lines.extend(f"{name}:{_ics_escape(value)}" for name, value in event.extra.items())
    lines.append("END:VEVENT")
    return CRLF.join(lines)


def timezone_block(zone: str) -> List[str]:
    """
    Static VTIMEZONE with the central European DST rule: +0200 from the
    last Sunday of March, +0100 from the last Sunday of October.
    """
    return [
        "BEGIN:VTIMEZONE",
        f"TZID:{zone}",
        "BEGIN:DAYLIGHT",
        "TZOFFSETFROM:+0100",
        "TZOFFSETTO:+0200",
        "TZNAME:CEST",
        "DTSTART:19700329T020000",
        "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU",
        "END:DAYLIGHT",
        "BEGIN:STANDARD",
        "TZOFFSETFROM:+0200",
        "TZOFFSETTO:+0100",
        "TZNAME:CET",
        "DTSTART:19701025T030000",
        "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU",
        "END:STANDARD",
        "END:VTIMEZONE",
    ]


def render_calendar(events: Iterable[CalendarEvent], zone: str, name: Optional[str] = None) -> str:
    """
    Render the full VCALENDAR. Keeps the first event per UID.
    """
    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    if name:
        lines.append(f"X-WR-CALNAME:{_ics_escape(name)}")
    lines.append(f"X-WR-TIMEZONE:{zone}")
    lines.extend(timezone_block(zone))

    seen: set[str] = set()
    for event in events:
        if event.uid in seen:
            log.warning("Duplicate UID %s not written twice", event.uid)
            continue
        seen.add(event.uid)
        lines.append(render_event(event, zone))

    lines.append("END:VCALENDAR")
    # ICS standard uses CRLF
    return CRLF.join(lines) + CRLF


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _parse_dt(value: str, params: Dict[str, str]) -> date | datetime:
    value = value.strip()
    try:
        if params.get("VALUE", "").upper() == "DATE" or len(value) == 8:
            return datetime.strptime(value, _DATE_FORMAT).date()
        return datetime.strptime(value.rstrip("Z"), _DATETIME_FORMAT)
    except ValueError as e:
        raise MalformedCalendarError(f"Invalid date/time {value!r}: {e}") from e


def parse_event(text: str) -> CalendarEvent:
    """
    Parse exactly one VEVENT block.

    Raises MalformedCalendarError unless the text holds exactly one
    BEGIN:VEVENT / END:VEVENT pair, and MissingFieldError if a required
    field is absent. Missing PRIORITY/TRANSP fall back to defaults.
    """
    lines = _unfold(text)
    begins = sum(1 for line in lines if line.strip().upper() == "BEGIN:VEVENT")
    ends = sum(1 for line in lines if line.strip().upper() == "END:VEVENT")
    if begins != 1 or ends != 1:
        raise MalformedCalendarError(f"Expected one VEVENT, found {begins} BEGIN and {ends} END markers")

    fields: Dict[str, Tuple[Dict[str, str], str]] = {}
    inside = False
    for line in lines:
        upper = line.strip().upper()
        if upper == "BEGIN:VEVENT":
            inside = True
            continue
        if upper == "END:VEVENT":
            break
        if not inside:
            continue
        parsed = _parse_line(line)
        if parsed is None:
            continue
        name, params, value = parsed
        fields.setdefault(name, (params, value))

    missing = [name for name in REQUIRED_FIELDS if name not in fields]
    if missing:
        raise MissingFieldError(f"VEVENT lacks required field(s): {', '.join(missing)}")

    uid = _ics_unescape(fields["UID"][1])
    status = fields["STATUS"][1].strip().upper()

    if "PRIORITY" in fields:
        try:
            priority = int(fields["PRIORITY"][1])
        except ValueError:
            raise MalformedCalendarError(f"Event {uid} has a non-numeric PRIORITY {fields['PRIORITY'][1]!r}") from None
    else:
        priority = output_priority(NEUTRAL_PRIORITY)
        log.warning("Event %s has no PRIORITY, using %d", uid, priority)

    if "TRANSP" in fields:
        transparent = fields["TRANSP"][1].strip().upper() == TRANSPARENT
    else:
        transparent = status != CONFIRMED
        log.warning("Event %s has no TRANSP, deriving it from status %s", uid, status)

    return CalendarEvent(
        uid=uid,
        start=_parse_dt(fields["DTSTART"][1], fields["DTSTART"][0]),
        end=_parse_dt(fields["DTEND"][1], fields["DTEND"][0]),
        location=_ics_unescape(fields["LOCATION"][1]),
        summary=_ics_unescape(fields["SUMMARY"][1]),
        description=_ics_unescape(fields["DESCRIPTION"][1]),
        status=status,
        category=_ics_unescape(fields["CATEGORIES"][1]),
        priority=priority,
        transparent=transparent,
        extra={name: _ics_unescape(value) for name, (_, value) in fields.items() if name.startswith("X-UNTISCAL-")},
    )


def _period_id(uid: str) -> int:
    local = uid.split("@", 1)[0]
    try:
        return int(local)
    except ValueError:
        raise MalformedCalendarError(f"UID {uid!r} does not carry a numeric period id") from None


def _as_datetime(value: date | datetime, all_day_end: bool = False) -> datetime:
    if isinstance(value, datetime):
        return value
    if all_day_end:
        # stored end date is exclusive
        value = value - timedelta(days=1)
    return datetime.combine(value, time())


def _element_id(event: CalendarEvent, name: str) -> Optional[int]:
    value = event.extra[name].strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise MalformedCalendarError(f"Event {event.uid} has a non-numeric {name} {value!r}") from None


def _reschedule(event: CalendarEvent) -> Optional[Reschedule]:
    value = event.extra.get(X_RESCHEDULE)
    if not value:
        return None
    try:
        direction, start, end = value.split()
        return Reschedule(
            other_start=datetime.strptime(start, _DATETIME_FORMAT),
            other_end=datetime.strptime(end, _DATETIME_FORMAT),
            is_source=direction.upper() == "TO",
        )
    except ValueError:
        raise MalformedCalendarError(f"Event {event.uid} has an invalid {X_RESCHEDULE} {value!r}") from None


def _lesson_from_properties(event: CalendarEvent) -> Period:
    """
    Rebuild a lesson written with our X- properties. Short and long
    element names are not stored, both come back as the display name.
    """
    course = room = None
    if X_COURSE in event.extra:
        course = Course(_element_id(event, X_COURSE), event.summary, event.summary, event.summary)
    if X_ROOM in event.extra:
        room = Room(_element_id(event, X_ROOM), event.location, event.location, event.location)
    flags = set(event.extra.get(X_FLAGS, "").upper().split())

    return Period(
        period_id=_period_id(event.uid),
        start=_as_datetime(event.start),
        end=_as_datetime(event.end),
        course=course,
        room=room,
        lesson_code=event.category,
        cell_state=event.extra[X_STATE],
        priority=10 - event.priority,
        note=event.extra.get(X_NOTE, ""),
        reschedule=_reschedule(event),
        is_cancelled="CANCELLED" in flags,
        is_standard="STANDARD" in flags,
        is_event="EVENT" in flags,
        pre_existing=True,
        description=event.description,
        transparent=event.transparent,
    )


def to_period(event: CalendarEvent) -> Period:
    """
    Rebuild a Period from a decoded event (inverse of encode()).

    Events without our X- properties (synthetic ones, or lessons from
    older output) are read from the visible fields only: the course
    comes from SUMMARY, the room from LOCATION and the cell state from
    STATUS.
    """
    if X_STATE in event.extra and event.category not in SYNTHETIC_CODES:
        return _lesson_from_properties(event)

    synthetic = event.category in SYNTHETIC_CODES
    course = None
    note = ""
    if synthetic:
        note = event.summary
    elif event.summary:
        course = Course(None, event.summary, event.summary, event.summary)
    room = Room(None, event.location, event.location, event.location) if event.location else None
    cell_state = _CELL_STATE_BY_STATUS.get(event.status, STANDARD)

    return Period(
        period_id=_period_id(event.uid),
        start=_as_datetime(event.start),
        end=_as_datetime(event.end, all_day_end=event.all_day),
        course=course,
        room=room,
        lesson_code=event.category,
        cell_state=cell_state,
        priority=10 - event.priority,
        note=note,
        is_cancelled=event.status == CANCELLED,
        is_standard=cell_state == STANDARD,
        pre_existing=True,
        description=event.description,
        transparent=event.transparent,
    )


def decode(text: str) -> Period:
    """
    Decode one VEVENT block into a pre-existing Period.
    """
    return to_period(parse_event(text))


_BLOCK_RE = re.compile(r"^BEGIN:VEVENT\s*$.*?^END:VEVENT\s*$", re.MULTILINE | re.DOTALL | re.IGNORECASE)


def split_events(calendar_text: str) -> List[str]:
    """
    Cut a VCALENDAR into its VEVENT blocks.
    """
    blocks = [m.group(0) for m in _BLOCK_RE.finditer(calendar_text)]
    begins = len(re.findall(r"^BEGIN:VEVENT\s*$", calendar_text, re.MULTILINE | re.IGNORECASE))
    if begins != len(blocks):
        raise MalformedCalendarError(f"Calendar has {begins} BEGIN:VEVENT markers but {len(blocks)} complete blocks")
    return blocks


def decode_calendar(calendar_text: str) -> List[Period]:
    """
    Decode every VEVENT of a previously published calendar.
    """
    periods = [decode(block) for block in split_events(calendar_text)]
    log.info("Decoded %d events from previous calendar", len(periods))
    return periods
