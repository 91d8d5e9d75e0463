"""
Consolidation: merge chronologically adjacent, compatible periods.

Two neighbours merge if the gap between them is within the tolerance and
they share course, room, cell state and note:

    0 <= next.start - current.end <= tolerance

Overlapping neighbours (next.start < current.end) are known source noise:
they are left untouched and never merged. A merged period is replaced by a
new record with the extended end; the absorbed one is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import timedelta
from typing import List, Optional, Sequence

from untiscal.model import BREAK, BREAK_PRIORITY, IdSequence, Period, sort_periods

log = logging.getLogger(__name__)


def _compatible(a: Period, b: Period) -> bool:
    return (
        a.course_id == b.course_id
        and a.room_id == b.room_id
        and a.cell_state == b.cell_state
        and a.note == b.note
    )


def break_description(gap_minutes: int, period: Period) -> str:
    course = period.course.display_name if period.course else "lesson"
    return f"{gap_minutes}m break in {course}"


def make_break(current: Period, following: Period, ids: IdSequence) -> Period:
    """
    Build the filler period for the gap between two merged periods.
    """
    gap = int((following.start - current.end).total_seconds() // 60)
    return Period(
        period_id=ids.next_id(),
        start=current.end,
        end=following.start,
        course=current.course,
        room=current.room,
        lesson_code=BREAK,
        cell_state=BREAK,
        priority=BREAK_PRIORITY,
        note="Break",
        description=break_description(gap, current),
        transparent=True,
    )


def consolidate(
    periods: Sequence[Period],
    tolerance: Optional[int],
    breaks: bool = True,
    ids: Optional[IdSequence] = None,
) -> List[Period]:
    """
    Merge adjacent compatible periods.

    tolerance: max gap in minutes, None disables consolidation entirely.
    breaks: emit a BREAK period for every strictly positive merged gap.
    ids: generator for break ids; defaults to one reserving all input ids.

    Periods ending before they start are dropped, even with consolidation
    disabled. Returns the surviving and synthesized periods sorted by
    (start, end).
    """
    valid = []
    for period in periods:
        if period.end < period.start:
            log.debug("Dropping period %s, it ends before it starts", period.period_id)
            continue
        valid.append(period)
    if tolerance is None:
        return valid

    if ids is None:
        ids = IdSequence(p.period_id for p in periods)
    max_gap = timedelta(minutes=tolerance)

    result: List[Period] = []
    synthesized: List[Period] = []
    current_index: Optional[int] = None
    merged = 0

    for period in sort_periods(valid):
        if period.synthetic:
            result.append(period)
            continue

        if current_index is None:
            result.append(period)
            current_index = len(result) - 1
            continue

        current = result[current_index]

        if period.start < current.end:
            log.debug("Skipping overlapping period %s", period.period_id)
            result.append(period)
            continue

        gap = period.start - current.end
        if gap <= max_gap and _compatible(current, period):
            if gap > timedelta(0) and breaks:
                synthesized.append(make_break(current, period, ids))
            result[current_index] = replace(current, end=period.end)
            merged += 1
            continue

        result.append(period)
        current_index = len(result) - 1

    if merged:
        log.info("Merged %d periods, added %d breaks", merged, len(synthesized))
    return sort_periods(result + synthesized)
