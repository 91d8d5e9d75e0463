"""
Pipeline driver.

    raw records + legend
        -> normalize (legend.py)
        -> consolidate (consolidate.py)
        -> multi-day summaries (summary.py)
        -> merge previously published calendar (ics_codec.py)
        -> priority buckets (priority.py)
        -> output groups (partition.py)
        -> encode (ics_codec.py)

The period list is owned by run_pipeline() and handed from stage to stage;
each stage returns a new list sorted by (start, end).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from untiscal.config import PipelineConfig
from untiscal.consolidate import consolidate
from untiscal.ics_codec import decode_calendar, encode, render_calendar
from untiscal.legend import Legend, dst_correction, normalize_periods
from untiscal.model import IdSequence, Period, sort_periods
from untiscal.partition import OutputGroup, partition
from untiscal.priority import stratify
from untiscal.summary import synthesize_summaries

log = logging.getLogger(__name__)


@dataclass
class RawTimetable:
    """
    Everything fetched from the timetable source for one run.
    """

    periods: List[Mapping[str, Any]]
    legend: List[Mapping[str, Any]]
    last_import: Optional[datetime] = None


def build_periods(raw: RawTimetable, config: PipelineConfig, now: Optional[datetime] = None) -> List[Period]:
    """
    Resolve the legend and normalize raw period records.

    `now` decides the DST correction (defaults to the current time).
    """
    shift = dst_correction(config.timezone, now) if config.dst_correction else timedelta(0)
    if shift:
        log.info("Applying DST correction of %s to all periods", shift)
    return normalize_periods(raw.periods, Legend(raw.legend), config.overrides, shift)


def merge_previous(
    periods: Sequence[Period],
    previous: Iterable[Period],
    fresh_ids: Iterable[int],
) -> List[Period]:
    """
    Add decoded periods of an earlier calendar to the current set.

    - synthetic records (breaks, summaries) are always regenerated, never kept
    - a decoded period whose id belongs to a freshly fetched period is dropped
    - within the previous calendar the first record per id wins
    """
    taken = set(fresh_ids) | {p.period_id for p in periods}
    kept: List[Period] = []
    dropped = 0
    for period in previous:
        if period.synthetic:
            continue
        if period.period_id in taken:
            dropped += 1
            continue
        taken.add(period.period_id)
        kept.append(period)

    log.info("Kept %d previous events, %d replaced by fresh data", len(kept), dropped)
    return sort_periods(list(periods) + kept)


def run_pipeline(
    fresh: Sequence[Period],
    config: PipelineConfig,
    previous_calendar: Optional[str] = None,
    last_import: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> List[OutputGroup]:
    """
    Run every stage on normalized periods and return encoded output groups.
    """
    previous = decode_calendar(previous_calendar) if previous_calendar else []
    fresh_ids = {p.period_id for p in fresh}

    ids = IdSequence(fresh_ids)
    ids.reserve(p.period_id for p in previous)

    periods = consolidate(sort_periods(fresh), config.gap_tolerance, config.breaks, ids)

    if config.multi_day:
        periods = synthesize_summaries(
            periods,
            ids,
            first_weekday=config.first_weekday,
            split_day_gaps=config.split_day_gaps,
            last_import=last_import,
            now=now,
            locale=config.locale,
        )

    if previous:
        periods = merge_previous(periods, previous, fresh_ids)

    buckets = stratify(
        periods,
        remove_from_main=config.remove_from_main,
        dedicated_bucket=config.dedicated_bucket,
        group_by_priority=config.group_by_priority,
        overrides=config.overrides,
    )

    groups = partition(buckets, config.split_by_course)
    for group in groups:
        group.events = [encode(p) for p in group.periods]
    return groups


def render_groups(groups: Sequence[OutputGroup], config: PipelineConfig) -> List[tuple[OutputGroup, str]]:
    """
    Render every group as a full VCALENDAR text.
    """
    return [(group, render_calendar(group.events, config.timezone, group.name)) for group in groups]
