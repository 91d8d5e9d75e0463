"""
Multi-day summary banners.

For every week we emit one all-day SUMMARY period per contiguous run of
days, so that
- the week number is visible at a glance in any calendar view
- weeks without lessons stand out as empty stretches

Rules:
- cancelled and synthetic periods are ignored
- the first period of each week only seeds the day-change scan and is not
  part of any run (a week with a single period gets no banner)
- a new run starts whenever the date advances by more than one day
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence

from untiscal.model import SUMMARY, SUMMARY_PRIORITY, IdSequence, Period, sort_periods

log = logging.getLogger(__name__)

DUMMY_LABEL = "DUMMY"
DUMMY_EPOCH = datetime(1970, 1, 1)

_DATETIME_FORMATS = {
    "de": "%d.%m.%Y %H:%M",
    "fr": "%d/%m/%Y %H:%M",
    "en-gb": "%d/%m/%Y %H:%M",
    "en-us": "%m/%d/%Y %I:%M %p",
}
_DEFAULT_FORMAT = "%Y-%m-%d %H:%M"


def format_datetime(value: Optional[datetime], locale: Optional[str] = None) -> str:
    """
    Format a timestamp for display text. Only affects descriptions,
    never data values.
    """
    if value is None:
        return "unknown"
    fmt = _DEFAULT_FORMAT
    if locale:
        key = locale.replace("_", "-").lower()
        fmt = _DATETIME_FORMATS.get(key) or _DATETIME_FORMATS.get(key.split("-")[0], _DEFAULT_FORMAT)
    return value.strftime(fmt)


def week_start(day: date, first_weekday: int = 0) -> date:
    """
    First day of the week containing `day` (0 = Monday ... 6 = Sunday).
    """
    return day - timedelta(days=(day.weekday() - first_weekday) % 7)


def day_runs(week: Sequence[Period], split_day_gaps: bool = True) -> List[List[Period]]:
    """
    Split one week's periods into runs of consecutive days.

    The first period is dropped; its date only seeds the scan.
    """
    ordered = sort_periods(week)
    if len(ordered) < 2:
        return []

    runs: List[List[Period]] = []
    previous = ordered[0].start.date()
    for period in ordered[1:]:
        day = period.start.date()
        if not runs or (split_day_gaps and (day - previous).days > 1):
            runs.append([])
        runs[-1].append(period)
        previous = day
    return runs


def _description(now: datetime, last_import: Optional[datetime], locale: Optional[str]) -> str:
    return f"Generated: {format_datetime(now, locale)}\nLast import: {format_datetime(last_import, locale)}"


def synthesize_summaries(
    periods: Sequence[Period],
    ids: IdSequence,
    first_weekday: int = 0,
    split_day_gaps: bool = True,
    last_import: Optional[datetime] = None,
    now: Optional[datetime] = None,
    locale: Optional[str] = None,
) -> List[Period]:
    """
    Return `periods` plus the summary banners, sorted by (start, end).
    """
    now = now or datetime.now()
    description = _description(now, last_import, locale)

    weeks: Dict[date, List[Period]] = defaultdict(list)
    for period in periods:
        if period.is_cancelled or period.synthetic:
            continue
        weeks[week_start(period.start.date(), first_weekday)].append(period)

    summaries: List[Period] = []
    for start_of_week in sorted(weeks):
        runs = day_runs(weeks[start_of_week], split_day_gaps)
        for index, run in enumerate(runs, start=1):
            week_number = run[0].start.isocalendar()[1]
            label = f"W{week_number:02d}"
            if len(runs) > 1:
                label = f"{label} {index}/{len(runs)}"
            summaries.append(
                Period(
                    period_id=ids.next_id(),
                    start=run[0].start,
                    end=run[-1].end,
                    lesson_code=SUMMARY,
                    cell_state=SUMMARY,
                    priority=SUMMARY_PRIORITY,
                    note=label,
                    description=description,
                    transparent=True,
                    tags={"week": week_number, "run": (index, len(runs))},
                )
            )

    if not weeks:
        log.warning("No usable periods, adding %s summary", DUMMY_LABEL)
        summaries.append(
            Period(
                period_id=ids.next_id(),
                start=DUMMY_EPOCH,
                end=DUMMY_EPOCH,
                lesson_code=SUMMARY,
                cell_state=SUMMARY,
                priority=SUMMARY_PRIORITY,
                note=DUMMY_LABEL,
                description=description,
                transparent=True,
            )
        )

    log.info("Added %d summary periods for %d weeks", len(summaries), len(weeks))
    return sort_periods(list(periods) + summaries)
