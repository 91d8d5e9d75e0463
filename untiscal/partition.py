"""
Output partitioning: stratified buckets -> named output groups.

Every group becomes one .ics file. The suffix is appended to the file stem
of the requested output path (calendar.ics -> calendar_Math.ics).
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from untiscal.model import CalendarEvent, Period, sort_periods
from untiscal.priority import Bucket

log = logging.getLogger(__name__)


@dataclass
class OutputGroup:
    name: str
    suffix: str
    periods: List[Period] = field(default_factory=list)
    events: List[CalendarEvent] = field(default_factory=list)


def slugify(name: str) -> str:
    """
    Make a bucket name safe for use in a file name.
    """
    slug = re.sub(r"[^\w.-]+", "_", name.strip(), flags=re.UNICODE).strip("_")
    return slug or "unnamed"


def partition(buckets: Sequence[Bucket], split_by_course: bool = False) -> List[OutputGroup]:
    """
    Turn buckets into output groups.

    - main bucket -> catch-all group (empty suffix)
    - main bucket, split_by_course -> one extra group per course display
      name; periods without a course (summaries) are added to each of them
    - every PRIO bucket -> its own group

    Suffixes are unique (case-insensitive); a clash gets _2, _3, ...
    """
    groups: List[OutputGroup] = []
    for bucket in buckets:
        if not bucket.is_main:
            groups.append(OutputGroup(bucket.name, f"_{slugify(bucket.name)}", sort_periods(bucket.periods)))
            continue

        groups.append(OutputGroup(bucket.name, "", sort_periods(bucket.periods)))
        if not split_by_course:
            continue

        by_course: Dict[str, List[Period]] = defaultdict(list)
        shared: List[Period] = []
        for period in bucket.periods:
            if period.course is None:
                shared.append(period)
            else:
                by_course[period.course.display_name].append(period)

        for course_name in sorted(by_course):
            groups.append(
                OutputGroup(
                    course_name,
                    f"_{slugify(course_name)}",
                    sort_periods(by_course[course_name] + shared),
                )
            )
    return _unique_suffixes(groups)


def _unique_suffixes(groups: List[OutputGroup]) -> List[OutputGroup]:
    used: set[str] = set()
    for group in groups:
        suffix = group.suffix
        n = 2
        while suffix.lower() in used:
            suffix = f"{group.suffix}_{n}"
            n += 1
        if suffix != group.suffix:
            log.warning("Output group %r renamed to suffix %s, %s is taken", group.name, suffix, group.suffix)
            group.suffix = suffix
        used.add(suffix.lower())
    return groups
