"""
Priority stratification.

Periods more urgent than the neutral midpoint are moved (or copied) into
dedicated PRIO buckets so they can be subscribed to as a separate calendar.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from untiscal.model import NEUTRAL_PRIORITY, PRIO, Period, sort_periods

log = logging.getLogger(__name__)

MAIN = "main"
PRIORITY_THRESHOLD = NEUTRAL_PRIORITY


@dataclass
class Bucket:
    key: str
    name: str
    periods: List[Period] = field(default_factory=list)

    @property
    def is_main(self) -> bool:
        return self.key == MAIN


def stratify(
    periods: Sequence[Period],
    remove_from_main: bool = True,
    dedicated_bucket: bool = True,
    group_by_priority: bool = False,
    overrides: Optional[Mapping[str, str]] = None,
    threshold: int = PRIORITY_THRESHOLD,
) -> List[Bucket]:
    """
    Split periods into the main bucket and PRIO bucket(s).

    - priority > threshold goes to "PRIO" (or "PRIO<value>" when
      group_by_priority is set, which implies dedicated_bucket)
    - without a dedicated bucket, urgent periods simply stay in main
    - bucket names come from `overrides` when it maps the bucket key

    The main bucket is always first, PRIO buckets follow from most to least
    urgent.
    """
    overrides = overrides or {}
    if group_by_priority:
        dedicated_bucket = True

    main: List[Period] = []
    urgent: Dict[str, List[Period]] = defaultdict(list)
    urgency: Dict[str, int] = {}

    for period in sort_periods(periods):
        if dedicated_bucket and period.priority > threshold:
            key = f"{PRIO}{period.priority}" if group_by_priority else PRIO
            urgent[key].append(period)
            urgency[key] = max(urgency.get(key, period.priority), period.priority)
            if remove_from_main:
                continue
        main.append(period)

    buckets = [Bucket(MAIN, overrides.get(MAIN, "all"), main)]
    for key in sorted(urgent, key=lambda k: (-urgency[k], k)):
        buckets.append(Bucket(key, overrides.get(key, key), urgent[key]))

    if urgent:
        log.info(
            "Priority buckets: %s",
            ", ".join(f"{b.name}={len(b.periods)}" for b in buckets[1:]),
        )
    return buckets
