"""
Pipeline configuration.

The CLI fills a PipelineConfig from its arguments; library users can build
one directly. Defaults match the CLI defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Optional

DEFAULT_TIMEZONE = "Europe/Berlin"


@dataclass
class PipelineConfig:
    # consolidation
    gap_tolerance: Optional[int] = None
    breaks: bool = True
    # multi-day summaries
    multi_day: bool = True
    split_day_gaps: bool = True
    first_weekday: int = 0
    # priority buckets
    remove_from_main: bool = True
    dedicated_bucket: bool = True
    group_by_priority: bool = False
    # naming / output
    overrides: Dict[str, str] = field(default_factory=dict)
    split_by_course: bool = False
    timezone: str = DEFAULT_TIMEZONE
    locale: Optional[str] = None
    dst_correction: bool = True


def parse_overrides(text: Optional[str]) -> Dict[str, str]:
    """
    Parse the short-name -> display-name mapping.

    Accepted forms:
        {"M": "Mathematics", "PRIO8": "Exams"}
        M=Mathematics;PRIO8=Exams
    Raises ValueError for anything else.
    """
    if text is None or not text.strip():
        return {}

    raw = text.strip()
    if raw.startswith("{"):
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Override mapping must be a JSON object")
        return {str(k).strip(): str(v).strip() for k, v in data.items()}

    out: Dict[str, str] = {}
    for part in raw.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise ValueError(f"Invalid override entry: {part!r} (expected short=Long)")
        key, value = part.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid override entry: {part!r} (empty short name)")
        out[key] = value.strip()
    return out
