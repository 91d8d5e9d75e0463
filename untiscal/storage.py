"""
File input/output.

This module manages:
- raw timetable dumps (JSON), so a fetched run can be replayed offline
- the previously published calendar (.ics) read back on each run
- writing one .ics file per output group

Suffix rule: the group suffix is appended to the stem of the requested
output path, e.g. calendar.ics + "_PRIO" -> calendar_PRIO.ics.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from untiscal.partition import OutputGroup
from untiscal.pipeline import RawTimetable


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return datetime.fromisoformat(str(value))


def load_raw_timetable(path: str | Path) -> RawTimetable:
    """
    Load a raw dump: {"periods": [...], "legend": [...], "lastImportTimestamp": ...}.

    Unlike the previous calendar, a missing or broken dump is an error.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return RawTimetable(
        periods=list(data.get("periods", [])),
        legend=list(data.get("legend", [])),
        last_import=_parse_timestamp(data.get("lastImportTimestamp")),
    )


def save_raw_timetable(raw: RawTimetable, path: str | Path) -> None:
    """
    Write a raw dump that load_raw_timetable() can read back.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "periods": raw.periods,
        "legend": raw.legend,
        "lastImportTimestamp": raw.last_import.isoformat() if raw.last_import else None,
    }
    out.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def load_previous_calendar(path: str | Path | None) -> Optional[str]:
    """
    Return the text of the previously published calendar, or None.

    First run: the file does not exist yet -> None.
    """
    if path is None:
        return None
    previous = Path(path)
    if not previous.exists():
        return None
    # newline="" keeps CRLF line endings intact
    with previous.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def output_path(base: str | Path, suffix: str) -> Path:
    base_path = Path(base)
    ext = base_path.suffix or ".ics"
    return base_path.with_name(f"{base_path.stem}{suffix}{ext}")


def write_groups(rendered: Sequence[Tuple[OutputGroup, str]], out_path: str | Path) -> List[Path]:
    """
    Write every rendered group; returns the written paths.
    """
    written: List[Path] = []
    for group, text in rendered:
        target = output_path(out_path, group.suffix)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8", newline="") as f:
            f.write(text)
        written.append(target)
    return written
