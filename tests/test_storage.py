"""
Unit tests for file input/output.

Storage contract:
- missing previous calendar -> None (first run)
- CRLF line endings survive reading the previous calendar
- one file per output group, named by suffix
"""

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from untiscal.partition import OutputGroup
from untiscal.pipeline import RawTimetable
from untiscal.storage import (
    load_previous_calendar,
    load_raw_timetable,
    output_path,
    save_raw_timetable,
    write_groups,
)


class TestStorage(unittest.TestCase):
    def test_missing_previous_calendar_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertIsNone(load_previous_calendar(Path(d) / "missing.ics"))
        self.assertIsNone(load_previous_calendar(None))

    def test_write_groups_and_read_back(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "pub" / "calendar.ics"
            rendered = [
                (OutputGroup("all", ""), "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n"),
                (OutputGroup("PRIO", "_PRIO"), "BEGIN:VCALENDAR\r\nX\r\nEND:VCALENDAR\r\n"),
            ]
            written = write_groups(rendered, out)

            self.assertEqual([p.name for p in written], ["calendar.ics", "calendar_PRIO.ics"])
            self.assertEqual(load_previous_calendar(out), "BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")

    def test_output_path(self) -> None:
        self.assertEqual(output_path("out/cal.ics", "_Math"), Path("out/cal_Math.ics"))
        self.assertEqual(output_path("out/cal", ""), Path("out/cal.ics"))

    def test_raw_dump_roundtrip(self) -> None:
        raw = RawTimetable(
            periods=[{"id": 1, "date": 20240108}],
            legend=[{"type": 3, "id": 1, "name": "M"}],
            last_import=datetime(2024, 1, 8, 5, 0, tzinfo=timezone.utc),
        )
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "raw.json"
            save_raw_timetable(raw, p)
            loaded = load_raw_timetable(p)
            self.assertEqual(loaded, raw)

    def test_raw_dump_with_millisecond_timestamp(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "raw.json"
            p.write_text(json.dumps({"periods": [], "legend": [], "lastImportTimestamp": 1704690000000}), encoding="utf-8")
            loaded = load_raw_timetable(p)
            self.assertEqual(loaded.last_import, datetime(2024, 1, 8, 5, 0, tzinfo=timezone.utc))


if __name__ == "__main__":
    unittest.main()
