"""
Tests for CLI entry points.

These tests focus on:
- exit codes for missing/invalid input
- an offline `convert` run writing one file per output group
"""

import json
import tempfile
import unittest
from pathlib import Path

from untiscal.cli import build_parser, config_from_args, main

RAW = {
    "periods": [
        {
            "id": 1,
            "date": 20240108,
            "startTime": 800,
            "endTime": 845,
            "cellState": "STANDARD",
            "elements": [{"type": 3, "id": 1}, {"type": 4, "id": 10}],
        },
        {
            "id": 2,
            "date": 20240109,
            "startTime": 900,
            "endTime": 945,
            "cellState": "STANDARD",
            "priority": 8,
            "elements": [{"type": 3, "id": 1}, {"type": 4, "id": 10}],
        },
    ],
    "legend": [
        {"type": 3, "id": 1, "name": "M", "longName": "Math"},
        {"type": 4, "id": 10, "name": "R1", "longName": "Room 1"},
    ],
    "lastImportTimestamp": 1704690000000,
}


class TestCLI(unittest.TestCase):
    def test_convert_missing_input_exits_nonzero(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(SystemExit) as ctx:
                main(["convert", str(Path(d) / "missing.json"), str(Path(d) / "out.ics")])
            self.assertEqual(ctx.exception.code, 1)

    def test_convert_writes_groups(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            raw = Path(d) / "raw.json"
            raw.write_text(json.dumps(RAW), encoding="utf-8")
            out = Path(d) / "out" / "calendar.ics"

            with self.assertRaises(SystemExit) as ctx:
                main(["convert", str(raw), str(out), "--merge-gap", "15", "--previous", str(out)])
            self.assertEqual(ctx.exception.code, 0)

            main_text = out.read_text(encoding="utf-8")
            prio_text = (out.parent / "calendar_PRIO.ics").read_text(encoding="utf-8")
            self.assertIn("UID:1@untiscal", main_text)
            self.assertNotIn("UID:2@untiscal", main_text)
            self.assertIn("UID:2@untiscal", prio_text)

    def test_unknown_legend_reference_exits_with_error(self) -> None:
        broken = dict(RAW, legend=[])
        with tempfile.TemporaryDirectory() as d:
            raw = Path(d) / "raw.json"
            raw.write_text(json.dumps(broken), encoding="utf-8")
            with self.assertRaises(SystemExit) as ctx:
                main(["convert", str(raw), str(Path(d) / "out.ics")])
            self.assertEqual(ctx.exception.code, 1)

    def test_invalid_overrides_exit_code(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            raw = Path(d) / "raw.json"
            raw.write_text(json.dumps(RAW), encoding="utf-8")
            with self.assertRaises(SystemExit) as ctx:
                main(["convert", str(raw), str(Path(d) / "out.ics"), "--overrides", "nonsense"])
            self.assertEqual(ctx.exception.code, 2)

    def test_negative_merge_gap_is_rejected(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            main(["convert", "raw.json", "out.ics", "--merge-gap", "-5"])
        self.assertNotEqual(ctx.exception.code, 0)

    def test_config_from_args(self) -> None:
        args = build_parser().parse_args(
            ["convert", "raw.json", "out.ics", "--group-by-priority", "--first-weekday", "sun", "--no-breaks"]
        )
        config = config_from_args(args)
        self.assertTrue(config.group_by_priority)
        self.assertEqual(config.first_weekday, 6)
        self.assertFalse(config.breaks)
        self.assertIsNone(config.gap_tolerance)

    def test_dst_correction_flag(self) -> None:
        args = build_parser().parse_args(["convert", "raw.json", "out.ics"])
        self.assertTrue(config_from_args(args).dst_correction)
        args = build_parser().parse_args(["convert", "raw.json", "out.ics", "--no-dst-correction"])
        self.assertFalse(config_from_args(args).dst_correction)



if __name__ == "__main__":
    unittest.main()
