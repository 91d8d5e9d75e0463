"""
Unit tests for consolidation (merging adjacent lessons).

Merge rule:
- gap between neighbours within the tolerance (0 <= gap <= tolerance)
- same course, room, cell state and note
- every strictly positive merged gap produces one BREAK period
"""

import unittest
from datetime import datetime

from untiscal.consolidate import consolidate
from untiscal.model import BREAK, Course, IdSequence, Period, Room

MATH = Course(1, "M", "Math", "Math")
ENGLISH = Course(2, "E", "English", "English")
ROOM_1 = Room(10, "R1", "Room 1", "Room 1")
ROOM_2 = Room(11, "R2", "Room 2", "Room 2")


def lesson(pid, start, end, course=MATH, room=ROOM_1, state="STANDARD", note="", day=8):
    return Period(
        period_id=pid,
        start=datetime.strptime(f"2024-01-{day:02d} {start}", "%Y-%m-%d %H:%M"),
        end=datetime.strptime(f"2024-01-{day:02d} {end}", "%Y-%m-%d %H:%M"),
        course=course,
        room=room,
        cell_state=state,
        note=note,
    )


class TestConsolidate(unittest.TestCase):
    def test_merge_with_break(self) -> None:
        periods = [lesson(1, "08:00", "08:45"), lesson(2, "09:00", "09:45")]
        out = consolidate(periods, 15)

        self.assertEqual(len(out), 2)
        merged, brk = out
        self.assertEqual(merged.period_id, 1)
        self.assertEqual(merged.start, datetime(2024, 1, 8, 8, 0))
        self.assertEqual(merged.end, datetime(2024, 1, 8, 9, 45))

        self.assertEqual(brk.lesson_code, BREAK)
        self.assertEqual(brk.start, datetime(2024, 1, 8, 8, 45))
        self.assertEqual(brk.end, datetime(2024, 1, 8, 9, 0))
        self.assertEqual(brk.description, "15m break in Math")
        self.assertNotIn(brk.period_id, (1, 2))

    def test_input_periods_are_not_modified(self) -> None:
        first = lesson(1, "08:00", "08:45")
        consolidate([first, lesson(2, "08:45", "09:30")], 15)
        self.assertEqual(first.end, datetime(2024, 1, 8, 8, 45))

    def test_zero_gap_merges_without_break(self) -> None:
        out = consolidate([lesson(1, "08:00", "08:45"), lesson(2, "08:45", "09:30")], 15)
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].end, datetime(2024, 1, 8, 9, 30))

    def test_breaks_can_be_disabled(self) -> None:
        out = consolidate([lesson(1, "08:00", "08:45"), lesson(2, "09:00", "09:45")], 15, breaks=False)
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].end, datetime(2024, 1, 8, 9, 45))

    def test_gap_above_tolerance_is_not_merged(self) -> None:
        periods = [lesson(1, "08:00", "08:45"), lesson(2, "09:05", "09:50")]
        self.assertEqual(consolidate(periods, 15), periods)

    def test_incompatible_neighbours_are_not_merged(self) -> None:
        cases = [
            lesson(2, "08:45", "09:30", course=ENGLISH),
            lesson(2, "08:45", "09:30", room=ROOM_2),
            lesson(2, "08:45", "09:30", state="SUBSTITUTION"),
            lesson(2, "08:45", "09:30", note="bring calculator"),
        ]
        for second in cases:
            with self.subTest(second=second):
                out = consolidate([lesson(1, "08:00", "08:45"), second], 15)
                self.assertEqual(len(out), 2)

    def test_overlapping_period_is_skipped(self) -> None:
        periods = [lesson(1, "08:00", "09:00"), lesson(2, "08:30", "09:30")]
        out = consolidate(periods, 15)
        self.assertEqual(out, periods)

    def test_overlap_does_not_interrupt_merging(self) -> None:
        a = lesson(1, "08:00", "09:00")
        noise = lesson(2, "08:30", "09:30", course=ENGLISH)
        b = lesson(3, "09:00", "10:00")
        out = consolidate([a, noise, b], 15)
        self.assertEqual([p.period_id for p in out], [1, 2])
        self.assertEqual(out[0].end, datetime(2024, 1, 8, 10, 0))

    def test_negative_duration_period_is_dropped(self) -> None:
        a = lesson(1, "08:00", "09:00")
        backwards = lesson(2, "10:00", "09:00")
        b = lesson(3, "09:05", "10:00")
        with self.assertLogs("untiscal.consolidate", level="DEBUG") as logs:
            out = consolidate([a, backwards, b], 15)
        self.assertNotIn(2, [p.period_id for p in out])
        self.assertTrue(all(p.end >= p.start for p in out))
        self.assertTrue(any("ends before it starts" in line for line in logs.output))

    def test_negative_duration_dropped_without_tolerance(self) -> None:
        periods = [lesson(1, "08:00", "09:00"), lesson(2, "10:00", "09:00")]
        self.assertEqual([p.period_id for p in consolidate(periods, None)], [1])

    def test_disabled_tolerance_is_identity(self) -> None:
        periods = [lesson(1, "08:00", "08:45"), lesson(2, "09:00", "09:45")]
        out = consolidate(periods, None)
        self.assertEqual(out, periods)
        self.assertIsNot(out, periods)

    def test_run_collapses_with_one_break_per_gap(self) -> None:
        periods = [
            lesson(1, "08:00", "08:45"),
            lesson(2, "08:50", "09:35"),
            lesson(3, "09:45", "10:30"),
        ]
        out = consolidate(periods, 15)
        lessons = [p for p in out if p.lesson_code != BREAK]
        breaks = [p for p in out if p.lesson_code == BREAK]
        self.assertEqual(len(lessons), 1)
        self.assertEqual(lessons[0].end, datetime(2024, 1, 8, 10, 30))
        self.assertEqual([b.description for b in breaks], ["5m break in Math", "10m break in Math"])

    def test_consolidation_is_idempotent(self) -> None:
        periods = [
            lesson(1, "08:00", "08:45"),
            lesson(2, "09:00", "09:45"),
            lesson(3, "10:00", "10:45", course=ENGLISH),
            lesson(4, "08:00", "08:45", day=9),
        ]
        once = consolidate(periods, 15)
        twice = consolidate(once, 15)
        self.assertEqual(twice, once)

    def test_break_ids_skip_reserved_ids(self) -> None:
        ids = IdSequence({1, 2, 1_000_000_000})
        out = consolidate([lesson(1, "08:00", "08:45"), lesson(2, "09:00", "09:45")], 15, ids=ids)
        self.assertEqual(out[1].period_id, 1_000_000_001)

    def test_output_is_sorted(self) -> None:
        periods = [lesson(2, "10:00", "10:45", course=ENGLISH), lesson(1, "08:00", "08:45")]
        out = consolidate(periods, 15)
        self.assertEqual([p.period_id for p in out], [1, 2])


if __name__ == "__main__":
    unittest.main()
