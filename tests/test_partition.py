import unittest
from datetime import datetime

from untiscal.model import SUMMARY, Course, Period
from untiscal.partition import partition, slugify
from untiscal.priority import MAIN, Bucket

MATH = Course(1, "M", "Math", "Math")
ART = Course(2, "A", "Art", "Arts & Crafts")


def period(pid, hour, course=None, code="STANDARD"):
    return Period(pid, datetime(2024, 1, 8, hour, 0), datetime(2024, 1, 8, hour, 45), course=course, lesson_code=code)


class TestPartition(unittest.TestCase):
    def test_catch_all_only_by_default(self) -> None:
        main = Bucket(MAIN, "all", [period(2, 9, MATH), period(1, 8, ART)])
        groups = partition([main])
        self.assertEqual(len(groups), 1)
        self.assertEqual(groups[0].suffix, "")
        self.assertEqual([p.period_id for p in groups[0].periods], [1, 2])

    def test_split_by_course_shares_courseless_periods(self) -> None:
        banner = period(3, 7, code=SUMMARY)
        main = Bucket(MAIN, "all", [period(1, 8, MATH), period(2, 9, ART), banner])
        prio = Bucket("PRIO", "PRIO", [period(4, 10, MATH)])
        groups = partition([main, prio], split_by_course=True)

        self.assertEqual([g.name for g in groups], ["all", "Arts & Crafts", "Math", "PRIO"])
        self.assertEqual([g.suffix for g in groups], ["", "_Arts_Crafts", "_Math", "_PRIO"])
        self.assertEqual([p.period_id for p in groups[1].periods], [3, 2])
        self.assertEqual([p.period_id for p in groups[2].periods], [3, 1])
        self.assertEqual([p.period_id for p in groups[3].periods], [4])

    def test_clashing_suffixes_are_made_unique(self) -> None:
        prio_course = Course(3, "P", "Prio", "PRIO")
        main = Bucket(MAIN, "all", [period(1, 8, prio_course), period(2, 9, Course(4, "p", "prio", "prio!"))])
        prio = Bucket("PRIO", "PRIO", [period(3, 10, MATH)])
        with self.assertLogs("untiscal.partition", level="WARNING"):
            groups = partition([main, prio], split_by_course=True)

        suffixes = [g.suffix for g in groups]
        self.assertEqual(suffixes, ["", "_PRIO", "_prio_2", "_PRIO_3"])
        self.assertEqual(groups[3].name, "PRIO")
        self.assertEqual([p.period_id for p in groups[3].periods], [3])

    def test_slugify(self) -> None:
        self.assertEqual(slugify("Deutsch / Kunst"), "Deutsch_Kunst")
        self.assertEqual(slugify("  "), "unnamed")


if __name__ == "__main__":
    unittest.main()
