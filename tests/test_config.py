import unittest

from untiscal.config import PipelineConfig, parse_overrides


class TestOverrides(unittest.TestCase):
    def test_key_value_form(self) -> None:
        self.assertEqual(parse_overrides("M=Math; E = English ;"), {"M": "Math", "E": "English"})

    def test_json_form(self) -> None:
        self.assertEqual(parse_overrides('{"PRIO8": "Exams"}'), {"PRIO8": "Exams"})

    def test_empty(self) -> None:
        self.assertEqual(parse_overrides(None), {})
        self.assertEqual(parse_overrides("  "), {})

    def test_invalid(self) -> None:
        for text in ["M", "=Math", "[1, 2]"]:
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    parse_overrides(text)

    def test_defaults(self) -> None:
        config = PipelineConfig()
        self.assertIsNone(config.gap_tolerance)
        self.assertTrue(config.remove_from_main)
        self.assertTrue(config.dedicated_bucket)
        self.assertEqual(config.timezone, "Europe/Berlin")
        self.assertTrue(config.dst_correction)


if __name__ == "__main__":
    unittest.main()
