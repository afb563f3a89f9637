import tempfile
import unittest
from datetime import date
from pathlib import Path

from room_scheduler import SchedulingSettings, ValidationError, load_settings


class TestLoadSettings(unittest.TestCase):
    def test_defaults_without_file(self) -> None:
        settings = load_settings()

        self.assertEqual(settings, SchedulingSettings())
        self.assertEqual(settings.buffer_minutes, 5)
        self.assertEqual(settings.default_start_minute, 480)
        self.assertIsNone(settings.holiday_country)

    def test_missing_file_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            self.assertEqual(load_settings(Path(temp_dir) / "settings.yaml"), SchedulingSettings())

    def test_yaml_values_and_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "settings.yaml"
            path.write_text("buffer_minutes: 10\nholiday_country: KR\n", encoding="utf-8")

            settings = load_settings(path, max_occurrences=12)

            self.assertEqual(settings.buffer_minutes, 10)
            self.assertEqual(settings.holiday_country, "KR")
            self.assertEqual(settings.max_occurrences, 12)

    def test_unknown_keys_and_bad_files_raise(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "settings.yaml"
            path.write_text("buffer: 10\n", encoding="utf-8")
            with self.assertRaises(ValidationError):
                load_settings(path)

            path.write_text("- 1\n- 2\n", encoding="utf-8")
            with self.assertRaises(ValidationError):
                load_settings(path)

            path.write_text("this: [is: invalid", encoding="utf-8")
            with self.assertRaises(ValidationError):
                load_settings(path)

    def test_invalid_values_raise(self) -> None:
        with self.assertRaises(ValidationError):
            SchedulingSettings(slot_step_minutes=0)
        with self.assertRaises(ValidationError):
            SchedulingSettings(first_start_minute=1300, last_start_minute=1200)


class TestBlockedDays(unittest.TestCase):
    def test_nothing_is_blocked_without_country(self) -> None:
        settings = SchedulingSettings()
        self.assertFalse(settings.is_blocked_day(date(2024, 5, 11)))
        self.assertFalse(settings.is_blocked_day(date(2024, 12, 25)))

    def test_weekends_and_holidays_are_blocked_with_country(self) -> None:
        settings = SchedulingSettings(holiday_country="US")

        self.assertTrue(settings.is_blocked_day(date(2024, 5, 11)))
        self.assertTrue(settings.is_blocked_day(date(2024, 12, 25)))
        self.assertTrue(settings.is_blocked_day(date(2024, 7, 4)))
        self.assertFalse(settings.is_blocked_day(date(2024, 5, 10)))


if __name__ == "__main__":
    unittest.main()
