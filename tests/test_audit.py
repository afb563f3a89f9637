import unittest
from datetime import date, datetime

from room_scheduler import ChangeEntry, ReservationRecord, diff, extend_history

STAMP = datetime(2024, 5, 1, 9, 0)


def _record(**changes: object) -> ReservationRecord:
    base = ReservationRecord(
        reservation_id="r-1",
        room_id="R1",
        requester_id="u-1",
        requester_name="Ana",
        date=date(2024, 5, 10),
        start_time=540,
        end_time=600,
        participant_count=4,
        created_at=STAMP,
        updated_at=STAMP,
        meeting_type_id="internal",
        notes="weekly sync",
    )
    return base.with_changes(**changes)


class TestDiff(unittest.TestCase):
    def test_single_field_change_yields_one_entry(self) -> None:
        entries = diff(_record(), _record(start_time=570), "u-2", datetime(2024, 5, 2, 10, 0))

        self.assertEqual(
            entries,
            [ChangeEntry(datetime(2024, 5, 2, 10, 0), "start_time", "09:00", "09:30", "u-2")],
        )

    def test_entries_follow_field_order(self) -> None:
        new = _record(
            notes=None,
            participant_count=6,
            end_time=630,
            date=date(2024, 5, 11),
            room_id="R2",
            meeting_type_id=None,
        )
        entries = diff(_record(), new, "u-2", STAMP)

        self.assertEqual(
            [entry.field_name for entry in entries],
            ["room_id", "date", "end_time", "meeting_type_id", "participant_count", "notes"],
        )
        self.assertEqual(entries[1].old_value, "2024-05-10")
        self.assertEqual(entries[1].new_value, "2024-05-11")
        self.assertEqual(entries[3].new_value, None)
        self.assertEqual(entries[4].new_value, 6)

    def test_identical_records_yield_nothing(self) -> None:
        self.assertEqual(diff(_record(), _record(updated_at=datetime(2024, 6, 1)), "u-2", STAMP), [])

    def test_extend_history_appends_without_touching_prior_entries(self) -> None:
        prior = (ChangeEntry(STAMP, "notes", None, "weekly sync", "u-1"),)
        added = diff(_record(), _record(start_time=570), "u-2", STAMP)

        history = extend_history(prior, added)

        self.assertEqual(history[0], prior[0])
        self.assertEqual(len(history), 2)
        self.assertEqual(history[1].field_name, "start_time")


if __name__ == "__main__":
    unittest.main()
