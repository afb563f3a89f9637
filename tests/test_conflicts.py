import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

from room_scheduler import ConflictDetector, ReservationRecord, ReservationYamlRepository, find_conflict, to_minutes

DAY = date(2024, 5, 10)
STAMP = datetime(2024, 5, 1, 9, 0)


def _record(reservation_id: str, start: str, end: str, room_id: str = "R1", on: date = DAY, canceled: bool = False) -> ReservationRecord:
    return ReservationRecord(
        reservation_id=reservation_id,
        room_id=room_id,
        requester_id="u-1",
        requester_name="Ana",
        date=on,
        start_time=to_minutes(start),
        end_time=to_minutes(end),
        participant_count=2,
        created_at=STAMP,
        updated_at=STAMP,
        canceled=canceled,
    )


class TestHasConflict(unittest.TestCase):
    def test_request_inside_existing_reservation_returns_it(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ReservationYamlRepository(Path(temp_dir) / "data")
            existing = _record("r-1", "09:00", "10:00")
            repo.insert_batch([existing])

            conflict = ConflictDetector(repo).has_conflict("R1", DAY, to_minutes("09:30"), to_minutes("09:45"))

            self.assertEqual(conflict, existing)

    def test_other_room_other_date_and_canceled_are_ignored(self) -> None:
        rows = [
            _record("r-1", "09:00", "10:00", room_id="R2"),
            _record("r-2", "09:00", "10:00", on=date(2024, 5, 11)),
            _record("r-3", "09:00", "10:00", canceled=True),
        ]
        self.assertIsNone(find_conflict(rows, "R1", DAY, to_minutes("09:00"), to_minutes("10:00")))

    def test_excluded_reservation_is_ignored(self) -> None:
        rows = [_record("r-1", "09:00", "10:00")]
        self.assertIsNone(find_conflict(rows, "R1", DAY, 540, 600, exclude_reservation_id="r-1"))
        self.assertIsNotNone(find_conflict(rows, "R1", DAY, 540, 600, exclude_reservation_id="r-9"))

    def test_first_match_is_by_start_time_not_insertion_order(self) -> None:
        later = _record("r-late", "11:00", "12:00")
        earlier = _record("r-early", "09:00", "10:00")

        conflict = find_conflict([later, earlier], "R1", DAY, to_minutes("08:00"), to_minutes("13:00"))

        self.assertEqual(conflict, earlier)

    def test_all_overlap_shapes_on_a_grid(self) -> None:
        existing = _record("r-1", "10:00", "11:00")
        grid = range(to_minutes("08:30"), to_minutes("12:31"), 15)
        for start in grid:
            for end in grid:
                if end <= start:
                    continue
                starts_inside = existing.start_time <= start < existing.end_time
                ends_inside = existing.start_time < end <= existing.end_time
                contains = start <= existing.start_time and end >= existing.end_time
                expected = starts_inside or ends_inside or contains
                with self.subTest(start=start, end=end):
                    conflict = find_conflict([existing], "R1", DAY, start, end)
                    self.assertEqual(conflict is not None, expected)


if __name__ == "__main__":
    unittest.main()
