import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from room_scheduler import ReservationYamlRepository
from room_scheduler.web_app import create_app

NOW = datetime(2024, 5, 9, 17, 0)
ANA = {"X-User-Id": "u-1", "X-User-Name": "Ana Souza"}
BRUNO = {"X-User-Id": "u-2", "X-User-Name": "Bruno Lima"}


class TestWebApp(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        data_dir = Path(self._temp_dir.name) / "data"
        ReservationYamlRepository(data_dir).seed_default_catalog()
        self.app = create_app(data_dir, now_provider=lambda: NOW)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def book(self, start: str = "09:00", end: str = "10:00", headers: dict[str, str] = ANA, **extra: object):
        payload = {
            "room_id": "room-1",
            "date": "2024-05-10",
            "start_time": start,
            "end_time": end,
            "participant_count": 4,
        }
        payload.update(extra)
        return self.client.post("/api/reservations", json=payload, headers=headers)

    def test_catalog_endpoints(self) -> None:
        rooms = self.client.get("/api/rooms").get_json()["rooms"]
        types = self.client.get("/api/meeting-types").get_json()["meeting_types"]

        self.assertEqual([room["room_id"] for room in rooms], ["room-1", "room-2", "room-3", "room-4"])
        self.assertEqual(types[0]["type_id"], "internal")

    def test_create_returns_201_and_lists_reservation(self) -> None:
        response = self.book(meeting_type_id="client", notes="demo")

        self.assertEqual(response.status_code, 201)
        created = response.get_json()["reservations"]
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0]["start_time"], "09:00")
        self.assertEqual(created[0]["requester_name"], "Ana Souza")
        self.assertEqual(created[0]["status"], "active")

        listed = self.client.get("/api/reservations?room_id=room-1&date=2024-05-10").get_json()["reservations"]
        self.assertEqual([row["reservation_id"] for row in listed], [created[0]["reservation_id"]])

    def test_overlap_returns_409_with_conflict(self) -> None:
        first = self.book().get_json()["reservations"][0]

        response = self.book("09:30", "10:30", headers=BRUNO)

        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["kind"], "conflict")
        self.assertEqual(payload["conflicting_dates"], ["2024-05-10"])
        self.assertEqual(payload["conflict"]["reservation_id"], first["reservation_id"])

    def test_recurring_create_returns_every_occurrence(self) -> None:
        response = self.book(recurrence="weekly", occurrences=3)

        self.assertEqual(response.status_code, 201)
        dates = [row["date"] for row in response.get_json()["reservations"]]
        self.assertEqual(dates, ["2024-05-10", "2024-05-17", "2024-05-24"])

    def test_validation_errors_return_400(self) -> None:
        cases = {
            "inverted": self.book("10:00", "09:00"),
            "capacity": self.book(participant_count=20),
            "bad date": self.book(date="10/05/2024"),
            "no actor": self.book(headers={}),
            "bad count": self.book(participant_count="many"),
        }
        for label, response in cases.items():
            with self.subTest(label):
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["kind"], "validation")

    def test_unknown_ids_return_404(self) -> None:
        self.assertEqual(self.book(room_id="room-9").status_code, 404)
        response = self.client.post("/api/reservations/missing/cancel", json={}, headers=ANA)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["kind"], "not_found")

    def test_update_records_history(self) -> None:
        created = self.book().get_json()["reservations"][0]

        response = self.client.post(
            f"/api/reservations/{created['reservation_id']}/update",
            json={"start_time": "09:30"},
            headers=BRUNO,
        )

        self.assertEqual(response.status_code, 200)
        updated = response.get_json()["reservation"]
        self.assertEqual(updated["start_time"], "09:30")
        self.assertEqual(len(updated["change_history"]), 1)
        entry = updated["change_history"][0]
        self.assertEqual((entry["field_name"], entry["old_value"], entry["new_value"], entry["actor"]), ("start_time", "09:00", "09:30", "u-2"))

    def test_update_rejects_non_text_fields(self) -> None:
        created = self.book().get_json()["reservations"][0]
        url = f"/api/reservations/{created['reservation_id']}/update"

        for body in ({"start_time": 9}, {"end_time": "24:00"}, {"notes": 5}, {"meeting_type_id": ["client"]}, {"date": "tomorrow"}):
            with self.subTest(body=body):
                response = self.client.post(url, json=body, headers=ANA)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["kind"], "validation")

        listed = self.client.get("/api/reservations").get_json()["reservations"]
        self.assertEqual((listed[0]["start_time"], listed[0]["end_time"]), ("09:00", "10:00"))
        self.assertEqual(listed[0]["change_history"], [])

    def test_create_rejects_numeric_times(self) -> None:
        response = self.book(start=9, end=10)
        self.assertEqual(response.status_code, 400)

    def test_cancel_keeps_reservation_listed(self) -> None:
        created = self.book().get_json()["reservations"][0]

        response = self.client.post(
            f"/api/reservations/{created['reservation_id']}/cancel",
            json={"reason": "moved online"},
            headers=ANA,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["reservation"]["status"], "canceled")
        listed = self.client.get("/api/reservations").get_json()["reservations"]
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["cancel_reason"], "moved online")
        active_only = self.client.get("/api/reservations?include_canceled=false").get_json()["reservations"]
        self.assertEqual(active_only, [])
        self.assertEqual(self.book(headers=BRUNO).status_code, 201)

    def test_availability_endpoints(self) -> None:
        self.book("10:00", "11:00")

        suggested = self.client.get("/api/availability/suggest?room_id=room-1&date=2024-05-10").get_json()
        self.assertEqual(suggested["slot"], {"start_time": "08:00", "end_time": "09:00"})

        starts = self.client.get("/api/availability/start-slots?room_id=room-1&date=2024-05-10").get_json()["slots"]
        self.assertEqual(starts[0], "07:00")
        self.assertNotIn("10:30", starts)

        ends = self.client.get(
            "/api/availability/end-slots?room_id=room-1&date=2024-05-10&start_time=09:00"
        ).get_json()["slots"]
        self.assertEqual((ends[0], ends[-1]), ("09:10", "09:55"))

        end_time = self.client.get(
            "/api/availability/end-time?room_id=room-1&date=2024-05-10&start_time=09:30"
        ).get_json()["end_time"]
        self.assertEqual(end_time, "09:55")

    def test_availability_requires_room(self) -> None:
        response = self.client.get("/api/availability/suggest?date=2024-05-10")
        self.assertEqual(response.status_code, 400)

    def test_conflict_check(self) -> None:
        created = self.book().get_json()["reservations"][0]
        body = {"room_id": "room-1", "date": "2024-05-10", "start_time": "09:30", "end_time": "09:45"}

        hit = self.client.post("/api/conflicts/check", json=body).get_json()
        self.assertTrue(hit["has_conflict"])
        self.assertEqual(hit["conflict"]["reservation_id"], created["reservation_id"])

        body["exclude_id"] = created["reservation_id"]
        miss = self.client.post("/api/conflicts/check", json=body).get_json()
        self.assertFalse(miss["has_conflict"])
        self.assertIsNone(miss["conflict"])

    def test_my_reservations_splits_upcoming(self) -> None:
        self.book()
        self.book(date="2024-05-20")
        self.book("11:00", "12:00", headers=BRUNO)

        payload = self.client.get("/api/my-reservations", headers=ANA).get_json()

        self.assertEqual([row["date"] for row in payload["reservations"]], ["2024-05-10", "2024-05-20"])
        self.assertEqual([row["date"] for row in payload["upcoming"]], ["2024-05-10"])

    def test_responses_carry_cors_headers(self) -> None:
        response = self.client.get("/api/rooms")
        self.assertEqual(response.headers["Access-Control-Allow-Origin"], "*")


if __name__ == "__main__":
    unittest.main()
