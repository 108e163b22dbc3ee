"""
Tests for payer lookup, slot search and appointment creation
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from app.config import CASH_PAYER_ID, PRACTICE_TIMEZONE
from app.models.scheduling import AcceptanceStatus
from app.services.availability_service import apply_exceptions, step_slots, weekly_blocks
from app.services.payer_service import acceptance_status
from app.utils.timezone_utils import local_to_utc
from tests.conftest import (
    PAYER_ACTIVE,
    PAYER_EMPTY,
    PROVIDER_ATTENDING,
    PROVIDER_DIRECT,
    PROVIDER_IDLE,
    PROVIDER_RESIDENT,
)

DAY = date.today() + timedelta(days=5)


def at(hour, day=DAY):
    return local_to_utc(day, time(hour), PRACTICE_TIMEZONE)


def appointment_payload(provider_id=PROVIDER_DIRECT, payer_id=PAYER_ACTIVE, hour=10, **overrides):
    start = at(hour)
    body = {
        "provider_id": provider_id,
        "payer_id": payer_id,
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(minutes=60)).isoformat(),
        "duration_minutes": 60,
        "patient": {
            "first_name": "Jamie",
            "last_name": "Rivera",
            "email": "Jamie.Rivera@Example.com",
            "phone": "(555) 555-0134",
            "date_of_birth": "1990-04-01",
        },
    }
    body.update(overrides)
    return body


class TestAcceptanceStatus:

    today = date(2025, 6, 1)

    @pytest.mark.parametrize("payer,expected", [
        ({"status_code": "approved", "effective_date": "2025-01-01"}, AcceptanceStatus.ACTIVE),
        ({"status_code": "active", "effective_date": "2025-06-01"}, AcceptanceStatus.ACTIVE),
        ({"status_code": "approved", "effective_date": "2025-06-20"}, AcceptanceStatus.FUTURE),
        ({"status_code": "approved", "effective_date": "2025-09-01"}, AcceptanceStatus.WAITLIST),
        ({"status_code": "approved", "effective_date": None}, AcceptanceStatus.WAITLIST),
        ({"status_code": "in_progress"}, AcceptanceStatus.WAITLIST),
        ({"status_code": "denied", "effective_date": "2025-01-01"}, AcceptanceStatus.NOT_ACCEPTED),
        ({"status_code": None}, AcceptanceStatus.NOT_ACCEPTED),
        ({"id": CASH_PAYER_ID}, AcceptanceStatus.ACTIVE),
    ])
    def test_classification(self, payer, expected):
        assert acceptance_status(payer, self.today) == expected


class TestPayerSearch:

    def test_short_query_returns_nothing(self, client):
        response = client.get("/api/patient-booking/payers?q=a")
        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_results_sorted_by_acceptance(self, client):
        response = client.get("/api/patient-booking/payers?q=aetna")

        body = response.json()
        assert body["meta"] == {"total": 2, "query": "aetna"}
        assert [(p["name"], p["acceptance_status"]) for p in body["data"]] == [
            ("Aetna Behavioral", "active"),
            ("Aetna Medicaid", "future"),
        ]

    def test_cash_option_is_offered(self, client):
        response = client.get("/api/patient-booking/payers?q=cash")
        payers = response.json()["data"]
        assert [p["id"] for p in payers] == [CASH_PAYER_ID]
        assert payers[0]["acceptance_status"] == "active"

    def test_payer_lookup_is_public_and_rate_limited(self, client):
        response = client.get("/api/patient-booking/payers?q=blocked")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "60"
        assert response.json()["data"][0]["acceptance_status"] == "not-accepted"


class TestSlotHelpers:

    def test_step_slots_fit_inside_block(self):
        slots = step_slots(date(2025, 6, 2), (time(9), time(11, 30)), 60, "America/Denver")
        assert [s.isoformat() for s, _ in slots] == [
            "2025-06-02T15:00:00+00:00",
            "2025-06-02T16:00:00+00:00",
        ]

    def test_weekly_blocks_use_sunday_zero(self):
        rows = [
            {"day_of_week": 1, "start_time": "09:00:00", "end_time": "12:00:00"},
            {"day_of_week": 1, "start_time": "13:00", "end_time": "15:00",
             "effective_date": "2025-07-01"},
            {"day_of_week": 2, "start_time": "09:00", "end_time": "10:00"},
        ]
        # 2025-06-02 is a Monday
        assert weekly_blocks(rows, date(2025, 6, 2)) == [(time(9), time(12))]

    def test_exceptions(self):
        blocks = [(time(9), time(12))]
        assert apply_exceptions(blocks, [{"exception_type": "unavailable"}]) == []
        assert apply_exceptions(
            blocks, [{"exception_type": "custom_hours", "start_time": "13:00", "end_time": "14:00"}]
        ) == [(time(13), time(14))]
        assert apply_exceptions(blocks, []) == blocks


class TestSlotSearch:

    def search(self, client, **overrides):
        body = {"payer_id": PAYER_ACTIVE, "start_date": DAY.isoformat()}
        body.update(overrides)
        return client.post("/api/patient-booking/slots", json=body)

    def test_direct_and_supervised_slots(self, client):
        response = self.search(client)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_slots"] == 6
        assert data["timezone"] == PRACTICE_TIMEZONE
        assert {p["id"] for p in data["providers"]} == {PROVIDER_DIRECT, PROVIDER_RESIDENT}

        slots = data["slots_by_date"][DAY.isoformat()]
        assert [s["time"] for s in slots if s["provider_id"] == PROVIDER_DIRECT] == ["09:00", "10:00", "11:00"]

        supervised = next(s for s in slots if s["provider_id"] == PROVIDER_RESIDENT)
        assert supervised["via"] == "supervised"
        assert supervised["billing_provider_id"] == PROVIDER_ATTENDING
        assert supervised["rendering_provider_id"] == PROVIDER_RESIDENT
        assert supervised["attending_name"] == "Alex Attending"
        assert supervised["requires_co_visit"] is True

    def test_booked_time_is_removed(self, client, db):
        db.tables["appointments"].append({
            "id": "appt-1",
            "provider_id": PROVIDER_DIRECT,
            "start_time": at(9).isoformat(),
            "end_time": (at(9) + timedelta(minutes=60)).isoformat(),
            "status": "scheduled",
        })
        db.tables["appointments"].append({
            "id": "appt-2",
            "provider_id": PROVIDER_DIRECT,
            "start_time": at(10).isoformat(),
            "end_time": (at(10) + timedelta(minutes=60)).isoformat(),
            "status": "cancelled",
        })

        slots = self.search(client).json()["data"]["slots_by_date"][DAY.isoformat()]
        assert [s["time"] for s in slots if s["provider_id"] == PROVIDER_DIRECT] == ["10:00", "11:00"]

    def test_unavailable_exception_removes_day(self, client, db):
        db.tables["availability_exceptions"].append({
            "provider_id": PROVIDER_DIRECT,
            "exception_date": DAY.isoformat(),
            "exception_type": "unavailable",
            "start_time": None,
            "end_time": None,
        })

        data = self.search(client).json()["data"]
        assert {s["provider_id"] for s in data["slots_by_date"][DAY.isoformat()]} == {PROVIDER_RESIDENT}

    def test_language_filter(self, client):
        data = self.search(client, language="Spanish").json()["data"]
        assert [p["id"] for p in data["providers"]] == [PROVIDER_RESIDENT]

    def test_supervised_path_ends_with_attending_contract(self, client):
        later = date.today() + timedelta(days=50)
        data = self.search(client, start_date=later.isoformat()).json()["data"]
        assert [p["id"] for p in data["providers"]] == [PROVIDER_DIRECT]

    def test_payer_without_providers(self, client):
        data = self.search(client, payer_id=PAYER_EMPTY).json()["data"]
        assert data["total_slots"] == 0
        assert data["message"] == "No bookable providers found for this insurance"

    def test_cash_reaches_every_scheduled_provider(self, client):
        data = self.search(client, payer_id=CASH_PAYER_ID).json()["data"]
        assert {p["id"] for p in data["providers"]} == {PROVIDER_DIRECT, PROVIDER_RESIDENT}
        assert all(s["via"] == "direct" for s in data["slots_by_date"][DAY.isoformat()])

    @pytest.mark.parametrize("overrides", [
        {"end_date": (DAY + timedelta(days=31)).isoformat()},
        {"end_date": (DAY - timedelta(days=1)).isoformat()},
        {"duration_minutes": 10},
    ])
    def test_bad_search_is_400(self, client, overrides):
        response = self.search(client, **overrides)
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestAppointments:

    def book(self, client, **kwargs):
        return client.post("/api/patient-booking/appointments", json=appointment_payload(**kwargs))

    def test_direct_booking(self, client, db):
        response = self.book(client)

        assert response.status_code == 201
        data = response.json()["data"]
        assert len(data["confirmation_code"]) == 6
        assert data["via"] == "direct"
        assert data["appointment"]["billing_provider_id"] == PROVIDER_DIRECT
        assert data["appointment"]["status"] == "scheduled"

        patient = db.rows("patients")[0]
        assert patient["email"] == "jamie.rivera@example.com"
        assert patient["phone"] == "5555550134"
        assert "appointment_created" in [a["action"] for a in db.rows("scheduler_audit_logs")]

    def test_supervised_booking_bills_attending(self, client):
        response = self.book(client, provider_id=PROVIDER_RESIDENT)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["via"] == "supervised"
        assert data["requires_co_visit"] is True
        assert data["appointment"]["billing_provider_id"] == PROVIDER_ATTENDING
        assert data["appointment"]["rendering_provider_id"] == PROVIDER_RESIDENT

    def test_cash_booking_stores_no_payer(self, client):
        response = self.book(client, provider_id=PROVIDER_IDLE, payer_id=CASH_PAYER_ID)
        assert response.status_code == 201
        assert response.json()["data"]["appointment"]["payer_id"] is None

    def test_idempotent_replay(self, client, db):
        first = self.book(client, idempotency_key="booking-abc")
        second = self.book(client, idempotency_key="booking-abc")

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["message"] == "Appointment already booked"
        assert second.json()["data"]["confirmation_code"] == first.json()["data"]["confirmation_code"]
        assert len(db.rows("appointments")) == 1

    def test_not_bookable_is_422(self, client):
        response = self.book(client, provider_id=PROVIDER_IDLE)
        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_unknown_provider_is_404(self, client):
        response = self.book(client, provider_id="99999999-9999-4999-8999-999999999999")
        assert response.status_code == 404

    def test_overlap_is_409(self, client):
        assert self.book(client).status_code == 201
        response = self.book(client)
        assert response.status_code == 409
        assert response.json()["error"] == "The selected time is no longer available"

    def test_patient_is_reused(self, client, db):
        self.book(client, hour=9)
        self.book(client, hour=11)

        assert len(db.rows("patients")) == 1
        assert len({a["patient_id"] for a in db.rows("appointments")}) == 1

    @pytest.mark.parametrize("overrides", [
        {"provider_id": "not-a-uuid"},
        {"payer_id": "not-a-uuid"},
        {"duration_minutes": 30},
        {"start_time": (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()},
        {"booking_scenario": "case-manager"},
        {"referral_code": "bad code!"},
    ])
    def test_invalid_request_is_400(self, client, overrides):
        response = self.book(client, **overrides)
        assert response.status_code == 400
        assert "errors" in response.json()["details"]

    @pytest.mark.parametrize("patient_overrides", [
        {"email": "not-an-email"},
        {"phone": "12345"},
        {"first_name": "J4mie"},
        {"date_of_birth": (date.today() + timedelta(days=1)).isoformat()},
    ])
    def test_invalid_patient_is_400(self, client, patient_overrides):
        payload = appointment_payload()
        payload["patient"].update(patient_overrides)
        response = client.post("/api/patient-booking/appointments", json=payload)
        assert response.status_code == 400
