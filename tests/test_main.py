# tests/test_main.py
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from triage_portal.main import serialize_document
from triage_portal.services.risk_rules import RiskTier
from triage_portal.services.slot_service import (
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
)

ASSESSMENT_BODY = {
    "patient_id": "pat-1",
    "age": 45,
    "sex": "Male",
    "systolic_bp": 120,
    "diastolic_bp": 80,
    "heart_rate": 70,
    "temperature_f": 98.6,
    "symptoms": [],
    "conditions": [],
}

BOOKING_BODY = {
    "patient_id": "pat-1",
    "provider_id": "prov-1",
    "date": "2025-12-01",
    "slot_label": "10:00 AM",
    "reason": "Check-up",
}


def test_health_reports_classifier_state(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "classifier": {"state": "uninitialized"}}


def test_serialize_document_stringifies_ids():
    appointment_id = ObjectId()
    serialized = serialize_document(
        {
            "_id": appointment_id,
            "appointmentId": appointment_id,
            "createdAt": datetime(2025, 12, 1, tzinfo=timezone.utc),
        }
    )
    assert serialized["id"] == str(appointment_id)
    assert serialized["appointmentId"] == str(appointment_id)
    assert "_id" not in serialized
    assert serialized["createdAt"].startswith("2025-12-01")


def test_assessment_of_normal_vitals(client, fake_db, monkeypatch):
    monkeypatch.delenv("EXPLANATION_SERVICE_URL", raising=False)
    monkeypatch.setattr(
        "triage_portal.services.explanation_client.get_explanation_service_base_url",
        lambda: None,
    )

    response = client.post("/assessments", json=ASSESSMENT_BODY)

    assert response.status_code == 201
    body = response.json()
    assert body["predictedTier"] == "Low"
    assert body["confidence"] == 0
    assert body["factors"] == []
    assert body["temperatureF"] == 98.6
    assert body["sex"] == "male"
    assert body["source"] == "Rule-Based"
    assert "id" in body
    assert len(fake_db["risk_assessments"].documents) == 1


def test_assessment_passes_other_condition(client, monkeypatch):
    mock_create = AsyncMock(return_value={"_id": ObjectId(), "predictedTier": "Low"})
    monkeypatch.setattr("triage_portal.main.create_risk_assessment", mock_create)

    response = client.post(
        "/assessments",
        json={**ASSESSMENT_BODY, "conditions": ["Diabetes"], "other_condition": " Gout "},
    )

    assert response.status_code == 201
    snapshot = mock_create.await_args.kwargs["snapshot"]
    assert snapshot.conditions == frozenset({"Diabetes", "Gout"})
    assert snapshot.temperature_c == pytest.approx(37.0)


def test_assessment_rejects_implausible_vitals(client, fake_db):
    response = client.post("/assessments", json={**ASSESSMENT_BODY, "heart_rate": 400})
    assert response.status_code == 422
    assert "heart_rate" in response.json()["detail"]
    assert fake_db["risk_assessments"].documents == []


def test_assessment_rejects_inverted_pressure(client, fake_db):
    response = client.post(
        "/assessments", json={**ASSESSMENT_BODY, "systolic_bp": 80, "diastolic_bp": 90}
    )
    assert response.status_code == 422


def test_assessment_schema_validation(client):
    response = client.post("/assessments", json={**ASSESSMENT_BODY, "age": 150})
    assert response.status_code == 422


def test_assessment_history(client, monkeypatch):
    records = [
        {"_id": ObjectId(), "predictedTier": "High"},
        {"_id": ObjectId(), "predictedTier": "Low"},
    ]
    monkeypatch.setattr(
        "triage_portal.main.list_risk_assessments", AsyncMock(return_value=records)
    )
    response = client.get("/patients/pat-1/assessments")
    assert response.status_code == 200
    assert [record["predictedTier"] for record in response.json()] == ["High", "Low"]


def test_provider_slots(client, fake_db):
    response = client.get("/providers/prov-1/slots", params={"date": "2025-12-01"})
    assert response.status_code == 200
    slots = response.json()
    assert len(slots) == 17
    assert slots[0] == {"slotLabel": "10:00 AM", "booked": 0, "remaining": 3, "full": False}


def test_book_appointment(client, fake_db):
    response = client.post("/appointments", json={**BOOKING_BODY, "risk_tier": "High"})
    assert response.status_code == 201
    body = response.json()
    assert body["riskTier"] == "High"
    assert body["status"] == "booked"
    assert body["rescheduledCount"] == 0
    assert ObjectId.is_valid(body["id"])


def test_book_full_slot_conflict(client, fake_db):
    for number in range(3):
        response = client.post(
            "/appointments", json={**BOOKING_BODY, "patient_id": f"pat-{number}"}
        )
        assert response.status_code == 201

    response = client.post("/appointments", json={**BOOKING_BODY, "patient_id": "pat-9"})
    assert response.status_code == 409


def test_book_unknown_slot(client, fake_db):
    response = client.post("/appointments", json={**BOOKING_BODY, "slot_label": "09:00 AM"})
    assert response.status_code == 422
    assert fake_db["appointments"].documents == []


def test_book_rejects_malformed_date(client):
    response = client.post("/appointments", json={**BOOKING_BODY, "date": "01/12/2025"})
    assert response.status_code == 422


def test_book_passes_tier_to_service(client, monkeypatch):
    mock_book = AsyncMock(return_value={"_id": ObjectId(), "riskTier": "Medium"})
    monkeypatch.setattr("triage_portal.main.book_appointment", mock_book)

    response = client.post("/appointments", json={**BOOKING_BODY, "risk_tier": "Medium"})

    assert response.status_code == 201
    assert mock_book.await_args.kwargs["risk_tier"] is RiskTier.MEDIUM


def test_complete_and_cancel_flow(client, fake_db):
    booked = client.post("/appointments", json=BOOKING_BODY).json()

    response = client.post(f"/appointments/{booked['id']}/complete")
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = client.post(f"/appointments/{booked['id']}/cancel")
    assert response.status_code == 409


def test_complete_unknown_appointment(client, monkeypatch):
    monkeypatch.setattr(
        "triage_portal.main.complete_appointment",
        AsyncMock(side_effect=AppointmentNotFoundError("appointment x not found")),
    )
    response = client.post(f"/appointments/{ObjectId()}/complete")
    assert response.status_code == 404


def test_cancel_maps_invalid_transition(client, monkeypatch):
    monkeypatch.setattr(
        "triage_portal.main.cancel_appointment",
        AsyncMock(side_effect=InvalidStatusTransitionError("already cancelled")),
    )
    response = client.post(f"/appointments/{ObjectId()}/cancel")
    assert response.status_code == 409
    assert response.json()["detail"] == "already cancelled"


def test_rescheduled_patient_sees_notification(client, fake_db):
    client.post("/appointments", json={**BOOKING_BODY, "slot_label": "11:00 AM", "risk_tier": "High"})
    client.post(
        "/appointments",
        json={**BOOKING_BODY, "patient_id": "pat-2", "slot_label": "11:00 AM", "risk_tier": "Low"},
    )
    client.post(
        "/appointments",
        json={**BOOKING_BODY, "patient_id": "pat-3", "slot_label": "11:00 AM", "risk_tier": "High"},
    )

    response = client.get("/patients/pat-2/notifications", params={"unread_only": True})
    assert response.status_code == 200
    notifications = response.json()
    assert len(notifications) == 1
    assert notifications[0]["newSlot"] == "11:30 AM"

    notification_id = notifications[0]["id"]
    response = client.post(f"/notifications/{notification_id}/read")
    assert response.json() == {"id": notification_id, "read": True}

    response = client.get("/patients/pat-2/notifications", params={"unread_only": True})
    assert response.json() == []


def test_mark_unknown_notification(client, fake_db):
    response = client.post(f"/notifications/{ObjectId()}/read")
    assert response.status_code == 404
    assert response.json()["detail"] == "Notification not found"
