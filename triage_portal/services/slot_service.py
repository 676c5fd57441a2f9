"""Slot service for per-provider daily slot occupancy, booking and status changes.

Occupancy is read and then written with no locking, so two concurrent
bookings can both see room in the same slot and both succeed.
"""

from collections import Counter
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

from bson import ObjectId
from bson.errors import InvalidId
from triage_portal.config import settings, SLOT_LABELS
from triage_portal.database import get_database, APPOINTMENTS_COLLECTION
from triage_portal.services.risk_rules import RiskTier

logger = logging.getLogger(__name__)

STATUS_BOOKED = "booked"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


class SlotFullError(Exception):
    """Raised when a slot is already at capacity."""


class UnknownSlotError(ValueError):
    """Raised for slot labels outside the fixed daily schedule."""


class AppointmentNotFoundError(LookupError):
    """Raised when an appointment id does not exist."""


class InvalidStatusTransitionError(ValueError):
    """Raised when an appointment is not in a state that allows the change."""


def slot_index(slot_label: str) -> int:
    """Position of `slot_label` in the daily schedule."""
    try:
        return SLOT_LABELS.index(slot_label)
    except ValueError as exc:
        raise UnknownSlotError(f"unknown slot label: {slot_label!r}") from exc


async def count_slot_occupancy(provider_id: str, date: str, slot_label: str) -> int:
    """Number of booked appointments in one slot."""
    database = get_database()
    return await database[APPOINTMENTS_COLLECTION].count_documents(
        {
            "providerId": provider_id,
            "date": date,
            "slotLabel": slot_label,
            "status": STATUS_BOOKED,
        }
    )


async def list_slot_appointments(
    provider_id: str, date: str, slot_label: str
) -> List[Dict[str, Any]]:
    """Booked appointments in one slot, in booking order."""
    database = get_database()
    return (
        await database[APPOINTMENTS_COLLECTION]
        .find(
            {
                "providerId": provider_id,
                "date": date,
                "slotLabel": slot_label,
                "status": STATUS_BOOKED,
            }
        )
        .sort("createdAt", 1)
        .to_list(length=1000)
    )


async def get_day_occupancy(provider_id: str, date: str) -> Dict[str, int]:
    """Booked count per slot label for one provider and day."""
    database = get_database()
    day_appointments = await (
        database[APPOINTMENTS_COLLECTION]
        .find({"providerId": provider_id, "date": date, "status": STATUS_BOOKED})
        .to_list(length=1000)
    )
    occupancy = Counter(appt.get("slotLabel") for appt in day_appointments)
    return {label: occupancy.get(label, 0) for label in SLOT_LABELS}


async def get_slot_availability(provider_id: str, date: str) -> List[Dict[str, Any]]:
    """Availability of every slot of the day, in schedule order."""
    occupancy = await get_day_occupancy(provider_id, date)
    capacity = settings.slot_capacity
    return [
        {
            "slotLabel": label,
            "booked": occupancy[label],
            "remaining": max(capacity - occupancy[label], 0),
            "full": occupancy[label] >= capacity,
        }
        for label in SLOT_LABELS
    ]


async def reserve_slot(
    patient_id: str,
    provider_id: str,
    date: str,
    slot_label: str,
    risk_tier: RiskTier,
    reason: str,
    patient_name: Optional[str] = None,
    provider_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a booked appointment if the slot still has room."""
    slot_index(slot_label)

    occupancy = await count_slot_occupancy(provider_id, date, slot_label)
    if occupancy >= settings.slot_capacity:
        raise SlotFullError(
            f"slot {slot_label} on {date} is full ({occupancy}/{settings.slot_capacity})"
        )

    appointment_document: Dict[str, Any] = {
        "patientId": patient_id,
        "patientName": patient_name,
        "providerId": provider_id,
        "providerName": provider_name,
        "date": date,
        "slotLabel": slot_label,
        "riskTier": risk_tier.value,
        "status": STATUS_BOOKED,
        "reason": reason,
        "createdAt": datetime.now(timezone.utc),
    }
    database = get_database()
    insertion_result = await database[APPOINTMENTS_COLLECTION].insert_one(
        appointment_document
    )
    appointment_document["_id"] = insertion_result.inserted_id

    logger.info(
        "Booked %s-risk patient %s into %s %s with provider %s (%s/%s)",
        risk_tier.value,
        patient_id,
        date,
        slot_label,
        provider_id,
        occupancy + 1,
        settings.slot_capacity,
    )
    return appointment_document


async def _transition_appointment(appointment_id: str, new_status: str) -> Dict[str, Any]:
    database = get_database()
    collection = database[APPOINTMENTS_COLLECTION]
    try:
        appointment_object_id = ObjectId(appointment_id)
    except InvalidId as exc:
        raise AppointmentNotFoundError(f"appointment {appointment_id} not found") from exc

    appointment_document = await collection.find_one({"_id": appointment_object_id})
    if not appointment_document:
        raise AppointmentNotFoundError(f"appointment {appointment_id} not found")
    if appointment_document.get("status") != STATUS_BOOKED:
        raise InvalidStatusTransitionError(
            f"cannot mark a {appointment_document.get('status')} appointment {new_status}"
        )

    await collection.update_one(
        {"_id": appointment_object_id, "status": STATUS_BOOKED},
        {"$set": {"status": new_status, "updatedAt": datetime.now(timezone.utc)}},
    )
    appointment_document["status"] = new_status
    logger.info("Appointment %s marked %s", appointment_id, new_status)
    return appointment_document


async def complete_appointment(appointment_id: str) -> Dict[str, Any]:
    """Mark a booked appointment completed."""
    return await _transition_appointment(appointment_id, STATUS_COMPLETED)


async def cancel_appointment(appointment_id: str) -> Dict[str, Any]:
    """Mark a booked appointment cancelled, freeing its place in the slot."""
    return await _transition_appointment(appointment_id, STATUS_CANCELLED)
