"""Priority rescheduling of lower-risk patients out of crowded slots.

After each booking the slot just booked is inspected. Once it holds enough
High-risk patients, every other occupant is moved to the first later slot
that is below the emergency threshold, and told about it.
"""

from dataclasses import dataclass
from functools import reduce
from typing import Any, Dict, List, Optional, Sequence, Tuple
from datetime import datetime, timezone
import logging

from triage_portal.config import settings, SLOT_LABELS
from triage_portal.database import (
    get_database,
    APPOINTMENTS_COLLECTION,
    NOTIFICATIONS_COLLECTION,
)
from triage_portal.services.risk_rules import RiskTier
from triage_portal.services.slot_service import (
    get_day_occupancy,
    list_slot_appointments,
    slot_index,
)

logger = logging.getLogger(__name__)

RESCHEDULED_KIND = "appointment_rescheduled"


@dataclass(frozen=True)
class BumpAssignment:
    """Where one bump candidate ends up; `new_slot` is None when no slot had room."""

    appointment: Dict[str, Any]
    old_slot: str
    new_slot: Optional[str]


def is_high_risk(appointment: Dict[str, Any]) -> bool:
    return RiskTier.from_label(appointment.get("riskTier")) is RiskTier.HIGH


def find_next_open_slot(
    occupancy: Dict[str, int], after_slot: str, threshold: int
) -> Optional[str]:
    """First slot after `after_slot` whose occupancy is below `threshold`."""
    for label in SLOT_LABELS[slot_index(after_slot) + 1:]:
        if occupancy.get(label, 0) < threshold:
            return label
    return None


def plan_bumps(
    candidates: Sequence[Dict[str, Any]],
    occupancy: Dict[str, int],
    from_slot: str,
    threshold: int,
) -> Tuple[List[BumpAssignment], Dict[str, int]]:
    """Assign candidates to later slots in order.

    The occupancy map is carried through the fold, so a slot picked for one
    candidate counts as fuller for every candidate after it. The caller's map
    is not modified.
    """

    def assign(state, candidate):
        assignments, counts = state
        new_slot = find_next_open_slot(counts, from_slot, threshold)
        if new_slot is not None:
            counts = {**counts, new_slot: counts.get(new_slot, 0) + 1}
        return assignments + [BumpAssignment(candidate, from_slot, new_slot)], counts

    return reduce(assign, candidates, ([], dict(occupancy)))


def build_reschedule_message(
    patient_name: Optional[str],
    provider_name: Optional[str],
    date: str,
    old_slot: str,
    new_slot: str,
) -> str:
    return (
        f"Dear {patient_name or 'Patient'}, your appointment with "
        f"Dr. {provider_name or 'your doctor'} on {date} has been moved from "
        f"{old_slot} to {new_slot} to make room for urgent high-risk cases. "
        "Thank you for your understanding."
    )


async def _apply_assignment(
    assignment: BumpAssignment, date: str, provider_name: Optional[str]
) -> Dict[str, Any]:
    database = get_database()
    appointment = assignment.appointment
    now = datetime.now(timezone.utc)

    await database[APPOINTMENTS_COLLECTION].update_one(
        {"_id": appointment["_id"]},
        {
            "$set": {
                "slotLabel": assignment.new_slot,
                "originalSlotLabel": assignment.old_slot,
                "rescheduledAt": now,
            }
        },
    )

    provider_name = provider_name or appointment.get("providerName")
    notification_document: Dict[str, Any] = {
        "recipientId": appointment.get("patientId"),
        "appointmentId": appointment["_id"],
        "kind": RESCHEDULED_KIND,
        "oldSlot": assignment.old_slot,
        "newSlot": assignment.new_slot,
        "date": date,
        "providerName": provider_name,
        "message": build_reschedule_message(
            appointment.get("patientName"),
            provider_name,
            date,
            assignment.old_slot,
            assignment.new_slot,
        ),
        "read": False,
        "createdAt": now,
    }
    insertion_result = await database[NOTIFICATIONS_COLLECTION].insert_one(
        notification_document
    )
    notification_document["_id"] = insertion_result.inserted_id
    return notification_document


async def reschedule_slot(
    provider_id: str,
    date: str,
    slot_label: str,
    provider_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Bump non-High occupants out of a slot holding enough High-risk patients.

    Returns the notifications that were created. Candidates with no later
    room are left in place.
    """
    slot_appointments = await list_slot_appointments(provider_id, date, slot_label)
    high_risk_count = sum(1 for appt in slot_appointments if is_high_risk(appt))
    if high_risk_count < settings.high_risk_bump_trigger:
        return []

    candidates = [appt for appt in slot_appointments if not is_high_risk(appt)]
    if not candidates:
        return []

    occupancy = await get_day_occupancy(provider_id, date)
    assignments, _ = plan_bumps(
        candidates, occupancy, slot_label, settings.emergency_slot_threshold
    )

    notifications = []
    for assignment in assignments:
        if assignment.new_slot is None:
            logger.debug(
                "No later slot with room for appointment %s on %s",
                assignment.appointment.get("_id"),
                date,
            )
            continue
        notifications.append(await _apply_assignment(assignment, date, provider_name))
        logger.info(
            "Rescheduled appointment %s from %s to %s on %s",
            assignment.appointment.get("_id"),
            assignment.old_slot,
            assignment.new_slot,
            date,
        )
    return notifications
