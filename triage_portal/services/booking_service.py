"""Booking flow: reserve a slot, then run the priority rescheduler once."""

from typing import Any, Dict, Optional
import logging

from triage_portal.database import get_database, PROVIDERS_COLLECTION
from triage_portal.services.assessment_service import get_latest_risk_tier
from triage_portal.services.reschedule_service import reschedule_slot
from triage_portal.services.risk_rules import RiskTier
from triage_portal.services.slot_service import reserve_slot

logger = logging.getLogger(__name__)


async def get_provider_name(provider_id: str) -> Optional[str]:
    """Display name of a provider, if the provider is known."""
    database = get_database()
    provider_document = await database[PROVIDERS_COLLECTION].find_one(
        {"providerId": provider_id}
    )
    if not provider_document:
        return None
    return provider_document.get("name")


async def book_appointment(
    patient_id: str,
    provider_id: str,
    date: str,
    slot_label: str,
    reason: str,
    risk_tier: Optional[RiskTier] = None,
    patient_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Book an appointment and rebalance the slot by risk priority.

    The risk tier defaults to the patient's latest assessment. Store errors
    while booking propagate to the caller; any error in the rescheduling pass
    is logged and the booking stands.
    """
    if risk_tier is None:
        risk_tier = await get_latest_risk_tier(patient_id)
    provider_name = await get_provider_name(provider_id)

    appointment_document = await reserve_slot(
        patient_id=patient_id,
        provider_id=provider_id,
        date=date,
        slot_label=slot_label,
        risk_tier=risk_tier,
        reason=reason,
        patient_name=patient_name,
        provider_name=provider_name,
    )

    try:
        notifications = await reschedule_slot(provider_id, date, slot_label, provider_name)
    except Exception:  # pylint: disable=broad-except
        logger.exception(
            "Priority rescheduling of %s %s failed (booking kept)", date, slot_label
        )
        notifications = []

    appointment_document["rescheduledCount"] = len(notifications)
    return appointment_document
