"""Main FastAPI application defining routes and lifecycle for the Triage
Portal API: risk assessments, slot booking and reschedule notifications.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from bson import ObjectId
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from .config import settings
from .database import close_mongo_client, ensure_indexes, get_mongo_client
from .services.assessment_service import create_risk_assessment, list_risk_assessments
from .services.booking_service import book_appointment
from .services.features import VitalsSnapshot, VitalsValidationError
from .services.notification_service import (
    NotificationNotFoundError,
    list_notifications,
    mark_notification_read,
)
from .services.predictor import RiskClassifier
from .services.risk_rules import RiskTier
from .services.slot_service import (
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
    SlotFullError,
    UnknownSlotError,
    cancel_appointment,
    complete_appointment,
    get_slot_availability,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: connect MongoDB and train the risk classifier."""
    logging.basicConfig(level=settings.log_level)
    get_mongo_client()
    try:
        await ensure_indexes()
    except PyMongoError as exc:
        logger.warning("Could not ensure MongoDB indexes: %s", exc)

    risk_classifier = RiskClassifier()
    app.state.risk_classifier = risk_classifier
    risk_classifier.start_training()
    yield
    await risk_classifier.cancel_training()
    close_mongo_client()


api_application = FastAPI(lifespan=lifespan, title="Triage Portal API")


class AssessmentRequest(BaseModel):
    """Request schema for a risk assessment. Temperature is in Fahrenheit."""

    patient_id: str
    age: int = Field(..., ge=0, le=120)
    sex: str
    systolic_bp: float = Field(..., gt=0)
    diastolic_bp: float = Field(..., gt=0)
    heart_rate: float = Field(..., gt=0)
    temperature_f: float = Field(..., gt=0)
    symptoms: List[str] = []
    conditions: List[str] = []
    other_condition: Optional[str] = None

    def to_snapshot(self) -> VitalsSnapshot:
        conditions = list(self.conditions)
        if self.other_condition and self.other_condition.strip():
            conditions.append(self.other_condition.strip())
        return VitalsSnapshot.from_fahrenheit(
            age=self.age,
            sex=self.sex,
            systolic_bp=self.systolic_bp,
            diastolic_bp=self.diastolic_bp,
            heart_rate=self.heart_rate,
            temperature_f=self.temperature_f,
            symptoms=self.symptoms,
            conditions=conditions,
        )


class BookingRequest(BaseModel):
    """Request schema for booking an appointment slot."""

    patient_id: str
    provider_id: str
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    slot_label: str
    reason: str = Field(..., min_length=1)
    risk_tier: Optional[RiskTier] = None
    patient_name: Optional[str] = None


def serialize_document(document: dict) -> dict:
    """Convert a MongoDB document into JSON-safe output with a string `id`."""
    converted = dict(document)
    if "_id" in converted:
        converted["id"] = str(converted.pop("_id"))
    return jsonable_encoder(converted, custom_encoder={ObjectId: str})


def get_risk_classifier(request: Request) -> Optional[RiskClassifier]:
    return getattr(request.app.state, "risk_classifier", None)


@api_application.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint reporting the classifier lifecycle."""
    risk_classifier = get_risk_classifier(request)
    return {
        "status": "ok",
        "classifier": (
            risk_classifier.status() if risk_classifier else {"state": "uninitialized"}
        ),
    }


@api_application.post("/assessments", status_code=201)
async def create_assessment(payload: AssessmentRequest, request: Request):
    """Assess a patient's vitals and store the result."""
    try:
        record = await create_risk_assessment(
            patient_id=payload.patient_id,
            snapshot=payload.to_snapshot(),
            classifier=get_risk_classifier(request),
            temperature_f=payload.temperature_f,
        )
    except VitalsValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return serialize_document(record)


@api_application.get("/patients/{patient_id}/assessments")
async def patient_assessments(patient_id: str):
    """Return a patient's assessment history, newest first."""
    records = await list_risk_assessments(patient_id)
    return [serialize_document(record) for record in records]


@api_application.get("/providers/{provider_id}/slots")
async def provider_slots(provider_id: str, date: str):
    """Return availability of each slot for a provider on a day."""
    return await get_slot_availability(provider_id, date)


@api_application.post("/appointments", status_code=201)
async def create_appointment(payload: BookingRequest):
    """Book a slot and run priority rescheduling for it."""
    try:
        appointment = await book_appointment(
            patient_id=payload.patient_id,
            provider_id=payload.provider_id,
            date=payload.date,
            slot_label=payload.slot_label,
            reason=payload.reason,
            risk_tier=payload.risk_tier,
            patient_name=payload.patient_name,
        )
    except SlotFullError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except UnknownSlotError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return serialize_document(appointment)


@api_application.post("/appointments/{appointment_id}/complete")
async def appointment_complete(appointment_id: str):
    """Mark an appointment completed."""
    try:
        appointment = await complete_appointment(appointment_id)
    except AppointmentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return serialize_document(appointment)


@api_application.post("/appointments/{appointment_id}/cancel")
async def appointment_cancel(appointment_id: str):
    """Cancel a booked appointment."""
    try:
        appointment = await cancel_appointment(appointment_id)
    except AppointmentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return serialize_document(appointment)


@api_application.get("/patients/{patient_id}/notifications")
async def patient_notifications(patient_id: str, unread_only: bool = False):
    """Return a patient's notifications, newest first."""
    notifications = await list_notifications(patient_id, unread_only=unread_only)
    return [serialize_document(notification) for notification in notifications]


@api_application.post("/notifications/{notification_id}/read")
async def notification_read(notification_id: str):
    """Mark a notification as read."""
    try:
        await mark_notification_read(notification_id)
    except NotificationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Notification not found") from exc
    return {"id": notification_id, "read": True}
