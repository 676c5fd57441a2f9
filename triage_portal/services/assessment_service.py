"""Assessment service: run, persist and look up patient risk assessments.

Stored assessments are the audit trail. They are inserted once and never
updated afterwards.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

from triage_portal.database import get_database, ASSESSMENTS_COLLECTION
from triage_portal.services.explanation_client import elaborate_recommendation
from triage_portal.services.features import VitalsSnapshot, celsius_to_fahrenheit
from triage_portal.services.fusion import RiskAssessment, assess_risk
from triage_portal.services.predictor import RiskClassifier
from triage_portal.services.risk_rules import RiskTier

logger = logging.getLogger(__name__)


def build_assessment_record(
    patient_id: str,
    snapshot: VitalsSnapshot,
    assessment: RiskAssessment,
    elaboration: Dict[str, Any],
    temperature_f: Optional[float] = None,
) -> Dict[str, Any]:
    """Shape a fused assessment into the stored record."""
    if temperature_f is None:
        temperature_f = celsius_to_fahrenheit(snapshot.temperature_c)

    return {
        "patientId": patient_id,
        "age": snapshot.age,
        "sex": snapshot.sex,
        "systolicBP": snapshot.systolic_bp,
        "diastolicBP": snapshot.diastolic_bp,
        "heartRate": snapshot.heart_rate,
        "temperatureF": temperature_f,
        "symptoms": sorted(snapshot.symptoms),
        "conditions": sorted(snapshot.conditions),
        "predictedTier": assessment.tier.value,
        "confidence": assessment.confidence,
        "prediction": assessment.prediction,
        "contributingFactors": list(assessment.factors),
        "factors": [entry.to_dict() for entry in assessment.breakdown],
        "recommendation": elaboration["recommendation"],
        "specialist": assessment.specialist.value,
        "source": assessment.source,
        "ruleScore": assessment.rule_score,
        "probabilities": assessment.probabilities,
        "precautions": elaboration.get("precautions", []),
        "treatmentPlan": elaboration.get("treatmentPlan", []),
        "timestamp": datetime.now(timezone.utc),
    }


async def create_risk_assessment(
    patient_id: str,
    snapshot: VitalsSnapshot,
    classifier: Optional[RiskClassifier] = None,
    temperature_f: Optional[float] = None,
) -> Dict[str, Any]:
    """Assess a snapshot, elaborate the recommendation and store the record."""
    assessment = await assess_risk(snapshot, classifier)
    elaboration = await elaborate_recommendation(snapshot, assessment)
    record = build_assessment_record(
        patient_id, snapshot, assessment, elaboration, temperature_f=temperature_f
    )

    database = get_database()
    insertion_result = await database[ASSESSMENTS_COLLECTION].insert_one(record)
    record["_id"] = insertion_result.inserted_id

    logger.info(
        "Stored %s risk assessment for patient %s (source %s, confidence %s)",
        assessment.tier.value,
        patient_id,
        assessment.source,
        assessment.confidence,
    )
    return record


async def list_risk_assessments(patient_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Return a patient's stored assessments, newest first."""
    database = get_database()
    return (
        await database[ASSESSMENTS_COLLECTION]
        .find({"patientId": patient_id})
        .sort("timestamp", -1)
        .to_list(length=limit)
    )


async def get_latest_risk_tier(patient_id: str) -> RiskTier:
    """Tier of the patient's most recent assessment, Low when there is none."""
    database = get_database()
    latest = await database[ASSESSMENTS_COLLECTION].find_one(
        {"patientId": patient_id}, sort=[("timestamp", -1)]
    )
    if not latest:
        return RiskTier.LOW
    return RiskTier.from_label(latest.get("predictedTier"))
