"""Client module for the external generative treatment-plan service."""

from typing import Any, Dict, List, Optional
import logging
import os

import httpx
from triage_portal.config import settings  # global settings instance
from triage_portal.services.features import VitalsSnapshot, celsius_to_fahrenheit
from triage_portal.services.fusion import RiskAssessment

logger = logging.getLogger(__name__)


def get_explanation_service_base_url() -> Optional[str]:
    """
    Determine the base URL for the explanation service.

    Returns
    -------
    Optional[str]
        The URL to use for HTTP requests to the explanation service, or None
        when no service is configured. It checks in order: environment
        variable, then config settings.
    """
    environment_url = os.getenv("EXPLANATION_SERVICE_URL")
    if environment_url:
        return environment_url.rstrip("/")

    configured_url = getattr(settings, "explanation_service_url", None)
    if configured_url:
        return configured_url.rstrip("/")

    return None


async def request_treatment_plan(
    snapshot: VitalsSnapshot,
    assessment: RiskAssessment,
    base_url: str,
) -> Dict[str, Any]:
    """
    Request a free-text treatment plan for an assessed patient.

    Parameters
    ----------
    snapshot : VitalsSnapshot
        The vitals that were assessed.
    assessment : RiskAssessment
        The fused assessment to elaborate on.
    base_url : str
        Explanation service base URL.

    Returns
    -------
    Dict[str, Any]
        JSON response from the service with `recommendation`, `precautions`
        and `treatmentPlan`.
    """
    request_body = {
        "vitals": {
            "age": snapshot.age,
            "sex": snapshot.sex,
            "systolicBP": snapshot.systolic_bp,
            "diastolicBP": snapshot.diastolic_bp,
            "heartRate": snapshot.heart_rate,
            "temperatureF": celsius_to_fahrenheit(snapshot.temperature_c),
        },
        "symptoms": sorted(snapshot.symptoms),
        "conditions": sorted(snapshot.conditions),
        "riskTier": assessment.tier.value,
        "factors": [entry.to_dict() for entry in assessment.breakdown],
        "specialist": assessment.specialist.value,
    }

    async with httpx.AsyncClient() as http_client:
        response = await http_client.post(
            f"{base_url}/treatment-plan",
            json=request_body,
            timeout=settings.explanation_timeout_seconds,
        )
        response.raise_for_status()
        return response.json()


async def elaborate_recommendation(
    snapshot: VitalsSnapshot, assessment: RiskAssessment
) -> Dict[str, Any]:
    """
    Return recommendation text and a treatment plan for an assessment.

    The deterministic recommendation from the rule engine is used whenever
    the service is not configured, fails, or answers with an unusable body.
    """
    fallback: Dict[str, Any] = {
        "recommendation": assessment.recommendation,
        "precautions": [],
        "treatmentPlan": [],
        "generated": False,
    }
    base_url = get_explanation_service_base_url()
    if base_url is None:
        return fallback

    try:
        plan = await request_treatment_plan(snapshot, assessment, base_url)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Explanation service unavailable, using rule text: %s", exc)
        return fallback

    if not isinstance(plan, dict) or not plan.get("recommendation"):
        logger.warning("Explanation service returned no recommendation")
        return fallback

    return {
        "recommendation": str(plan["recommendation"]),
        "precautions": _as_text_list(plan.get("precautions")),
        "treatmentPlan": _as_text_list(plan.get("treatmentPlan")),
        "generated": True,
    }


def _as_text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]
