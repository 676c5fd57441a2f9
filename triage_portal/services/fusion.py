"""Fusion of the rule engine and the trained classifier into one assessment."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config import settings
from .features import VitalsSnapshot, encode_features, validate_vitals
from .predictor import ClassifierPrediction, ClassifierUnavailableError, RiskClassifier
from .risk_rules import FactorWeight, RiskTier, RuleResult, Specialist, score_vitals

logger = logging.getLogger(__name__)

SOURCE_CLASSIFIER = "Neural-Network"
SOURCE_RULE_OVERRIDE = "Rule-Override"
SOURCE_RULES = "Rule-Based"

SAFETY_CONFIDENCE_FLOOR = 85

CLASSIFIER_PREDICTIONS = {
    RiskTier.HIGH: "High Health Risk Detected (AI)",
    RiskTier.MEDIUM: "Moderate Health Concern (AI)",
    RiskTier.LOW: "Healthy / Normal (AI)",
}


@dataclass(frozen=True)
class RiskAssessment:
    """Final, immutable result of one risk assessment."""

    tier: RiskTier
    confidence: int
    prediction: str
    factors: Tuple[str, ...]
    breakdown: Tuple[FactorWeight, ...]
    recommendation: str
    specialist: Specialist
    source: str
    rule_score: int
    probabilities: Optional[Dict[str, float]] = None


def fuse(
    rule_result: RuleResult, prediction: Optional[ClassifierPrediction]
) -> RiskAssessment:
    """Combine the two engines.

    The classifier decides tier and confidence; the rule engine always supplies
    the explanation. A rule-engine High can never be downgraded: the tier is
    forced to High and confidence floored at 85, with or without a classifier.
    """
    if prediction is None:
        confidence = rule_result.score
        if rule_result.tier is RiskTier.HIGH:
            confidence = max(confidence, SAFETY_CONFIDENCE_FLOOR)
        return RiskAssessment(
            tier=rule_result.tier,
            confidence=confidence,
            prediction=rule_result.prediction,
            factors=rule_result.factors,
            breakdown=rule_result.breakdown,
            recommendation=rule_result.recommendation,
            specialist=rule_result.specialist,
            source=SOURCE_RULES,
            rule_score=rule_result.score,
        )

    tier = prediction.tier
    confidence = prediction.confidence
    headline = CLASSIFIER_PREDICTIONS[tier]
    source = SOURCE_CLASSIFIER

    if rule_result.tier is RiskTier.HIGH:
        if tier is not RiskTier.HIGH:
            logger.info(
                "Rule engine overrides classifier tier %s with High", tier.value
            )
        tier = RiskTier.HIGH
        confidence = max(confidence, SAFETY_CONFIDENCE_FLOOR)
        headline = rule_result.prediction
        source = SOURCE_RULE_OVERRIDE

    return RiskAssessment(
        tier=tier,
        confidence=confidence,
        prediction=headline,
        factors=rule_result.factors,
        breakdown=rule_result.breakdown,
        recommendation=rule_result.recommendation,
        specialist=rule_result.specialist,
        source=source,
        rule_score=rule_result.score,
        probabilities=prediction.probability_map(),
    )


async def assess_risk(
    snapshot: VitalsSnapshot,
    classifier: Optional[RiskClassifier] = None,
    ready_timeout: Optional[float] = None,
) -> RiskAssessment:
    """Validate, score and fuse one snapshot.

    Waits up to `ready_timeout` seconds for a classifier that is still
    training; if it is unavailable the rule engine's output stands alone.
    """
    validate_vitals(snapshot)
    rule_result = score_vitals(snapshot)

    prediction = None
    if classifier is not None:
        if ready_timeout is None:
            ready_timeout = settings.classifier_ready_timeout_seconds
        await classifier.wait_until_ready(timeout=ready_timeout)
        try:
            prediction = classifier.predict(encode_features(snapshot))
        except ClassifierUnavailableError as exc:
            logger.warning("Falling back to rule engine only: %s", exc)

    return fuse(rule_result, prediction)
