"""Rule-based risk scoring.

Each rule is a pure function of the vitals snapshot and the running score
that returns a `RuleOutcome`. `score_vitals` folds the rules left to right,
so every point added to the score arrives together with the breakdown entry
that explains it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from .features import VitalsSnapshot

logger = logging.getLogger(__name__)

MAX_SCORE = 99
HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 35

CRITICAL_SYMPTOMS: Tuple[str, ...] = (
    "Chest Pain",
    "Shortness of Breath",
    "Severe Headache",
    "Dizziness",
)
MODERATE_SYMPTOMS: Tuple[str, ...] = ("Fever", "Cough", "Fatigue", "Nausea")
BREATHING_SYMPTOMS: Tuple[str, ...] = ("Shortness of Breath", "Cough")

# Descriptive weights shown per symptom; the score itself adds a flat amount.
CRITICAL_SYMPTOM_DETAILS = {
    "Chest Pain": ("Chest Pain: possible cardiac event", 75),
    "Shortness of Breath": ("Shortness of Breath: respiratory distress", 60),
    "Severe Headache": ("Severe Headache: neurological concern", 45),
    "Dizziness": ("Dizziness: circulatory or neurological issue", 40),
}
MODERATE_SYMPTOM_DETAILS = {
    "Fever": ("Fever: infection indicator", 25),
    "Cough": ("Cough: respiratory symptom", 15),
    "Fatigue": ("Fatigue: general weakness", 10),
    "Nausea": ("Nausea: digestive concern", 15),
}
CRITICAL_SYMPTOM_NOTES = {
    "Chest Pain": "CRITICAL: Chest Pain. Possible cardiac event, seek emergency care.",
    "Shortness of Breath": (
        "CRITICAL: Shortness of Breath. Respiratory distress, could indicate "
        "asthma, COPD or a cardiac issue."
    ),
    "Severe Headache": (
        "WARNING: Severe Headache. Possible neurological concern "
        "(migraine, stroke risk)."
    ),
    "Dizziness": "WARNING: Dizziness. Circulatory or neurological issue, monitor closely.",
}
MODERATE_SYMPTOM_NOTES = {
    "Fever": "Fever detected. Possible infection, monitor temperature.",
    "Cough": "Cough reported. Respiratory symptom, could be viral or allergic.",
    "Fatigue": "Fatigue reported. General weakness, rest and hydrate.",
    "Nausea": "Nausea reported. Digestive concern, monitor for vomiting.",
}


class RiskTier(str, Enum):
    """Risk tiers in ascending order of severity."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "RiskTier":
        """Parse a stored tier label case-insensitively, defaulting to Low."""
        for tier in cls:
            if label and label.strip().lower() == tier.value.lower():
                return tier
        return cls.LOW


class Specialist(str, Enum):
    CARDIOLOGIST = "Cardiologist"
    PULMONOLOGIST = "Pulmonologist"
    ENDOCRINOLOGIST = "Endocrinologist"
    NEUROLOGIST = "Neurologist"
    GENERAL_PHYSICIAN = "General Physician"


RECOMMENDATIONS = {
    RiskTier.HIGH: (
        "IMMEDIATE medical attention required. Please visit a hospital or "
        "consult a specialist right away."
    ),
    RiskTier.MEDIUM: (
        "Consult a general practitioner soon. Monitor your vitals closely and rest."
    ),
    RiskTier.LOW: (
        "Maintain your healthy lifestyle. Regular checkups are recommended."
    ),
}


@dataclass(frozen=True)
class FactorWeight:
    """A named contributor to the risk score and its impact weight."""

    label: str
    weight: int

    def to_dict(self):
        return {"label": self.label, "weight": self.weight}


@dataclass(frozen=True)
class RuleOutcome:
    """What a single rule contributes to the assessment.

    `override`, when set, replaces the running score after `delta` is added.
    """

    delta: int = 0
    entries: Tuple[FactorWeight, ...] = ()
    factors: Tuple[str, ...] = ()
    override: Optional[int] = None

    def __post_init__(self):
        has_weighted_entry = any(entry.weight > 0 for entry in self.entries)
        if self.delta > 0 and not has_weighted_entry:
            raise ValueError("a rule that adds to the score must explain it")
        if has_weighted_entry and self.delta <= 0 and self.override is None:
            raise ValueError("a weighted breakdown entry must add to the score")


NO_CHANGE = RuleOutcome()

Rule = Callable[[VitalsSnapshot, int], RuleOutcome]


@dataclass(frozen=True)
class RuleResult:
    """Outcome of running the full rule set over one snapshot."""

    score: int
    tier: RiskTier
    prediction: str
    factors: Tuple[str, ...]
    breakdown: Tuple[FactorWeight, ...]
    recommendation: str
    specialist: Specialist
    applied: Tuple[str, ...] = field(default=())


def _single(label: str, weight: int, factor: str) -> RuleOutcome:
    return RuleOutcome(
        delta=weight, entries=(FactorWeight(label, weight),), factors=(factor,)
    )


def blood_pressure_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    systolic, diastolic = snapshot.systolic_bp, snapshot.diastolic_bp
    reading = f"{systolic:g}/{diastolic:g}"
    if systolic > 180 or diastolic > 120:
        return _single(
            "Hypertensive Crisis", 80, f"CRITICAL: Hypertensive Crisis ({reading})"
        )
    if systolic > 140 or diastolic > 90:
        return _single("High Blood Pressure", 40, "High Blood Pressure (Hypertension)")
    if systolic < 90 or diastolic < 60:
        return _single("Low Blood Pressure", 40, "Low Blood Pressure (Hypotension)")
    if systolic > 120 or diastolic > 80:
        return _single("Elevated Blood Pressure", 10, "Elevated Blood Pressure")
    return NO_CHANGE


def heart_rate_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    rate = snapshot.heart_rate
    if rate > 120:
        return _single(
            "Severe Tachycardia", 50, f"Severe Tachycardia (High HR: {rate:g} bpm)"
        )
    if rate > 100:
        return _single("High Heart Rate", 20, f"High Resting Heart Rate ({rate:g} bpm)")
    if rate < 50:
        return _single(
            "Severe Bradycardia",
            75,
            f"Severe Bradycardia (Critically Low HR: {rate:g} bpm)",
        )
    if rate < 60:
        return _single("Low Heart Rate", 15, f"Low Resting Heart Rate ({rate:g} bpm)")
    return NO_CHANGE


def temperature_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    celsius = round(snapshot.temperature_c, 1)
    if snapshot.temperature_c > 39.0:
        return _single("High Fever", 60, f"High Fever ({celsius}°C)")
    if snapshot.temperature_c > 37.5:
        return _single("Elevated Temperature", 30, f"Elevated Body Temperature ({celsius}°C)")
    if snapshot.temperature_c < 35.0:
        return _single("Hypothermia Risk", 60, f"Hypothermia Risk ({celsius}°C)")
    return NO_CHANGE


def age_rule(snapshot: VitalsSnapshot, score: int) -> RuleOutcome:
    """Older patients amplify an existing finding; age alone adds nothing."""
    if snapshot.age > 65 and score > 0:
        return _single("Age over 65", 10, f"Age {snapshot.age}: higher susceptibility")
    return NO_CHANGE


def condition_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    entries: List[FactorWeight] = []
    factors: List[str] = []

    if snapshot.has_condition("Heart Disease"):
        entries.append(FactorWeight("Heart Disease History", 30))
        factors.append("History of Heart Disease")
    if snapshot.has_condition("Hypertension"):
        if snapshot.systolic_bp > 130:
            entries.append(FactorWeight("Uncontrolled Hypertension", 20))
            factors.append("Uncontrolled Hypertension")
        else:
            entries.append(FactorWeight("Hypertension History", 10))
            factors.append("History of Hypertension")
    if snapshot.has_condition("Diabetes"):
        entries.append(FactorWeight("Diabetes", 20))
        factors.append("Diabetes (Comorbidity Risk)")
    if snapshot.has_condition("Asthma"):
        if any(snapshot.has_symptom(s) for s in BREATHING_SYMPTOMS):
            entries.append(FactorWeight("Asthma Exacerbation", 30))
            factors.append("Asthma exacerbation likely")
        else:
            entries.append(FactorWeight("Asthma History", 0))
            factors.append("History of Asthma")
    for condition in snapshot.unlisted_conditions:
        entries.append(FactorWeight(f"History of {condition}", 10))
        factors.append(f"History of {condition}")

    return RuleOutcome(
        delta=sum(entry.weight for entry in entries),
        entries=tuple(entries),
        factors=tuple(factors),
    )


def symptom_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    """Critical symptoms add a flat 75, otherwise moderate ones add a flat 30."""
    critical = [s for s in CRITICAL_SYMPTOMS if snapshot.has_symptom(s)]
    if critical:
        return RuleOutcome(
            delta=75,
            entries=tuple(FactorWeight(*CRITICAL_SYMPTOM_DETAILS[s]) for s in critical),
            factors=tuple(CRITICAL_SYMPTOM_NOTES[s] for s in critical),
        )
    moderate = [s for s in MODERATE_SYMPTOMS if snapshot.has_symptom(s)]
    if moderate:
        return RuleOutcome(
            delta=30,
            entries=tuple(FactorWeight(*MODERATE_SYMPTOM_DETAILS[s]) for s in moderate),
            factors=tuple(MODERATE_SYMPTOM_NOTES[s] for s in moderate),
        )
    return NO_CHANGE


def escalation_rule(snapshot: VitalsSnapshot, _score: int) -> RuleOutcome:
    factors: List[str] = []
    entries: List[FactorWeight] = []
    override = None

    if snapshot.has_condition("Heart Disease") and snapshot.has_symptom("Chest Pain"):
        override = MAX_SCORE
        entries.append(FactorWeight("Heart Disease + Chest Pain: maximum risk", MAX_SCORE))
        factors.append(
            "EMERGENCY: Heart Disease history with Chest Pain. "
            "Immediate hospital visit required."
        )
    if snapshot.has_condition("Asthma") and snapshot.has_symptom("Shortness of Breath"):
        factors.append(
            "ALERT: Asthma with Shortness of Breath. Possible asthma attack, "
            "use a rescue inhaler and seek care."
        )

    return RuleOutcome(entries=tuple(entries), factors=tuple(factors), override=override)


RULES: Tuple[Rule, ...] = (
    blood_pressure_rule,
    heart_rate_rule,
    temperature_rule,
    age_rule,
    condition_rule,
    symptom_rule,
    escalation_rule,
)


def tier_for_score(score: int) -> RiskTier:
    if score >= HIGH_THRESHOLD:
        return RiskTier.HIGH
    if score >= MEDIUM_THRESHOLD:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def recommend_specialist(snapshot: VitalsSnapshot) -> Specialist:
    """Pick one specialist from the dominant signal family, cardiac first."""
    if (
        snapshot.has_condition("Heart Disease")
        or snapshot.has_symptom("Chest Pain")
        or snapshot.systolic_bp > 140
        or snapshot.diastolic_bp > 90
        or snapshot.heart_rate < 50
        or snapshot.heart_rate > 100
    ):
        return Specialist.CARDIOLOGIST
    if (
        snapshot.has_condition("Asthma")
        or snapshot.has_symptom("Shortness of Breath")
        or snapshot.has_symptom("Cough")
    ):
        return Specialist.PULMONOLOGIST
    if snapshot.has_condition("Diabetes"):
        return Specialist.ENDOCRINOLOGIST
    if snapshot.has_symptom("Severe Headache") or snapshot.has_symptom("Dizziness"):
        return Specialist.NEUROLOGIST
    return Specialist.GENERAL_PHYSICIAN


def describe_prediction(snapshot: VitalsSnapshot, tier: RiskTier) -> str:
    """Headline text for the rule engine's conclusion."""
    if tier is RiskTier.HIGH:
        if snapshot.heart_rate < 50:
            return "High Risk: Severe Bradycardia"
        if snapshot.heart_rate > 120:
            return "High Risk: Severe Tachycardia"
        if snapshot.systolic_bp > 180:
            return "CRITICAL: Hypertensive Crisis"
        if snapshot.has_symptom("Chest Pain"):
            if snapshot.has_condition("Heart Disease"):
                return "CRITICAL: Potential Cardiac Event"
            return "High Risk: Potential Cardiac Event"
        return "High Health Risk Detected"
    if tier is RiskTier.MEDIUM:
        if snapshot.systolic_bp > 140:
            return "Risk of Hypertension"
        if snapshot.systolic_bp < 90:
            return "Risk of Hypotension"
        if snapshot.temperature_c > 37.5:
            return "Potential Infection / Fever"
        if snapshot.has_condition("Asthma") and snapshot.has_symptom("Cough"):
            return "Asthma Exacerbation Risk"
        return "Health Concern Detected"
    return "Healthy / Normal"


def rank_breakdown(entries: Sequence[FactorWeight]) -> Tuple[FactorWeight, ...]:
    """Drop non-positive weights and sort the rest by weight, highest first."""
    weighted = [entry for entry in entries if entry.weight > 0]
    return tuple(sorted(weighted, key=lambda entry: entry.weight, reverse=True))


def score_vitals(
    snapshot: VitalsSnapshot, rules: Sequence[Rule] = RULES
) -> RuleResult:
    """Run every rule over `snapshot` and assemble the rule-based result."""
    score = 0
    entries: List[FactorWeight] = []
    factors: List[str] = []
    applied: List[str] = []

    for rule in rules:
        outcome = rule(snapshot, score)
        score += outcome.delta
        if outcome.override is not None:
            score = outcome.override
        entries.extend(outcome.entries)
        factors.extend(outcome.factors)
        if outcome.delta or outcome.override is not None:
            applied.append(rule.__name__)

    score = max(0, min(score, MAX_SCORE))
    tier = tier_for_score(score)
    logger.debug("rule score %s (%s) from %s", score, tier.value, ", ".join(applied))

    return RuleResult(
        score=score,
        tier=tier,
        prediction=describe_prediction(snapshot, tier),
        factors=tuple(factors),
        breakdown=rank_breakdown(entries),
        recommendation=RECOMMENDATIONS[tier],
        specialist=recommend_specialist(snapshot),
        applied=tuple(applied),
    )
