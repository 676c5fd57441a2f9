"""Feature encoding for patient vitals.

This module provides:
- The immutable `VitalsSnapshot` input record and its °F constructor
- Range validation applied before any scoring happens
- Construction of the fixed-width numeric feature vector shared by the
  rule engine's training data and the trained classifier
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple

import numpy as np


SYMPTOM_VOCABULARY: Tuple[str, ...] = (
    "Fever",
    "Cough",
    "Fatigue",
    "Headache",
    "Chest Pain",
    "Shortness of Breath",
    "Dizziness",
    "Nausea",
    "Severe Headache",
)

CONDITION_VOCABULARY: Tuple[str, ...] = (
    "Hypertension",
    "Diabetes",
    "Asthma",
    "Heart Disease",
)

# Form placeholders that never reach the scorer as conditions.
CONDITION_PLACEHOLDERS = {"None", "Others"}

SEXES = ("male", "female")

# Min-max bounds used for normalization; values outside are not clamped.
NORMALIZATION_BOUNDS: Dict[str, Tuple[float, float]] = {
    "age": (18.0, 90.0),
    "systolic_bp": (90.0, 180.0),
    "diastolic_bp": (60.0, 120.0),
    "heart_rate": (40.0, 120.0),
    "temperature_c": (35.0, 41.0),
}

# Plausibility limits enforced by validate_vitals.
VALID_RANGES: Dict[str, Tuple[float, float]] = {
    "age": (0, 120),
    "systolic_bp": (50, 300),
    "diastolic_bp": (30, 200),
    "heart_rate": (20, 250),
    "temperature_c": (25.0, 45.0),
}

FEATURE_NAMES: List[str] = (
    ["age", "sex", "systolic_bp", "diastolic_bp", "heart_rate", "temperature_c"]
    + [f"symptom:{name}" for name in SYMPTOM_VOCABULARY]
    + [f"condition:{name}" for name in CONDITION_VOCABULARY]
    + ["condition:other"]
)

FEATURE_WIDTH = len(FEATURE_NAMES)


class VitalsValidationError(ValueError):
    """Raised when a vitals snapshot is incomplete or out of range."""


def fahrenheit_to_celsius(temperature_f: float) -> float:
    """Convert a Fahrenheit reading to Celsius."""
    return (float(temperature_f) - 32.0) * 5.0 / 9.0


def celsius_to_fahrenheit(temperature_c: float) -> float:
    """Convert a Celsius reading back to Fahrenheit, rounded to one decimal."""
    return round(float(temperature_c) * 9.0 / 5.0 + 32.0, 1)


def _clean_conditions(conditions: Iterable[str]) -> FrozenSet[str]:
    cleaned = {c.strip() for c in conditions if c and c.strip()}
    return frozenset(cleaned - CONDITION_PLACEHOLDERS)


@dataclass(frozen=True)
class VitalsSnapshot:
    """One set of patient vitals captured for a single assessment.

    Temperature is held in Celsius. Use `from_fahrenheit` when the reading
    was collected in Fahrenheit so the conversion happens exactly once.
    """

    age: int
    sex: str
    systolic_bp: float
    diastolic_bp: float
    heart_rate: float
    temperature_c: float
    symptoms: FrozenSet[str] = frozenset()
    conditions: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "sex", str(self.sex).lower())
        object.__setattr__(self, "symptoms", frozenset(self.symptoms))
        object.__setattr__(self, "conditions", _clean_conditions(self.conditions))

    @classmethod
    def from_fahrenheit(
        cls,
        age: int,
        sex: str,
        systolic_bp: float,
        diastolic_bp: float,
        heart_rate: float,
        temperature_f: float,
        symptoms: Iterable[str] = (),
        conditions: Iterable[str] = (),
    ) -> "VitalsSnapshot":
        """Build a snapshot from a Fahrenheit temperature reading."""
        return cls(
            age=age,
            sex=sex,
            systolic_bp=systolic_bp,
            diastolic_bp=diastolic_bp,
            heart_rate=heart_rate,
            temperature_c=fahrenheit_to_celsius(temperature_f),
            symptoms=frozenset(symptoms),
            conditions=frozenset(conditions),
        )

    def has_symptom(self, name: str) -> bool:
        return name in self.symptoms

    def has_condition(self, name: str) -> bool:
        return name in self.conditions

    @property
    def unlisted_conditions(self) -> List[str]:
        """Conditions outside the fixed vocabulary, in sorted order."""
        return sorted(c for c in self.conditions if c not in CONDITION_VOCABULARY)


def validate_vitals(snapshot: VitalsSnapshot) -> None:
    """Check a snapshot before scoring.

    Raises
    ------
    VitalsValidationError
        If the sex is unknown, a vital sign is missing or implausible, or a
        symptom is outside the supported vocabulary.
    """
    problems: List[str] = []

    if snapshot.sex not in SEXES:
        problems.append(f"sex must be one of {', '.join(SEXES)}")

    for field_name, (low, high) in VALID_RANGES.items():
        value = getattr(snapshot, field_name)
        if value is None:
            problems.append(f"{field_name} is required")
        elif not low <= value <= high:
            problems.append(f"{field_name}={value} is outside {low}-{high}")

    if (
        snapshot.systolic_bp is not None
        and snapshot.diastolic_bp is not None
        and snapshot.diastolic_bp >= snapshot.systolic_bp
    ):
        problems.append("diastolic_bp must be lower than systolic_bp")

    unknown_symptoms = sorted(s for s in snapshot.symptoms if s not in SYMPTOM_VOCABULARY)
    if unknown_symptoms:
        problems.append(f"unknown symptoms: {', '.join(unknown_symptoms)}")

    if problems:
        raise VitalsValidationError("; ".join(problems))


def normalize(value: float, bounds: Tuple[float, float]) -> float:
    """Min-max scale `value` into the given bounds without clamping."""
    low, high = bounds
    return (float(value) - low) / (high - low)


def encode_features(snapshot: VitalsSnapshot) -> np.ndarray:
    """Convert a vitals snapshot into the classifier's feature vector."""
    numeric = [
        normalize(snapshot.age, NORMALIZATION_BOUNDS["age"]),
        1.0 if snapshot.sex == "male" else 0.0,
        normalize(snapshot.systolic_bp, NORMALIZATION_BOUNDS["systolic_bp"]),
        normalize(snapshot.diastolic_bp, NORMALIZATION_BOUNDS["diastolic_bp"]),
        normalize(snapshot.heart_rate, NORMALIZATION_BOUNDS["heart_rate"]),
        normalize(snapshot.temperature_c, NORMALIZATION_BOUNDS["temperature_c"]),
    ]
    symptom_flags = [1.0 if snapshot.has_symptom(s) else 0.0 for s in SYMPTOM_VOCABULARY]
    condition_flags = [
        1.0 if snapshot.has_condition(c) else 0.0 for c in CONDITION_VOCABULARY
    ]
    other_flag = [1.0 if snapshot.unlisted_conditions else 0.0]
    return np.array(numeric + symptom_flags + condition_flags + other_flag, dtype=float)
