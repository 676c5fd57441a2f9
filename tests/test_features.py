# tests/test_features.py
import numpy as np
import pytest

from triage_portal.services import features
from triage_portal.services.features import (
    FEATURE_WIDTH,
    VitalsSnapshot,
    VitalsValidationError,
    encode_features,
    fahrenheit_to_celsius,
    validate_vitals,
)


def test_fahrenheit_conversion_formula():
    assert fahrenheit_to_celsius(98.6) == pytest.approx(37.0)
    assert fahrenheit_to_celsius(32) == 0.0
    assert fahrenheit_to_celsius(212) == pytest.approx(100.0)


def test_from_fahrenheit_converts_exactly_once():
    snapshot = VitalsSnapshot.from_fahrenheit(
        age=40,
        sex="Male",
        systolic_bp=118,
        diastolic_bp=76,
        heart_rate=70,
        temperature_f=98.6,
    )
    assert snapshot.temperature_c == pytest.approx((98.6 - 32) * 5 / 9)
    assert snapshot.sex == "male"


def test_snapshot_drops_condition_placeholders():
    snapshot = VitalsSnapshot(
        age=40,
        sex="female",
        systolic_bp=118,
        diastolic_bp=76,
        heart_rate=70,
        temperature_c=36.9,
        conditions=frozenset({"None", "Others", "  ", "Kidney Disease"}),
    )
    assert snapshot.conditions == frozenset({"Kidney Disease"})
    assert snapshot.unlisted_conditions == ["Kidney Disease"]


def test_encode_features_layout(vitals):
    snapshot = vitals(
        age=54,
        sex="male",
        systolic_bp=135,
        diastolic_bp=90,
        heart_rate=80,
        temperature_c=38.0,
        symptoms={"Cough", "Chest Pain"},
        conditions={"Asthma", "Gout"},
    )
    vector = encode_features(snapshot)

    assert vector.shape == (FEATURE_WIDTH,)
    assert FEATURE_WIDTH == 20
    assert vector[0] == pytest.approx((54 - 18) / 72)
    assert vector[1] == 1.0
    assert vector[2] == pytest.approx(0.5)
    assert vector[3] == pytest.approx(0.5)
    assert vector[4] == pytest.approx(0.5)
    assert vector[5] == pytest.approx(0.5)

    names = features.FEATURE_NAMES
    assert vector[names.index("symptom:Cough")] == 1.0
    assert vector[names.index("symptom:Chest Pain")] == 1.0
    assert vector[names.index("symptom:Fever")] == 0.0
    assert vector[names.index("condition:Asthma")] == 1.0
    assert vector[names.index("condition:Diabetes")] == 0.0
    assert vector[names.index("condition:other")] == 1.0


def test_encode_features_does_not_clamp(vitals):
    vector = encode_features(vitals(heart_rate=150, systolic_bp=200, diastolic_bp=110))
    assert vector[4] == pytest.approx((150 - 40) / 80)
    assert vector[4] > 1.0
    assert vector[2] > 1.0


def test_encode_features_is_pure(vitals):
    snapshot = vitals(symptoms={"Fever", "Nausea"}, conditions={"Diabetes"})
    first = encode_features(snapshot)
    second = encode_features(snapshot)
    assert first.tobytes() == second.tobytes()
    assert np.array_equal(first, encode_features(vitals(
        symptoms={"Nausea", "Fever"}, conditions={"Diabetes"}
    )))


def test_validate_accepts_normal_vitals(normal_vitals):
    validate_vitals(normal_vitals)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"sex": "unknown"}, "sex"),
        ({"age": 130}, "age"),
        ({"heart_rate": 5}, "heart_rate"),
        ({"temperature_c": 50.0}, "temperature_c"),
        ({"systolic_bp": 80, "diastolic_bp": 85}, "diastolic_bp must be lower"),
        ({"symptoms": {"Sneezing"}}, "unknown symptoms: Sneezing"),
    ],
)
def test_validate_rejects_bad_input(vitals, overrides, message):
    with pytest.raises(VitalsValidationError, match=message):
        validate_vitals(vitals(**overrides))


def test_validation_error_is_value_error():
    assert issubclass(VitalsValidationError, ValueError)
