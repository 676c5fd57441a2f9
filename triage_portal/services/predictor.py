"""Predictor module for the trained risk classifier.

This module provides:
- Synthetic patient record generation used as the bundled training set
- Training of a small feed-forward network (scikit-learn MLPClassifier)
- The `RiskClassifier` handle that owns the model and its lifecycle
  (uninitialized, training, ready, failed) and serves predictions
"""

import asyncio
import logging
import random
import threading
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.neural_network import MLPClassifier

from ..config import settings
from .features import VitalsSnapshot, encode_features
from .risk_rules import RiskTier

logger = logging.getLogger(__name__)

# Output classes, in probability column order.
TIERS: Tuple[RiskTier, ...] = (RiskTier.LOW, RiskTier.MEDIUM, RiskTier.HIGH)
CLASS_LABELS = np.arange(len(TIERS))

HIDDEN_LAYER_SIZES = (16, 12, 8)
LEARNING_RATE = 0.01
BATCH_SIZE = 32

GENERATED_SYMPTOMS = [
    "None",
    "Fever",
    "Cough",
    "Fatigue",
    "Headache",
    "Chest Pain",
    "Shortness of Breath",
    "Dizziness",
    "Nausea",
]
GENERATED_CONDITIONS = ["None", "None", "None", "Hypertension", "Diabetes", "Asthma", "Heart Disease"]


class ModelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    TRAINING = "training"
    READY = "ready"
    FAILED = "failed"


class ClassifierUnavailableError(RuntimeError):
    """Raised when a prediction is requested from a model that is not ready."""


class TrainingCancelledError(RuntimeError):
    """Raised inside the training loop when cancellation was requested."""


@dataclass(frozen=True)
class ClassifierPrediction:
    tier: RiskTier
    confidence: int
    probabilities: Tuple[float, float, float]

    def probability_map(self) -> Dict[str, float]:
        return {tier.value: p for tier, p in zip(TIERS, self.probabilities)}


def label_generated_record(
    systolic_bp: int,
    diastolic_bp: int,
    heart_rate: int,
    temperature_c: float,
    symptoms: List[str],
    condition: str,
) -> int:
    """Ground-truth tier index used when generating synthetic records."""
    risk_score = 0

    if systolic_bp > 140 or diastolic_bp > 90:
        risk_score += 40
    if systolic_bp > 180 or diastolic_bp > 120:
        risk_score += 80
    if heart_rate > 100:
        risk_score += 20
    if heart_rate > 120:
        risk_score += 50
    if heart_rate < 60:
        risk_score += 10
    if heart_rate < 50:
        risk_score += 75
    if temperature_c > 37.5:
        risk_score += 30
    if temperature_c > 39.0:
        risk_score += 60

    if condition == "Heart Disease":
        risk_score += 30
        if "Chest Pain" in symptoms:
            risk_score += 60
        if "Shortness of Breath" in symptoms:
            risk_score += 40
    elif condition == "Hypertension":
        risk_score += 20
        if systolic_bp > 160 or diastolic_bp > 100:
            risk_score += 30
        if "Chest Pain" in symptoms:
            risk_score += 60
        if "Headache" in symptoms and systolic_bp > 150:
            risk_score += 40
    elif condition == "Diabetes":
        risk_score += 20
        if "Dizziness" in symptoms:
            risk_score += 30
        if "Fever" in symptoms:
            risk_score += 30
    elif condition == "Asthma":
        risk_score += 10
        if "Shortness of Breath" in symptoms:
            risk_score += 80
        if "Cough" in symptoms:
            risk_score += 20

    if "Chest Pain" in symptoms:
        risk_score += 70
    elif "Shortness of Breath" in symptoms and risk_score < 50:
        risk_score += 40

    if risk_score >= 70:
        return 2
    if risk_score >= 35:
        return 1
    return 0


def generate_patient_record(rng: random.Random) -> Dict[str, Any]:
    """Simulate one patient with vitals correlated to their condition."""
    sex = rng.choice(["male", "female"])
    age = rng.randint(18, 90)
    condition = rng.choice(GENERATED_CONDITIONS)

    systolic_bp = rng.randint(90, 130)
    diastolic_bp = rng.randint(60, 85)
    heart_rate = rng.randint(60, 100)
    temperature_c = round(rng.uniform(36.1, 37.5), 1)
    symptoms: List[str] = []

    if condition == "Hypertension" or rng.random() > 0.9:
        systolic_bp = rng.randint(140, 180)
        diastolic_bp = rng.randint(90, 110)
        if rng.random() > 0.5:
            symptoms.append("Headache")

    if condition == "Heart Disease":
        heart_rate = rng.randint(90, 120)
        if rng.random() > 0.5:
            symptoms.append("Chest Pain")
        if rng.random() > 0.5:
            symptoms.append("Shortness of Breath")

    if condition == "Asthma":
        if rng.random() > 0.3:
            symptoms.append("Shortness of Breath")
        if rng.random() > 0.3:
            symptoms.append("Cough")

    if rng.random() > 0.8:
        temperature_c = round(rng.uniform(37.8, 40.0), 1)
        symptoms.extend(["Fever", "Fatigue"])

    if not symptoms or rng.random() > 0.7:
        extra_symptom = rng.choice(GENERATED_SYMPTOMS)
        if extra_symptom != "None" and extra_symptom not in symptoms:
            symptoms.append(extra_symptom)

    label = label_generated_record(
        systolic_bp, diastolic_bp, heart_rate, temperature_c, symptoms, condition
    )
    return {
        "age": age,
        "sex": sex,
        "systolic_bp": systolic_bp,
        "diastolic_bp": diastolic_bp,
        "heart_rate": heart_rate,
        "temperature_c": temperature_c,
        "symptoms": sorted(set(symptoms)),
        "conditions": [] if condition == "None" else [condition],
        "label": label,
    }


def generate_health_records(sample_count: int, seed: int) -> List[Dict[str, Any]]:
    """Generate the bundled synthetic dataset deterministically from `seed`."""
    rng = random.Random(seed)
    return [generate_patient_record(rng) for _ in range(sample_count)]


def build_training_set(records: List[Dict[str, Any]]) -> Tuple[np.ndarray, np.ndarray]:
    """Encode synthetic records with the shared feature encoder."""
    feature_rows: List[np.ndarray] = []
    target_values: List[int] = []

    for record in records:
        snapshot = VitalsSnapshot(
            age=record["age"],
            sex=record["sex"],
            systolic_bp=record["systolic_bp"],
            diastolic_bp=record["diastolic_bp"],
            heart_rate=record["heart_rate"],
            temperature_c=record["temperature_c"],
            symptoms=frozenset(record["symptoms"]),
            conditions=frozenset(record["conditions"]),
        )
        feature_rows.append(encode_features(snapshot))
        target_values.append(int(record["label"]))

    return np.vstack(feature_rows), np.array(target_values, dtype=int)


def build_model(random_state: int) -> MLPClassifier:
    """Three ReLU hidden layers with a softmax output trained on log-loss."""
    return MLPClassifier(
        hidden_layer_sizes=HIDDEN_LAYER_SIZES,
        activation="relu",
        solver="adam",
        learning_rate_init=LEARNING_RATE,
        batch_size=BATCH_SIZE,
        shuffle=True,
        random_state=random_state,
    )


class RiskClassifier:
    """Handle owning the trained network and its lifecycle.

    The handle starts `UNINITIALIZED`, moves to `TRAINING` while epochs run
    (with `progress` from 0 to 100), and ends in `READY` or `FAILED`.
    Predictions are only served from `READY`.
    """

    def __init__(
        self,
        epochs: Optional[int] = None,
        sample_count: Optional[int] = None,
        random_state: Optional[int] = None,
    ) -> None:
        self.epochs = epochs or settings.classifier_epochs
        self.sample_count = sample_count or settings.classifier_sample_count
        self.random_state = (
            settings.classifier_random_state if random_state is None else random_state
        )

        self.state = ModelState.UNINITIALIZED
        self.progress = 0
        self.error: Optional[str] = None
        self.training_metadata: Dict[str, Any] = {}

        self._model: Optional[MLPClassifier] = None
        self._cancel_requested = threading.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state is ModelState.READY

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "progress": self.progress,
            "error": self.error,
        }

    def fit(
        self,
        records: Optional[List[Dict[str, Any]]] = None,
        on_epoch_end: Optional[Callable[[int, float], None]] = None,
    ) -> "RiskClassifier":
        """Train the network synchronously, one pass over the data per epoch."""
        self.state = ModelState.TRAINING
        self.progress = 0
        self.error = None
        try:
            if records is None:
                records = generate_health_records(self.sample_count, self.random_state)
            feature_matrix, target_vector = build_training_set(records)
            model = build_model(self.random_state)

            for epoch in range(self.epochs):
                if self._cancel_requested.is_set():
                    raise TrainingCancelledError(f"training cancelled at epoch {epoch}")
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore", category=ConvergenceWarning)
                    model.partial_fit(feature_matrix, target_vector, classes=CLASS_LABELS)
                self.progress = round((epoch + 1) / self.epochs * 100)
                if on_epoch_end is not None:
                    on_epoch_end(epoch, float(model.loss_))
            if self._cancel_requested.is_set():
                raise TrainingCancelledError("training cancelled after the last epoch")
        except Exception as exc:
            self.state = ModelState.FAILED
            self.error = str(exc)
            logger.error("Risk classifier training failed: %s", exc)
            raise

        self._model = model
        self.training_metadata = {
            "epochs": self.epochs,
            "samples": int(feature_matrix.shape[0]),
            "final_loss": float(model.loss_),
            "training_accuracy": float(model.score(feature_matrix, target_vector)),
        }
        self.state = ModelState.READY
        logger.info(
            "Risk classifier ready after %s epochs (loss %.4f)",
            self.epochs,
            self.training_metadata["final_loss"],
        )
        return self

    async def train(self) -> "RiskClassifier":
        """Train in a worker thread; cancelling stops at the next epoch boundary."""
        self._cancel_requested.clear()
        try:
            return await asyncio.to_thread(self.fit)
        except asyncio.CancelledError:
            self._cancel_requested.set()
            raise

    def start_training(self) -> asyncio.Task:
        """Schedule background training on the running loop, once."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.train())
        return self._task

    async def cancel_training(self) -> None:
        """Cancel background training; a worker already running stops at its next epoch."""
        if self._task is None or self._task.done():
            return
        self._cancel_requested.set()
        self._task.cancel()
        await asyncio.wait({self._task})
        if self.state is ModelState.UNINITIALIZED:
            self.state = ModelState.FAILED
            self.error = "training cancelled"

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for background training to finish; return whether it succeeded."""
        if self._task is not None and not self._task.done():
            done, _ = await asyncio.wait({self._task}, timeout=timeout)
            if not done:
                logger.warning("Risk classifier still training after %ss", timeout)
        if self._task is not None and self._task.done() and not self._task.cancelled():
            # Failures are already recorded on the handle.
            self._task.exception()
        return self.is_ready

    def predict_proba(self, feature_vector: np.ndarray) -> np.ndarray:
        if not self.is_ready or self._model is None:
            raise ClassifierUnavailableError(f"risk classifier is {self.state.value}")
        feature_matrix = np.asarray(feature_vector, dtype=float).reshape(1, -1)
        return self._model.predict_proba(feature_matrix)[0]

    def predict(self, feature_vector: np.ndarray) -> ClassifierPrediction:
        """Return the tier distribution, arg-max tier and its confidence (0-100)."""
        probabilities = self.predict_proba(feature_vector)
        class_index = int(np.argmax(probabilities))
        return ClassifierPrediction(
            tier=TIERS[class_index],
            confidence=int(round(float(probabilities[class_index]) * 100)),
            probabilities=tuple(float(p) for p in probabilities),
        )
