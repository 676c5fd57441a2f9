"""Configuration module for the triage portal service.

This module defines application-level settings using Pydantic's BaseSettings
to load values from environment variables or default values. It also exposes
a global `settings` instance and the fixed scheduling constants used
throughout the application.
"""

from typing import Optional, Tuple

from pydantic_settings import BaseSettings


MORNING_SLOTS: Tuple[str, ...] = (
    "10:00 AM",
    "10:30 AM",
    "11:00 AM",
    "11:30 AM",
    "12:00 PM",
)
AFTERNOON_SLOTS: Tuple[str, ...] = (
    "01:30 PM",
    "02:00 PM",
    "02:30 PM",
    "03:00 PM",
    "03:30 PM",
    "04:00 PM",
    "04:30 PM",
)
EVENING_SLOTS: Tuple[str, ...] = (
    "06:00 PM",
    "06:30 PM",
    "07:00 PM",
    "07:30 PM",
    "08:00 PM",
)

# Daily slot labels in booking order.
SLOT_LABELS: Tuple[str, ...] = MORNING_SLOTS + AFTERNOON_SLOTS + EVENING_SLOTS


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    mongo_username: str = "triage_user"
    mongo_password: str = "triage_password"
    mongo_database_name: str = "triage_portal_db"
    mongo_host: str = "localhost"
    mongo_port: int = 27017
    mongo_server_selection_timeout_ms: int = 5000

    log_level: str = "INFO"

    explanation_service_url: Optional[str] = None
    explanation_timeout_seconds: float = 10.0

    slot_capacity: int = 3
    emergency_slot_threshold: int = 2
    high_risk_bump_trigger: int = 2

    classifier_epochs: int = 20
    classifier_sample_count: int = 1000
    classifier_random_state: int = 42
    classifier_ready_timeout_seconds: float = 30.0

    class Config:  # pylint: disable=too-few-public-methods
        """Internal Pydantic configuration for loading environment variables."""

        env_file = ".env"


# Global settings instance used throughout the service.
settings = Settings()
