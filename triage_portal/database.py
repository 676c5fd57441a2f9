"""MongoDB access for the triage portal.

One Motor client is shared by the whole process and created lazily on first
use. Assessments, appointments and notifications all live in this shared
store; there is no application-level locking around it.
"""

from urllib.parse import quote_plus

from motor.motor_asyncio import AsyncIOMotorClient
from .config import settings

ASSESSMENTS_COLLECTION = "risk_assessments"
APPOINTMENTS_COLLECTION = "appointments"
NOTIFICATIONS_COLLECTION = "notifications"
PROVIDERS_COLLECTION = "providers"

mongo_client_instance: AsyncIOMotorClient | None = None  # pylint: disable=invalid-name


def build_connection_string(mongo_settings=settings) -> str:
    """Authenticated MongoDB URI for the configured triage database.

    Credentials are percent-escaped so passwords may contain `@`, `:` or `/`.
    """
    credentials = (
        f"{quote_plus(mongo_settings.mongo_username)}"
        f":{quote_plus(mongo_settings.mongo_password)}"
    )
    database_name = mongo_settings.mongo_database_name
    return (
        f"mongodb://{credentials}@{mongo_settings.mongo_host}:{mongo_settings.mongo_port}"
        f"/{database_name}?authSource={database_name}"
    )


def get_mongo_client() -> AsyncIOMotorClient:
    """Return the shared Motor client, connecting on first call."""
    global mongo_client_instance  # pylint: disable=global-statement
    if mongo_client_instance is None:
        mongo_client_instance = AsyncIOMotorClient(
            build_connection_string(),
            serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
        )
    return mongo_client_instance


def close_mongo_client() -> None:
    """Close and forget the shared client; the next access reconnects."""
    global mongo_client_instance  # pylint: disable=global-statement
    if mongo_client_instance is None:
        return
    mongo_client_instance.close()
    mongo_client_instance = None


def get_database():
    """Handle on the triage database (`settings.mongo_database_name`)."""
    return get_mongo_client()[settings.mongo_database_name]


async def ensure_indexes() -> None:
    """
    Create the indexes backing the occupancy and history queries.

    Slot occupancy is always read by (providerId, date, status), optionally
    narrowed to one slotLabel; assessment history is read newest first per
    patient; notifications are listed per recipient.
    """
    database = get_database()
    await database[APPOINTMENTS_COLLECTION].create_index(
        [("providerId", 1), ("date", 1), ("status", 1), ("slotLabel", 1)]
    )
    await database[ASSESSMENTS_COLLECTION].create_index(
        [("patientId", 1), ("timestamp", -1)]
    )
    await database[NOTIFICATIONS_COLLECTION].create_index(
        [("recipientId", 1), ("createdAt", -1)]
    )
