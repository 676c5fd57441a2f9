"""Read side of patient notifications."""

from typing import Any, Dict, List

from bson import ObjectId
from bson.errors import InvalidId
from triage_portal.database import get_database, NOTIFICATIONS_COLLECTION


class NotificationNotFoundError(LookupError):
    """Raised when a notification id does not exist."""


async def list_notifications(
    patient_id: str, unread_only: bool = False
) -> List[Dict[str, Any]]:
    """Return a patient's notifications, newest first."""
    query: Dict[str, Any] = {"recipientId": patient_id}
    if unread_only:
        query["read"] = False

    database = get_database()
    return (
        await database[NOTIFICATIONS_COLLECTION]
        .find(query)
        .sort("createdAt", -1)
        .to_list(length=1000)
    )


async def mark_notification_read(notification_id: str) -> None:
    """Flag a notification as read."""
    try:
        notification_object_id = ObjectId(notification_id)
    except InvalidId as exc:
        raise NotificationNotFoundError(notification_id) from exc

    database = get_database()
    update_result = await database[NOTIFICATIONS_COLLECTION].update_one(
        {"_id": notification_object_id}, {"$set": {"read": True}}
    )
    if update_result.matched_count == 0:
        raise NotificationNotFoundError(notification_id)
