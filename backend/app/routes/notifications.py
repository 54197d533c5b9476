"""Notification routes."""

from fastapi import APIRouter, Depends

from app.database import db
from app.deps import get_current_user
from app.errors import NotFoundError
from app.models.user import User
from app.utils.response import success
from app.utils.serialization import to_iso, utc_now

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
async def get_notifications(unread_only: bool = False, user: User = Depends(get_current_user)):
    """Latest notifications for the caller"""
    query = {"user_id": user.user_id}
    if unread_only:
        query["is_read"] = False

    notifications = await db.notifications.find(query, {"_id": 0}).sort("created_at", -1).limit(50).to_list(50)
    unread_count = await db.notifications.count_documents({"user_id": user.user_id, "is_read": False})

    return success({"notifications": notifications, "unread_count": unread_count}, "Notifications retrieved")


@router.put("/notifications/mark-all-read")
async def mark_all_notifications_read(user: User = Depends(get_current_user)):
    result = await db.notifications.update_many(
        {"user_id": user.user_id, "is_read": False},
        {"$set": {"is_read": True, "read_at": to_iso(utc_now())}}
    )
    return success({"count": result.modified_count}, "All notifications marked as read")


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str, user: User = Depends(get_current_user)):
    result = await db.notifications.update_one(
        {"notification_id": notification_id, "user_id": user.user_id},
        {"$set": {"is_read": True, "read_at": to_iso(utc_now())}}
    )
    if result.matched_count == 0:
        raise NotFoundError.for_resource("Notification")

    return success({"notification_id": notification_id}, "Notification marked as read")
