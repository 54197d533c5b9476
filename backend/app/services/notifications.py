"""
In-app notifications for students and staff.
"""

import uuid
from typing import Any, Mapping, Optional

from app.config import logger
from app.database import db
from app.utils.serialization import to_iso, utc_now


async def create_notification(
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
) -> str:
    notification_id = f"notif_{uuid.uuid4().hex[:12]}"
    await db.notifications.insert_one({
        "notification_id": notification_id,
        "user_id": user_id,
        "type": notification_type,
        "title": title,
        "message": message,
        "link": link,
        "is_read": False,
        "created_at": to_iso(utc_now()),
    })
    return notification_id


async def notify_result_graded(result: Mapping[str, Any], exam: Mapping[str, Any]) -> Optional[str]:
    """Tell the student their attempt was reviewed. Failures are logged, not raised."""
    scoring = result["scoring"]
    try:
        return await create_notification(
            user_id=result["student_id"],
            notification_type="result_graded",
            title="Result graded",
            message=f"Your result for '{exam['title']}' has been reviewed: "
                    f"{scoring['percentage']}% ({scoring['grade']})",
            link=f"/results/{result['result_id']}",
        )
    except Exception as e:
        logger.error(f"Failed to notify {result['student_id']} about {result['result_id']}: {e}")
        return None
