"""
Database connection - MongoDB async (Motor) and index setup.
"""

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from app.config import MONGO_URL, DB_NAME, logger

# Async client (used by all app queries)
client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


async def ensure_indexes():
    """Create the indexes the app relies on. Safe to call repeatedly."""
    await db.users.create_index([("user_id", ASCENDING)], unique=True)
    await db.users.create_index([("email", ASCENDING)], unique=True)
    await db.users.create_index([("role", ASCENDING)])

    await db.questions.create_index([("question_id", ASCENDING)], unique=True)
    await db.questions.create_index([("created_by", ASCENDING)])
    await db.questions.create_index([("subject", ASCENDING), ("topic", ASCENDING)])

    await db.exams.create_index([("exam_id", ASCENDING)], unique=True)
    await db.exams.create_index([("created_by", ASCENDING)])
    await db.exams.create_index([("status", ASCENDING)])

    # One record per (student, exam, attempt number). Attempt numbers are derived
    # from finished attempts, so this also caps in-progress attempts at one.
    await db.results.create_index([("result_id", ASCENDING)], unique=True)
    await db.results.create_index(
        [("student_id", ASCENDING), ("exam_id", ASCENDING), ("attempt_number", ASCENDING)],
        unique=True,
    )
    await db.results.create_index([("exam_id", ASCENDING), ("status", ASCENDING)])
    await db.results.create_index([("submitted_at", DESCENDING)])

    await db.notifications.create_index([("user_id", ASCENDING), ("is_read", ASCENDING)])
    logger.info("✅ MongoDB indexes ensured")
