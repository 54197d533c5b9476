"""Shared fixtures: in-memory MongoDB, seeded users/questions/exams, API client."""

import asyncio
import uuid
from datetime import timedelta

import motor.motor_asyncio
import pytest
from mongomock_motor import AsyncMongoMockClient

# Swap the Mongo driver before app.database builds its client
motor.motor_asyncio.AsyncIOMotorClient = AsyncMongoMockClient

from fastapi.testclient import TestClient  # noqa: E402

from app.database import db, ensure_indexes  # noqa: E402
from app.models.user import Role, User  # noqa: E402
from app.utils.auth import create_access_token  # noqa: E402
from app.utils.serialization import to_iso, utc_now  # noqa: E402
from main import app  # noqa: E402

COLLECTIONS = ("users", "user_sessions", "questions", "exams", "results", "notifications", "api_metrics")


@pytest.fixture(autouse=True)
def clean_db():
    async def reset():
        for name in COLLECTIONS:
            await db[name].delete_many({})
        await ensure_indexes()

    asyncio.run(reset())
    yield


@pytest.fixture
def api():
    return TestClient(app)


@pytest.fixture
def auth_headers():
    def _headers(user: User):
        token = create_access_token({"user_id": user.user_id, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_user():
    def _make(role: Role = Role.STUDENT, **overrides) -> User:
        user_id = overrides.pop("user_id", f"user_{uuid.uuid4().hex[:12]}")
        doc = {
            "user_id": user_id,
            "email": f"{user_id}@school.test",
            "name": f"{role.value.title()} {user_id[-4:]}",
            "role": role.value,
            "account_status": "active",
            "created_at": to_iso(utc_now()),
        }
        doc.update(overrides)
        asyncio.run(db.users.insert_one(doc))
        doc.pop("_id", None)
        return User(**doc)
    return _make


@pytest.fixture
def make_question():
    def _make(created_by: str, **overrides) -> dict:
        doc = {
            "question_id": f"q_{uuid.uuid4().hex[:10]}",
            "text": "Which planet is closest to the sun?",
            "type": "single-choice",
            "options": [
                {"text": "Venus", "is_correct": False},
                {"text": "Mercury", "is_correct": True},
                {"text": "Earth", "is_correct": False},
                {"text": "Mars", "is_correct": False},
            ],
            "correct_answer": None,
            "marks": 5,
            "negative_marks": 0,
            "difficulty": "easy",
            "subject": "Science",
            "topic": "Solar system",
            "tags": [],
            "explanation": "Mercury orbits at about 0.39 AU.",
            "status": "active",
            "lifecycle": "live",
            "version": 1,
            "created_by": created_by,
            "last_modified_by": created_by,
            "created_at": to_iso(utc_now()),
        }
        doc.update(overrides)
        asyncio.run(db.questions.insert_one(doc))
        doc.pop("_id", None)
        return doc
    return _make


@pytest.fixture
def make_exam():
    def _make(created_by: str, questions: list, **overrides) -> dict:
        now = utc_now()
        refs = [
            {
                "question_id": q["question_id"],
                "marks": q["marks"],
                "negative_marks": q.get("negative_marks", 0),
                "order": position,
            }
            for position, q in enumerate(questions, start=1)
        ]
        total = sum(r["marks"] for r in refs)
        doc = {
            "exam_id": f"exam_{uuid.uuid4().hex[:8]}",
            "title": "Unit test",
            "description": None,
            "subject": "Science",
            "type": "quiz",
            "duration": 60,
            "total_marks": total,
            "total_marks_override": False,
            "passing_marks": total * 0.6,
            "questions": refs,
            "instructions": None,
            "schedule": {
                "start_time": to_iso(now - timedelta(minutes=5)),
                "end_time": to_iso(now + timedelta(hours=2)),
                "timezone": "UTC",
                "buffer": {"before": 10, "after": 10},
            },
            "settings": {
                "randomize_questions": False,
                "randomize_options": False,
                "show_results": True,
                "show_correct_answers": False,
                "allow_review": True,
                "auto_submit": True,
                "max_attempts": 1,
            },
            "eligibility": {"students": []},
            "status": "active",
            "lifecycle": "live",
            "created_by": created_by,
            "last_modified_by": created_by,
            "version": 1,
            "created_at": to_iso(now),
        }
        doc.update(overrides)
        asyncio.run(db.exams.insert_one(doc))
        doc.pop("_id", None)
        return doc
    return _make
