"""Question bank routes - CRUD, archive."""

from fastapi import APIRouter, Depends
from typing import Optional
import uuid

from app.config import logger
from app.database import db
from app.deps import get_staff_user
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.question import (
    Difficulty,
    QuestionCreate,
    QuestionLifecycle,
    QuestionType,
    QuestionUpdate,
)
from app.models.user import User
from app.services.eligibility import require_manage, visibility_filter
from app.utils.response import success, page_window, pagination_meta
from app.utils.serialization import to_iso, utc_now
from app.utils.validation import validate_question_structure

router = APIRouter(tags=["questions"])

# Changing any of these alters what counts as a correct answer
ANSWER_DEFINING_FIELDS = ("type", "options", "correct_answer")


async def _get_question(question_id: str) -> dict:
    question = await db.questions.find_one({"question_id": question_id}, {"_id": 0})
    if not question:
        raise NotFoundError.for_resource("Question")
    return question


async def _referencing_exam_count(question_id: str) -> int:
    return await db.exams.count_documents({"questions.question_id": question_id})


def _raise_if_invalid(question: dict):
    check = validate_question_structure(question)
    if not check["valid"]:
        raise ValidationError("Invalid question structure", errors=check["errors"])
    for warning in check["warnings"]:
        logger.warning(f"Question {question.get('question_id', '<new>')}: {warning}")


@router.post("/questions", status_code=201)
async def create_question(payload: QuestionCreate, user: User = Depends(get_staff_user)):
    """Add a question to the bank"""
    question = payload.model_dump(mode="json")
    _raise_if_invalid(question)

    now = to_iso(utc_now())
    question.update({
        "question_id": f"q_{uuid.uuid4().hex[:10]}",
        "lifecycle": QuestionLifecycle.LIVE.value,
        "version": 1,
        "created_by": user.user_id,
        "last_modified_by": user.user_id,
        "created_at": now,
        "updated_at": now,
    })
    await db.questions.insert_one(question)
    logger.info(f"Created question {question['question_id']} ({question['type']}) by {user.user_id}")
    return success(question, "Question created successfully")


@router.get("/questions")
async def list_questions(
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    type: Optional[QuestionType] = None,
    difficulty: Optional[Difficulty] = None,
    include_archived: bool = False,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_staff_user)
):
    """List questions the caller may see (own + admin-authored for instructors)"""
    query = await visibility_filter(user)
    if subject:
        query["subject"] = subject
    if topic:
        query["topic"] = topic
    if type:
        query["type"] = type.value
    if difficulty:
        query["difficulty"] = difficulty.value
    if not include_archived:
        query["lifecycle"] = QuestionLifecycle.LIVE.value

    page, limit, skip = page_window(page, limit)
    total = await db.questions.count_documents(query)
    questions = await db.questions.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return success(questions, "Questions retrieved successfully", pagination_meta(page, limit, total))


@router.get("/questions/{question_id}")
async def get_question(question_id: str, user: User = Depends(get_staff_user)):
    question = await _get_question(question_id)
    await require_manage(user, question)
    return success(question, "Question retrieved successfully")


@router.put("/questions/{question_id}")
async def update_question(question_id: str, payload: QuestionUpdate, user: User = Depends(get_staff_user)):
    """Edit a question in place; bumps version when the answer key changes on a used question"""
    question = await _get_question(question_id)
    await require_manage(user, question)

    changes = payload.model_dump(mode="json", exclude_unset=True)
    if not changes:
        return success(question, "Nothing to update")

    candidate = {**question, **changes}
    _raise_if_invalid(candidate)

    answer_key_changed = any(
        field in changes and changes[field] != question.get(field) for field in ANSWER_DEFINING_FIELDS
    )
    if answer_key_changed and await _referencing_exam_count(question_id) > 0:
        changes["version"] = question.get("version", 1) + 1
        logger.info(f"Question {question_id} answer key changed, version -> {changes['version']}")

    changes["last_modified_by"] = user.user_id
    changes["updated_at"] = to_iso(utc_now())
    await db.questions.update_one({"question_id": question_id}, {"$set": changes})

    return success({**question, **changes}, "Question updated successfully")


@router.post("/questions/{question_id}/archive")
async def archive_question(question_id: str, user: User = Depends(get_staff_user)):
    question = await _get_question(question_id)
    await require_manage(user, question)

    await db.questions.update_one(
        {"question_id": question_id},
        {"$set": {
            "lifecycle": QuestionLifecycle.ARCHIVED.value,
            "last_modified_by": user.user_id,
            "updated_at": to_iso(utc_now()),
        }}
    )
    logger.info(f"Archived question {question_id}")
    return success({"question_id": question_id, "lifecycle": QuestionLifecycle.ARCHIVED.value},
                   "Question archived successfully")


@router.delete("/questions/{question_id}")
async def delete_question(question_id: str, user: User = Depends(get_staff_user)):
    """Hard delete, only while no exam or result references the question"""
    question = await _get_question(question_id)
    await require_manage(user, question)

    used_by = await _referencing_exam_count(question_id)
    answered_in = await db.results.count_documents({"answers.question_id": question_id})
    if used_by or answered_in:
        raise ConflictError(
            f"Question is used by {used_by} exam(s) and {answered_in} result(s); archive it instead"
        )

    await db.questions.delete_one({"question_id": question_id})
    logger.info(f"Deleted question {question_id}")
    return success({"question_id": question_id}, "Question deleted successfully")
