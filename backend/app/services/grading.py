"""
Grading service - manual score override for submitted attempts.

A grade replaces the stored score (last write wins). Percentage, grade band and
pass flag are always re-derived through ``scoring.summarize``.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument

from app.config import logger
from app.database import db
from app.errors import AppError, ConflictError, NotFoundError, ValidationError
from app.models.result import AnswerGrade, AttemptStatus, BulkGradeItem, GradeRequest
from app.models.user import User
from app.services.eligibility import require_manage
from app.services.lifecycle import transition_attempt
from app.services.notifications import notify_result_graded
from app.services.scoring import summarize
from app.utils.serialization import to_iso, utc_now


def apply_answer_grades(
    answers: List[Mapping[str, Any]],
    grades: List[AnswerGrade],
    exam: Mapping[str, Any],
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Write per-question marks into answer slots. Returns (answers, errors)."""
    marks_by_question = {ref["question_id"]: ref["marks"] for ref in exam.get("questions", [])}
    merged = [dict(a) for a in answers]
    slots = {a["question_id"]: a for a in merged}
    errors = []

    for grade in grades:
        slot = slots.get(grade.question_id)
        max_marks = marks_by_question.get(grade.question_id)
        if slot is None or max_marks is None:
            errors.append({"field": "answers", "question_id": grade.question_id,
                           "message": "Question is not part of this attempt"})
            continue
        if grade.marks_awarded < 0 or grade.marks_awarded > max_marks:
            errors.append({"field": "marks_awarded", "question_id": grade.question_id,
                           "message": f"marks_awarded must be between 0 and {max_marks}"})
            continue
        slot["marks_obtained"] = grade.marks_awarded
        slot["is_correct"] = grade.marks_awarded >= max_marks
        slot["review_status"] = "graded"
        if grade.comments is not None:
            slot["review_comments"] = grade.comments

    return merged, errors


async def grade_result(
    result_id: str,
    request: GradeRequest,
    grader: User,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Override the score of a submitted attempt."""
    now = now or utc_now()

    result = await db.results.find_one({"result_id": result_id}, {"_id": 0})
    if not result:
        raise NotFoundError.for_resource("Result")

    exam = await db.exams.find_one({"exam_id": result["exam_id"]}, {"_id": 0})
    if not exam:
        raise NotFoundError.for_resource("Exam")

    await require_manage(grader, exam)
    status = transition_attempt(result["status"], AttemptStatus.GRADED)

    total_marks = result["scoring"]["total_marks"]
    answers = result["answers"]

    if request.answers:
        answers, errors = apply_answer_grades(answers, request.answers, exam)
        if errors:
            raise ValidationError("Invalid per-question marks", errors=errors)
        new_score = max(0.0, round(sum(a.get("marks_obtained", 0) for a in answers), 2))
    else:
        new_score = request.score

    if new_score < 0 or new_score > total_marks:
        raise ValidationError(
            f"score must be between 0 and {total_marks}",
            errors=[{"field": "score", "min": 0, "max": total_marks, "value": new_score}],
        )

    scoring = summarize(new_score, total_marks, exam["passing_marks"])

    feedback = dict(result.get("feedback") or {})
    if request.feedback is not None:
        feedback["overall"] = request.feedback

    stamp = to_iso(now)
    updated = await db.results.find_one_and_update(
        {"result_id": result_id, "status": {"$ne": AttemptStatus.IN_PROGRESS.value}},
        {"$set": {
            "answers": answers,
            "scoring": scoring.model_dump(),
            "status": status.value,
            "reviewed_at": stamp,
            "reviewed_by": grader.user_id,
            "feedback": feedback,
            "updated_at": stamp,
        }},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise ConflictError("Cannot grade an attempt that is still in progress")

    logger.info(
        f"Result {result_id} graded by {grader.user_id}: "
        f"{scoring.marks_obtained}/{total_marks} ({scoring.percentage}%, {scoring.grade})"
    )

    await notify_result_graded(updated, exam)
    return updated


async def bulk_grade(items: List[Mapping[str, Any]], grader: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Grade each entry independently and report per-item outcomes."""
    graded = []
    errors = []
    for raw in items:
        try:
            item = BulkGradeItem.model_validate(raw)
        except PydanticValidationError as e:
            errors.append({
                "result_id": raw.get("result_id") if isinstance(raw, Mapping) else None,
                "status_code": 400,
                "message": "Invalid grading entry",
                "errors": [
                    {"field": ".".join(str(part) for part in err["loc"]) or "entry", "message": err["msg"]}
                    for err in e.errors()
                ],
            })
            continue

        try:
            await grade_result(item.result_id, item, grader, now=now)
            graded.append(item.result_id)
        except AppError as e:
            errors.append({
                "result_id": item.result_id,
                "status_code": e.status_code,
                "message": e.message,
                "errors": e.errors,
            })

    logger.info(f"Bulk grading by {grader.user_id}: {len(graded)} graded, {len(errors)} failed")
    return {"graded": graded, "errors": errors}
