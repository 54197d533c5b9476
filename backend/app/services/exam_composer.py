"""
Exam composition - resolving question references, marks totals, freeze rule.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from app.database import db
from app.errors import ConflictError, ValidationError
from app.models.exam import ExamQuestionInput, ExamSchedule, ExamStatus
from app.models.question import QuestionLifecycle
from app.services.eligibility import exam_window
from app.utils.serialization import parse_iso, to_iso, utc_now
from app.utils.validation import validate_exam_marks

# Only these may change on a frozen exam
FROZEN_EDITABLE_FIELDS = {"end_time", "instructions", "settings"}


async def compose_question_refs(inputs: List[ExamQuestionInput]) -> List[Dict[str, Any]]:
    """
    Turn request entries into stored refs. Missing marks, negative marks and
    order fall back to the question's own values and the entry's position.
    """
    ids = [item.question_id for item in inputs]
    docs = await db.questions.find({"question_id": {"$in": ids}}, {"_id": 0}).to_list(len(ids) or 1)
    by_id = {q["question_id"]: q for q in docs}

    errors = []
    refs = []
    for position, item in enumerate(inputs, start=1):
        question = by_id.get(item.question_id)
        if not question:
            errors.append({"field": "questions", "question_id": item.question_id, "message": "Question not found"})
            continue
        if question.get("lifecycle", QuestionLifecycle.LIVE) != QuestionLifecycle.LIVE:
            errors.append({"field": "questions", "question_id": item.question_id, "message": "Question is archived"})
            continue
        refs.append({
            "question_id": item.question_id,
            "marks": item.marks if item.marks is not None else question["marks"],
            "negative_marks": item.negative_marks if item.negative_marks is not None
            else question.get("negative_marks", 0),
            "order": item.order if item.order is not None else position,
        })

    if errors:
        raise ValidationError("Invalid question references", errors=errors)
    return refs


def check_marks(refs: List[Mapping[str, Any]], total_marks: Optional[float], passing_marks: float,
                override: bool) -> float:
    """Validate marks and return the effective total."""
    check = validate_exam_marks(refs, total_marks, passing_marks, override)
    if not check["valid"]:
        raise ValidationError("Invalid exam marks", errors=check["errors"])
    return check["total_marks"]


def is_frozen(exam: Mapping[str, Any], has_results: bool = False, now: Optional[datetime] = None) -> bool:
    """An exam is frozen once any attempt exists or an active exam's window has opened."""
    if has_results:
        return True
    now = now or utc_now()
    opens_at, _ = exam_window(exam)
    return exam.get("status") == ExamStatus.ACTIVE and now >= opens_at


def check_frozen_update(exam: Mapping[str, Any], changes: Mapping[str, Any], has_results: bool = False,
                        now: Optional[datetime] = None):
    if not is_frozen(exam, has_results, now):
        return
    blocked = sorted(set(changes) - FROZEN_EDITABLE_FIELDS)
    if blocked:
        raise ConflictError(
            "Exam is open or has attempts; only end_time, instructions and settings can be changed",
            errors=[{"field": field, "message": "Field is frozen"} for field in blocked],
        )


def schedule_doc(schedule: ExamSchedule) -> Dict[str, Any]:
    """Stored schedule with UTC ISO timestamps."""
    doc = schedule.model_dump(mode="json")
    doc["start_time"] = to_iso(schedule.start_time)
    doc["end_time"] = to_iso(schedule.end_time)
    return doc


def apply_end_time(schedule: Mapping[str, Any], end_time: datetime) -> Dict[str, Any]:
    schedule = dict(schedule)
    end_time = parse_iso(end_time)
    if end_time <= parse_iso(schedule["start_time"]):
        raise ValidationError(
            "End time must be after start time",
            errors=[{"field": "end_time", "message": "End time must be after start time"}],
        )
    schedule["end_time"] = to_iso(end_time)
    return schedule


def student_exam_summary(exam: Mapping[str, Any]) -> Dict[str, Any]:
    """Listing shape for students: no question refs."""
    summary = {k: v for k, v in exam.items() if k not in ("questions", "eligibility", "created_by",
                                                          "last_modified_by")}
    summary["question_count"] = len(exam.get("questions", []))
    return summary
