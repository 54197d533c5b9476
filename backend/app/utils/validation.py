"""Validation utilities for questions and exam structure."""

from typing import List, Dict, Any, Optional

from app.models.question import QuestionType, CHOICE_TYPES


def validate_question_structure(question: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the answer-defining part of a question.
    Returns validation result with warnings/errors.
    """
    warnings = []
    errors = []

    q_type = QuestionType(question.get("type", QuestionType.SINGLE_CHOICE))
    options = question.get("options") or []
    correct_count = sum(1 for opt in options if opt.get("is_correct"))

    if q_type in CHOICE_TYPES:
        if len(options) < 2:
            errors.append({"field": "options", "message": "Choice questions need at least 2 options"})
        if correct_count < 1:
            errors.append({"field": "options", "message": "At least one option must be marked correct"})
        if q_type == QuestionType.TRUE_FALSE and len(options) != 2:
            errors.append({"field": "options", "message": "True/false questions need exactly 2 options"})
        if q_type in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE) and correct_count > 1:
            errors.append({"field": "options", "message": f"{q_type.value} questions allow only one correct option"})
        if len(options) > 6:
            warnings.append("More than 6 options")
        texts = [opt.get("text", "").strip().lower() for opt in options]
        if len(set(texts)) != len(texts):
            warnings.append("Duplicate option text")
    else:
        if options:
            warnings.append(f"Options are ignored for {q_type.value} questions")
        if q_type == QuestionType.FILL_BLANK and not (question.get("correct_answer") or "").strip():
            errors.append({"field": "correct_answer", "message": "Fill-in-the-blank questions need a correct_answer"})

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }


def validate_exam_marks(
    question_refs: List[Dict[str, Any]],
    total_marks: Optional[float],
    passing_marks: float,
    override: bool = False,
) -> Dict[str, Any]:
    """
    Check total/passing marks against the per-question marks.
    Returns validation result including the effective total.
    """
    errors = []

    orders = [ref["order"] for ref in question_refs]
    if len(set(orders)) != len(orders):
        errors.append({"field": "questions", "message": "Question order values must be unique"})

    ids = [ref["question_id"] for ref in question_refs]
    if len(set(ids)) != len(ids):
        errors.append({"field": "questions", "message": "A question can appear only once per exam"})

    marks_sum = round(sum(ref["marks"] for ref in question_refs), 2)

    if total_marks is None:
        total_marks = marks_sum
    elif question_refs and abs(total_marks - marks_sum) > 0.001 and not override:
        errors.append({
            "field": "total_marks",
            "message": f"Total marks ({total_marks}) must equal the sum of question marks ({marks_sum}) "
                       f"unless total_marks_override is set",
        })

    if total_marks is not None and passing_marks > total_marks:
        errors.append({
            "field": "passing_marks",
            "message": f"Passing marks ({passing_marks}) cannot exceed total marks ({total_marks})",
        })

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "total_marks": total_marks,
        "question_count": len(question_refs),
    }
