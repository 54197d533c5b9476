"""
Workflow state machines for attempts and exams.

Every status change goes through ``transition_attempt`` / ``transition_exam`` so
illegal moves are rejected in one place.
"""

from typing import Union

from app.errors import ConflictError, ValidationError
from app.models.exam import ExamStatus
from app.models.result import AttemptStatus

ATTEMPT_TRANSITIONS = {
    AttemptStatus.IN_PROGRESS: {
        AttemptStatus.COMPLETED,
        AttemptStatus.SUBMITTED,
        AttemptStatus.AUTO_SUBMITTED,
    },
    AttemptStatus.COMPLETED: {AttemptStatus.GRADED},
    AttemptStatus.SUBMITTED: {AttemptStatus.GRADED},
    AttemptStatus.AUTO_SUBMITTED: {AttemptStatus.GRADED},
    # re-grading overwrites the previous manual score
    AttemptStatus.GRADED: {AttemptStatus.GRADED},
}

EXAM_TRANSITIONS = {
    ExamStatus.DRAFT: {ExamStatus.ACTIVE, ExamStatus.CANCELLED},
    ExamStatus.ACTIVE: {ExamStatus.COMPLETED, ExamStatus.CANCELLED},
    ExamStatus.COMPLETED: set(),
    ExamStatus.CANCELLED: set(),
}

_ATTEMPT_CONFLICTS = {
    AttemptStatus.IN_PROGRESS: "Cannot grade an attempt that is still in progress",
}


def transition_attempt(current: Union[str, AttemptStatus], target: Union[str, AttemptStatus]) -> AttemptStatus:
    current, target = AttemptStatus(current), AttemptStatus(target)
    if target not in ATTEMPT_TRANSITIONS[current]:
        if target == AttemptStatus.GRADED and current in _ATTEMPT_CONFLICTS:
            raise ConflictError(_ATTEMPT_CONFLICTS[current])
        raise ConflictError(f"Attempt cannot move from '{current.value}' to '{target.value}'")
    return target


def transition_exam(
    current: Union[str, ExamStatus],
    target: Union[str, ExamStatus],
    question_count: int,
) -> ExamStatus:
    current, target = ExamStatus(current), ExamStatus(target)
    if target not in EXAM_TRANSITIONS[current]:
        raise ConflictError(f"Exam cannot move from '{current.value}' to '{target.value}'")
    if target == ExamStatus.ACTIVE and question_count == 0:
        raise ValidationError(
            "An exam needs at least one question before it can be activated",
            errors=[{"field": "questions", "message": "Exam has no questions"}],
        )
    return target
