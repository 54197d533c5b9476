"""Attempt and exam status transitions."""

import pytest

from app.errors import ConflictError, ValidationError
from app.models.exam import ExamStatus
from app.models.result import AttemptStatus
from app.services.lifecycle import transition_attempt, transition_exam


@pytest.mark.parametrize("target", ["completed", "submitted", "auto-submitted"])
def test_in_progress_can_be_handed_in(target):
    assert transition_attempt("in-progress", target) == AttemptStatus(target)


@pytest.mark.parametrize("current", ["completed", "submitted", "auto-submitted", "graded"])
def test_finished_attempts_can_be_graded(current):
    assert transition_attempt(current, AttemptStatus.GRADED) == AttemptStatus.GRADED


def test_grading_in_progress_attempt_is_a_conflict():
    with pytest.raises(ConflictError, match="still in progress"):
        transition_attempt(AttemptStatus.IN_PROGRESS, AttemptStatus.GRADED)


@pytest.mark.parametrize("current,target", [
    ("completed", "in-progress"),
    ("graded", "completed"),
    ("auto-submitted", "submitted"),
])
def test_attempts_never_move_backwards(current, target):
    with pytest.raises(ConflictError):
        transition_attempt(current, target)


def test_exam_workflow():
    assert transition_exam("draft", "active", 3) == ExamStatus.ACTIVE
    assert transition_exam("active", "completed", 3) == ExamStatus.COMPLETED
    assert transition_exam("draft", "cancelled", 0) == ExamStatus.CANCELLED
    assert transition_exam("active", "cancelled", 3) == ExamStatus.CANCELLED


def test_exam_needs_questions_to_activate():
    with pytest.raises(ValidationError):
        transition_exam("draft", "active", 0)


@pytest.mark.parametrize("current,target", [
    ("completed", "active"),
    ("cancelled", "draft"),
    ("draft", "completed"),
    ("active", "draft"),
])
def test_illegal_exam_transitions(current, target):
    with pytest.raises(ConflictError):
        transition_exam(current, target, 5)
