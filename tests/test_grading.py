"""Manual grading: overrides, re-grades, bulk grading, permissions."""

import asyncio

import pytest

from app.database import db
from app.errors import AuthorizationError, ConflictError, ValidationError
from app.models.result import AnswerGrade, AnswerPatch, GradeRequest
from app.models.user import Role
from app.services.attempts import start_attempt, submit_attempt
from app.services.grading import bulk_grade, grade_result


@pytest.fixture
def essay_exam(make_user, make_question, make_exam):
    instructor = make_user(Role.INSTRUCTOR)
    essay = make_question(
        instructor.user_id,
        text="Explain photosynthesis.",
        type="essay",
        options=[],
        marks=10,
    )
    exam = make_exam(instructor.user_id, [essay])
    return instructor, essay, exam


def _submitted_result(student, exam, essay):
    asyncio.run(start_attempt(student, exam["exam_id"]))
    patch = AnswerPatch(question_id=essay["question_id"], text_answer="Light becomes chemical energy.")
    result, _ = asyncio.run(submit_attempt(student, exam["exam_id"], [patch]))
    return result


def test_essay_is_pending_until_graded(essay_exam, make_user):
    _, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    assert result["status"] == "completed"
    assert result["scoring"]["marks_obtained"] == 0
    assert result["answers"][0]["review_status"] == "pending-review"


def test_override_rederives_percentage_grade_and_pass(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    graded = asyncio.run(grade_result(result["result_id"], GradeRequest(score=8, feedback="Good"), instructor))

    assert graded["status"] == "graded"
    assert graded["scoring"] == {
        "total_marks": 10,
        "marks_obtained": 8,
        "percentage": 80,
        "grade": "A",
        "passed": True,
    }
    assert graded["reviewed_by"] == instructor.user_id
    assert graded["reviewed_at"] is not None
    assert graded["feedback"]["overall"] == "Good"


def test_score_above_total_is_rejected(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(grade_result(result["result_id"], GradeRequest(score=11), instructor))

    assert excinfo.value.errors[0]["field"] == "score"
    stored = asyncio.run(db.results.find_one({"result_id": result["result_id"]}, {"_id": 0}))
    assert stored["status"] == "completed"


def test_negative_score_is_rejected(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    with pytest.raises(ValidationError):
        asyncio.run(grade_result(result["result_id"], GradeRequest(score=-1), instructor))


def test_in_progress_attempt_cannot_be_graded(essay_exam, make_user):
    instructor, _, exam = essay_exam
    _, result, _ = asyncio.run(start_attempt(make_user(Role.STUDENT), exam["exam_id"]))

    with pytest.raises(ConflictError, match="still in progress"):
        asyncio.run(grade_result(result["result_id"], GradeRequest(score=5), instructor))


def test_regrade_last_write_wins(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    asyncio.run(grade_result(result["result_id"], GradeRequest(score=8), instructor))
    regraded = asyncio.run(grade_result(result["result_id"], GradeRequest(score=4), instructor))

    assert regraded["scoring"]["marks_obtained"] == 4
    assert regraded["scoring"]["percentage"] == 40
    assert regraded["scoring"]["grade"] == "C"
    assert regraded["scoring"]["passed"] is False


def test_per_answer_marks_are_summed(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    request = GradeRequest(answers=[AnswerGrade(question_id=essay["question_id"], marks_awarded=7,
                                                comments="Missing the Calvin cycle")])
    graded = asyncio.run(grade_result(result["result_id"], request, instructor))

    assert graded["scoring"]["marks_obtained"] == 7
    assert graded["answers"][0]["review_status"] == "graded"
    assert graded["answers"][0]["review_comments"] == "Missing the Calvin cycle"


def test_per_answer_marks_above_question_marks_are_rejected(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    request = GradeRequest(answers=[AnswerGrade(question_id=essay["question_id"], marks_awarded=12)])
    with pytest.raises(ValidationError):
        asyncio.run(grade_result(result["result_id"], request, instructor))


def test_peer_instructor_cannot_grade(essay_exam, make_user):
    _, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)
    peer = make_user(Role.INSTRUCTOR)

    with pytest.raises(AuthorizationError):
        asyncio.run(grade_result(result["result_id"], GradeRequest(score=5), peer))


def test_admin_can_grade_any_result(essay_exam, make_user):
    _, essay, exam = essay_exam
    result = _submitted_result(make_user(Role.STUDENT), exam, essay)

    graded = asyncio.run(grade_result(result["result_id"], GradeRequest(score=3), make_user(Role.ADMIN)))

    assert graded["scoring"]["grade"] == "D"


def test_grading_notifies_the_student(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    student = make_user(Role.STUDENT)
    result = _submitted_result(student, exam, essay)

    asyncio.run(grade_result(result["result_id"], GradeRequest(score=9), instructor))

    notes = asyncio.run(db.notifications.find({"user_id": student.user_id}, {"_id": 0}).to_list(10))
    assert len(notes) == 1
    assert notes[0]["type"] == "result_graded"
    assert notes[0]["is_read"] is False


def test_bulk_grading_reports_each_item(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    done = _submitted_result(make_user(Role.STUDENT), exam, essay)
    _, open_attempt, _ = asyncio.run(start_attempt(make_user(Role.STUDENT), exam["exam_id"]))

    outcome = asyncio.run(bulk_grade([
        {"result_id": done["result_id"], "score": 6},
        {"result_id": "res_missing", "score": 6},
        {"result_id": open_attempt["result_id"], "score": 6},
    ], instructor))

    assert outcome["graded"] == [done["result_id"]]
    assert {e["result_id"]: e["status_code"] for e in outcome["errors"]} == {
        "res_missing": 404,
        open_attempt["result_id"]: 409,
    }


def test_malformed_bulk_entry_fails_alone(essay_exam, make_user):
    instructor, essay, exam = essay_exam
    done = _submitted_result(make_user(Role.STUDENT), exam, essay)

    outcome = asyncio.run(bulk_grade([
        {"result_id": done["result_id"], "score": 4},
        {"result_id": "res_other", "feedback": "no score"},
        {"result_id": "res_third", "score": "lots"},
    ], instructor))

    assert outcome["graded"] == [done["result_id"]]
    assert [(e["result_id"], e["status_code"]) for e in outcome["errors"]] == [
        ("res_other", 400),
        ("res_third", 400),
    ]
    assert outcome["errors"][1]["errors"][0]["field"] == "score"
    stored = asyncio.run(db.results.find_one({"result_id": done["result_id"]}, {"_id": 0}))
    assert stored["scoring"]["marks_obtained"] == 4
