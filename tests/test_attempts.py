"""Attempt engine: start/resume, autosave, submit, sweep."""

import asyncio
from datetime import timedelta

import pytest

from app.database import db
from app.errors import AuthorizationError, ConflictError, NotFoundError
from app.models.result import AnswerPatch
from app.models.user import Role
from app.services import attempts
from app.services.attempts import (
    attempt_deadline,
    save_progress,
    start_attempt,
    student_exam_view,
    submit_attempt,
    sweep_expired_attempts,
)
from app.utils.serialization import parse_iso, utc_now


@pytest.fixture
def seeded(make_user, make_question, make_exam):
    instructor = make_user(Role.INSTRUCTOR)
    student = make_user(Role.STUDENT)
    questions = [
        make_question(instructor.user_id),
        make_question(
            instructor.user_id,
            text="Water boils at 100 C at sea level.",
            type="true-false",
            options=[{"text": "True", "is_correct": True}, {"text": "False", "is_correct": False}],
        ),
    ]
    exam = make_exam(instructor.user_id, questions)
    return instructor, student, questions, exam


def _count_results(**query):
    return asyncio.run(db.results.count_documents(query))


def test_start_is_idempotent_while_in_progress(seeded):
    _, student, _, exam = seeded

    _, first, resumed_first = asyncio.run(start_attempt(student, exam["exam_id"]))
    _, second, resumed_second = asyncio.run(start_attempt(student, exam["exam_id"]))

    assert resumed_first is False
    assert resumed_second is True
    assert first["result_id"] == second["result_id"]
    assert _count_results(student_id=student.user_id) == 1


def test_start_seeds_answers_and_session(seeded):
    _, student, questions, exam = seeded
    client = {"ip_address": "10.0.0.7", "user_agent": "pytest"}

    _, result, _ = asyncio.run(start_attempt(student, exam["exam_id"], client=client))

    assert result["status"] == "in-progress"
    assert result["attempt_number"] == 1
    assert [a["question_id"] for a in result["answers"]] == [q["question_id"] for q in questions]
    assert result["session"]["ip_address"] == "10.0.0.7"
    assert result["session"]["user_agent"] == "pytest"
    assert result["stats"]["skipped"] == 2


def test_concurrent_starts_create_one_attempt(seeded):
    _, student, _, exam = seeded

    async def race():
        return await asyncio.gather(
            start_attempt(student, exam["exam_id"]),
            start_attempt(student, exam["exam_id"]),
        )

    (_, a, _), (_, b, _) = asyncio.run(race())

    assert a["result_id"] == b["result_id"]
    assert _count_results(student_id=student.user_id, status="in-progress") == 1


def test_duplicate_insert_returns_the_winning_attempt(seeded, monkeypatch):
    _, student, _, exam = seeded
    _, winner, _ = asyncio.run(start_attempt(student, exam["exam_id"]))

    real_find = attempts.find_in_progress
    calls = []

    async def stale_then_real(student_id, exam_id):
        calls.append(exam_id)
        if len(calls) == 1:
            return None  # lost the race: the other request had not inserted yet
        return await real_find(student_id, exam_id)

    monkeypatch.setattr(attempts, "find_in_progress", stale_then_real)

    _, result, resumed = asyncio.run(start_attempt(student, exam["exam_id"]))

    assert resumed is True
    assert result["result_id"] == winner["result_id"]
    assert _count_results(student_id=student.user_id) == 1


def test_start_outside_window_is_refused(seeded):
    _, student, _, exam = seeded
    later = utc_now() + timedelta(days=1)

    with pytest.raises(AuthorizationError) as excinfo:
        asyncio.run(start_attempt(student, exam["exam_id"], now=later))

    assert excinfo.value.message == "Exam is closed"
    assert _count_results() == 0


def test_start_unknown_exam_is_not_found(seeded):
    _, student, _, _ = seeded
    with pytest.raises(NotFoundError):
        asyncio.run(start_attempt(student, "exam_missing"))


def test_save_progress_merges_only_sent_fields(seeded):
    _, student, questions, exam = seeded
    q1 = questions[0]["question_id"]
    asyncio.run(start_attempt(student, exam["exam_id"]))

    asyncio.run(save_progress(student, exam["exam_id"], [AnswerPatch(question_id=q1, selected_options=[1])]))
    saved = asyncio.run(save_progress(student, exam["exam_id"], [
        AnswerPatch(question_id=q1, flagged=True, time_spent=42),
        AnswerPatch(question_id="q_not_in_exam", selected_options=[0]),
    ]))

    answer = next(a for a in saved["answers"] if a["question_id"] == q1)
    assert answer["selected_options"] == [1]
    assert answer["flagged"] is True
    assert answer["time_spent"] == 42
    assert len(saved["answers"]) == 2


def test_save_progress_with_no_patches_changes_nothing(seeded):
    _, student, _, exam = seeded
    _, started, _ = asyncio.run(start_attempt(student, exam["exam_id"]))

    saved = asyncio.run(save_progress(student, exam["exam_id"], []))

    assert saved["answers"] == started["answers"]


def test_save_progress_without_attempt_is_not_found(seeded):
    _, student, _, exam = seeded
    with pytest.raises(NotFoundError, match="No active exam attempt found"):
        asyncio.run(save_progress(student, exam["exam_id"], []))


def test_save_progress_after_submit_is_a_conflict(seeded):
    _, student, _, exam = seeded
    asyncio.run(start_attempt(student, exam["exam_id"]))
    asyncio.run(submit_attempt(student, exam["exam_id"], []))

    with pytest.raises(ConflictError):
        asyncio.run(save_progress(student, exam["exam_id"], []))


def test_double_submit_scores_once(seeded, monkeypatch):
    _, student, questions, exam = seeded
    asyncio.run(start_attempt(student, exam["exam_id"]))

    real_scorer = attempts.score_attempt
    scored = []

    def counting_scorer(*args, **kwargs):
        scored.append(1)
        return real_scorer(*args, **kwargs)

    monkeypatch.setattr(attempts, "score_attempt", counting_scorer)

    patches = [AnswerPatch(question_id=questions[0]["question_id"], selected_options=[1])]
    first, scored_first = asyncio.run(submit_attempt(student, exam["exam_id"], patches))
    second, scored_second = asyncio.run(submit_attempt(student, exam["exam_id"], []))

    assert len(scored) == 1
    assert scored_first is True
    assert scored_second is False
    assert first["result_id"] == second["result_id"]
    assert second["scoring"] == first["scoring"]
    assert first["scoring"]["marks_obtained"] == 5
    assert first["status"] == "completed"
    assert first["submitted_at"] is not None


def test_auto_submit_is_marked(seeded):
    _, student, _, exam = seeded
    asyncio.run(start_attempt(student, exam["exam_id"]))

    result, _ = asyncio.run(submit_attempt(student, exam["exam_id"], [], auto=True))

    assert result["status"] == "auto-submitted"


def test_submit_without_attempt_is_not_found(seeded):
    _, student, _, exam = seeded
    with pytest.raises(NotFoundError):
        asyncio.run(submit_attempt(student, exam["exam_id"], []))


def test_single_attempt_exam_cannot_be_restarted(seeded):
    _, student, _, exam = seeded
    asyncio.run(start_attempt(student, exam["exam_id"]))
    asyncio.run(submit_attempt(student, exam["exam_id"], []))

    with pytest.raises(AuthorizationError, match="already completed"):
        asyncio.run(start_attempt(student, exam["exam_id"]))


def test_multi_attempt_exam_numbers_attempts(make_user, make_question, make_exam):
    instructor = make_user(Role.INSTRUCTOR)
    student = make_user(Role.STUDENT)
    exam = make_exam(instructor.user_id, [make_question(instructor.user_id)],
                     settings={"max_attempts": 2})

    asyncio.run(start_attempt(student, exam["exam_id"]))
    asyncio.run(submit_attempt(student, exam["exam_id"], []))
    _, second, resumed = asyncio.run(start_attempt(student, exam["exam_id"]))

    assert resumed is False
    assert second["attempt_number"] == 2


def test_deadline_is_capped_by_exam_window(seeded):
    _, _, _, exam = seeded
    start = parse_iso(exam["schedule"]["start_time"])
    short_exam = dict(exam, duration=480)
    result = {"session": {"start_time": exam["schedule"]["start_time"]}}

    deadline = attempt_deadline(result, short_exam)

    assert deadline == parse_iso(exam["schedule"]["end_time"]) + timedelta(minutes=10)
    assert attempt_deadline(result, exam) == start + timedelta(minutes=60)


def test_sweep_auto_submits_only_expired_attempts(seeded):
    _, student, _, exam = seeded
    _, result, _ = asyncio.run(start_attempt(student, exam["exam_id"]))

    early = asyncio.run(sweep_expired_attempts(now=utc_now() + timedelta(minutes=30)))
    assert early["auto_submitted"] == []

    late = asyncio.run(sweep_expired_attempts(now=utc_now() + timedelta(minutes=61)))
    assert late["auto_submitted"] == [result["result_id"]]

    stored = asyncio.run(db.results.find_one({"result_id": result["result_id"]}, {"_id": 0}))
    assert stored["status"] == "auto-submitted"


def test_student_view_hides_answer_keys(seeded):
    _, student, questions, exam = seeded
    _, result, _ = asyncio.run(start_attempt(student, exam["exam_id"]))
    by_id = {q["question_id"]: q for q in questions}

    view = student_exam_view(exam, by_id, result)

    assert view["result_id"] == result["result_id"]
    for question in view["questions"]:
        assert "correct_answer" not in question
        assert "explanation" not in question
        for option in question["options"]:
            assert set(option) == {"index", "text"}


def test_randomized_order_is_stable_per_attempt(seeded):
    _, student, questions, exam = seeded
    exam = dict(exam, settings=dict(exam["settings"], randomize_questions=True, randomize_options=True))
    by_id = {q["question_id"]: q for q in questions}
    result = {
        "result_id": "res_fixedseed01",
        "attempt_number": 1,
        "session": {"start_time": exam["schedule"]["start_time"]},
        "answers": [],
    }

    first = student_exam_view(exam, by_id, result)
    second = student_exam_view(exam, by_id, result)

    assert first["questions"] == second["questions"]
    assert sorted(q["question_id"] for q in first["questions"]) == sorted(by_id)


def test_late_submit_is_closed_as_auto_submitted(seeded):
    _, student, questions, exam = seeded
    asyncio.run(start_attempt(student, exam["exam_id"]))
    late = utc_now() + timedelta(minutes=61)
    patches = [AnswerPatch(question_id=questions[0]["question_id"], selected_options=[1])]

    result, scored = asyncio.run(submit_attempt(student, exam["exam_id"], patches, now=late))

    assert scored is True
    assert result["status"] == "auto-submitted"
    assert result["scoring"]["marks_obtained"] == 0


def test_late_progress_is_refused_and_closes_the_attempt(seeded):
    _, student, questions, exam = seeded
    _, started, _ = asyncio.run(start_attempt(student, exam["exam_id"]))
    late = utc_now() + timedelta(minutes=61)
    patches = [AnswerPatch(question_id=questions[0]["question_id"], selected_options=[1])]

    with pytest.raises(ConflictError, match="Time is up"):
        asyncio.run(save_progress(student, exam["exam_id"], patches, now=late))

    stored = asyncio.run(db.results.find_one({"result_id": started["result_id"]}, {"_id": 0}))
    assert stored["status"] == "auto-submitted"
    assert stored["answers"][0]["selected_options"] == []
