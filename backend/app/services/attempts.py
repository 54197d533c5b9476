"""
Attempt engine - start, save progress, submit.

Concurrency is handled by the store, not by locks: the unique
(student_id, exam_id, attempt_number) index stops duplicate starts, and every
write to an attempt is guarded by ``status == in-progress`` so only one submit
is ever persisted.
"""

import random
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.config import logger
from app.database import db
from app.errors import AuthorizationError, ConflictError, NotFoundError
from app.models.question import CHOICE_TYPES, QuestionType
from app.models.result import (
    Answer,
    AnswerPatch,
    AttemptStats,
    AttemptStatus,
    FINISHED_STATUSES,
    ScoringSummary,
)
from app.models.user import User
from app.services.eligibility import can_start, exam_window
from app.services.lifecycle import transition_attempt
from app.services.scoring import score_attempt
from app.utils.serialization import parse_iso, to_iso, utc_now

FINISHED_VALUES = [s.value for s in FINISHED_STATUSES]

# What a student may read back from an open attempt
STUDENT_ANSWER_FIELDS = ("question_id", "selected_options", "text_answer", "time_spent", "flagged")


# ============== LOOKUPS ==============

async def load_exam(exam_id: str) -> Dict[str, Any]:
    exam = await db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
    if not exam:
        raise NotFoundError.for_resource("Exam")
    return exam


async def load_exam_questions(exam: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    ids = [ref["question_id"] for ref in exam.get("questions", [])]
    docs = await db.questions.find({"question_id": {"$in": ids}}, {"_id": 0}).to_list(len(ids) or 1)
    return {q["question_id"]: q for q in docs}


async def find_in_progress(student_id: str, exam_id: str) -> Optional[Dict[str, Any]]:
    return await db.results.find_one(
        {"student_id": student_id, "exam_id": exam_id, "status": AttemptStatus.IN_PROGRESS.value},
        {"_id": 0},
    )


async def find_latest_finished(student_id: str, exam_id: str) -> Optional[Dict[str, Any]]:
    docs = await db.results.find(
        {"student_id": student_id, "exam_id": exam_id, "status": {"$in": FINISHED_VALUES}},
        {"_id": 0},
    ).sort("attempt_number", -1).limit(1).to_list(1)
    return docs[0] if docs else None


async def count_finished_attempts(student_id: str, exam_id: str) -> int:
    return await db.results.count_documents(
        {"student_id": student_id, "exam_id": exam_id, "status": {"$in": FINISHED_VALUES}}
    )


# ============== PURE HELPERS ==============

def new_result_doc(
    student: User,
    exam: Mapping[str, Any],
    attempt_number: int,
    now: datetime,
    client: Optional[Dict[str, Optional[str]]] = None,
) -> Dict[str, Any]:
    """Fresh in-progress attempt with one empty answer slot per exam question."""
    client = client or {}
    refs = sorted(exam.get("questions", []), key=lambda r: r["order"])
    started = to_iso(now)
    return {
        "result_id": f"res_{uuid.uuid4().hex[:12]}",
        "student_id": student.user_id,
        "exam_id": exam["exam_id"],
        "attempt_number": attempt_number,
        "answers": [Answer(question_id=ref["question_id"]).model_dump() for ref in refs],
        "session": {
            "start_time": started,
            "end_time": None,
            "ip_address": client.get("ip_address"),
            "user_agent": client.get("user_agent"),
        },
        "scoring": ScoringSummary(total_marks=exam["total_marks"]).model_dump(),
        "stats": AttemptStats(total_questions=len(refs), skipped=len(refs)).model_dump(),
        "status": AttemptStatus.IN_PROGRESS.value,
        "exam_version": exam.get("version", 1),
        "submitted_at": None,
        "reviewed_at": None,
        "reviewed_by": None,
        "feedback": {},
        "created_at": started,
        "updated_at": started,
    }


def apply_patches(answers: Iterable[Mapping[str, Any]], patches: Iterable[AnswerPatch]) -> List[Dict[str, Any]]:
    """
    Merge answer patches into answer slots by question_id. Only the fields a
    patch actually carries are written; patches for unknown questions are ignored.
    """
    merged = [dict(a) for a in answers]
    slots = {a["question_id"]: a for a in merged}
    for patch in patches:
        slot = slots.get(patch.question_id)
        if slot is None:
            continue
        slot.update(patch.model_dump(exclude_unset=True, exclude={"question_id"}))
        if slot.get("selected_options") is None:
            slot["selected_options"] = []
    return merged


def attempt_deadline(result: Mapping[str, Any], exam: Mapping[str, Any]) -> datetime:
    """The earlier of (start + duration) and the end of the exam window."""
    started = parse_iso(result["session"]["start_time"])
    _, closes_at = exam_window(exam)
    return min(started + timedelta(minutes=exam["duration"]), closes_at)


def sanitize_question(question: Mapping[str, Any], marks: float, shuffle_seed: Optional[str] = None) -> Dict[str, Any]:
    """Student-facing copy of a question: no correctness markers or answer keys."""
    options = [{"index": idx, "text": opt["text"]} for idx, opt in enumerate(question.get("options") or [])]
    if shuffle_seed is not None and QuestionType(question["type"]) in CHOICE_TYPES:
        random.Random(shuffle_seed).shuffle(options)
    return {
        "question_id": question["question_id"],
        "text": question["text"],
        "type": question["type"],
        "options": options,
        "marks": marks,
        "difficulty": question.get("difficulty"),
    }


def student_answers(answers: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [{k: a.get(k) for k in STUDENT_ANSWER_FIELDS} for a in answers]


def student_exam_view(
    exam: Mapping[str, Any],
    questions: Mapping[str, Mapping[str, Any]],
    result: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Sanitized exam payload. When randomization is on, the order is seeded by the
    result id so a resumed attempt sees the same layout.
    """
    settings = exam.get("settings") or {}
    refs = sorted(exam.get("questions", []), key=lambda r: r["order"])
    seed = result["result_id"] if result else None

    if settings.get("randomize_questions") and seed:
        refs = list(refs)
        random.Random(seed).shuffle(refs)

    option_seed = seed if settings.get("randomize_options") else None
    payload_questions = [
        sanitize_question(questions[ref["question_id"]], ref["marks"], option_seed)
        for ref in refs
        if ref["question_id"] in questions
    ]

    view = {
        "exam_id": exam["exam_id"],
        "title": exam["title"],
        "description": exam.get("description"),
        "subject": exam["subject"],
        "type": exam.get("type"),
        "duration": exam["duration"],
        "total_marks": exam["total_marks"],
        "passing_marks": exam["passing_marks"],
        "instructions": exam.get("instructions"),
        "schedule": exam["schedule"],
        "settings": settings,
        "questions": payload_questions,
    }
    if result:
        view["result_id"] = result["result_id"]
        view["attempt_number"] = result["attempt_number"]
        view["start_time"] = result["session"]["start_time"]
        view["deadline"] = to_iso(attempt_deadline(result, exam))
        view["answers"] = student_answers(result["answers"])
    return view


def student_result_view(result: Mapping[str, Any], exam: Mapping[str, Any]) -> Dict[str, Any]:
    """A result as its student may see it; scores stay hidden unless the exam shows results."""
    view = dict(result)
    view.pop("session", None)
    if not (exam.get("settings") or {}).get("show_results", True):
        view.pop("scoring", None)
        view["answers"] = [
            {k: v for k, v in a.items() if k not in ("is_correct", "marks_obtained")} for a in result["answers"]
        ]
    return view


# ============== OPERATIONS ==============

async def start_attempt(
    student: User,
    exam_id: str,
    client: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any], bool]:
    """
    Start or resume an attempt. Returns (exam, result, resumed).
    Calling this again while an attempt is open returns that same attempt.
    """
    now = now or utc_now()
    exam = await load_exam(exam_id)

    existing = await find_in_progress(student.user_id, exam_id)
    finished = await count_finished_attempts(student.user_id, exam_id)

    decision = can_start(student, exam, finished, now)
    if not decision:
        raise AuthorizationError(decision.message, errors=[{"reason": decision.reason.value}])

    if existing:
        logger.info(f"Resumed attempt {existing['result_id']} for {student.user_id} on {exam_id}")
        return exam, existing, True

    doc = new_result_doc(student, exam, finished + 1, now, client)
    try:
        await db.results.insert_one(doc)
    except DuplicateKeyError:
        # Another request created this attempt number first
        existing = await find_in_progress(student.user_id, exam_id)
        if existing:
            logger.info(f"Concurrent start for {student.user_id} on {exam_id}, returning {existing['result_id']}")
            return exam, existing, True
        raise ConflictError("Attempt could not be started because another attempt was recorded concurrently")

    doc.pop("_id", None)
    logger.info(f"Started attempt {doc['result_id']} (#{doc['attempt_number']}) for {student.user_id} on {exam_id}")
    return exam, doc, False


async def save_progress(
    student: User,
    exam_id: str,
    patches: List[AnswerPatch],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    result = await find_in_progress(student.user_id, exam_id)
    if not result:
        if await find_latest_finished(student.user_id, exam_id):
            raise ConflictError("This attempt has already been submitted")
        raise NotFoundError("No active exam attempt found")

    exam = await load_exam(exam_id)
    if now >= attempt_deadline(result, exam):
        await finalize_attempt(result, exam, auto=True, now=now)
        raise ConflictError("Time is up; the attempt was auto-submitted")

    answers = apply_patches(result["answers"], patches)
    update = await db.results.update_one(
        {"result_id": result["result_id"], "status": AttemptStatus.IN_PROGRESS.value},
        {"$set": {"answers": answers, "updated_at": to_iso(now)}},
    )
    if update.matched_count == 0:
        raise ConflictError("This attempt has already been submitted")

    result["answers"] = answers
    result["updated_at"] = to_iso(now)
    return result


async def finalize_attempt(
    result: Mapping[str, Any],
    exam: Mapping[str, Any],
    patches: Optional[List[AnswerPatch]] = None,
    auto: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Score and close an in-progress attempt. Returns (result, scored_now).

    The write is conditional on the attempt still being in progress; if another
    submit got there first, that stored outcome is returned untouched.
    """
    now = now or utc_now()

    if AttemptStatus(result["status"]) != AttemptStatus.IN_PROGRESS:
        return dict(result), False

    answers = apply_patches(result["answers"], patches or [])
    questions = await load_exam_questions(exam)
    sheet = score_attempt(exam, questions, answers)
    status = transition_attempt(
        AttemptStatus.IN_PROGRESS,
        AttemptStatus.AUTO_SUBMITTED if auto else AttemptStatus.COMPLETED,
    )

    stamp = to_iso(now)
    fields = {
        "answers": [a.model_dump() for a in sheet.answers],
        "scoring": sheet.scoring.model_dump(),
        "stats": sheet.stats.model_dump(),
        "status": status.value,
        "submitted_at": stamp,
        "updated_at": stamp,
    }
    before = await db.results.find_one_and_update(
        {"result_id": result["result_id"], "status": AttemptStatus.IN_PROGRESS.value},
        {"$set": {**fields, "session.end_time": stamp}},
        projection={"_id": 0},
        return_document=ReturnDocument.BEFORE,
    )

    if before is None:
        current = await db.results.find_one({"result_id": result["result_id"]}, {"_id": 0})
        logger.info(f"Submit race on {result['result_id']}: keeping stored status '{current['status']}'")
        return current, False

    updated = {**before, **fields, "session": {**before["session"], "end_time": stamp}}

    logger.info(
        f"Attempt {updated['result_id']} {status.value}: "
        f"{sheet.scoring.marks_obtained}/{sheet.scoring.total_marks} ({sheet.scoring.percentage}%)"
    )
    return updated, True


async def submit_attempt(
    student: User,
    exam_id: str,
    patches: List[AnswerPatch],
    auto: bool = False,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Submit the student's open attempt. Submitting an attempt that is already
    closed is a no-op returning the stored outcome. Returns (result, scored_now).
    """
    now = now or utc_now()
    exam = await load_exam(exam_id)
    result = await find_in_progress(student.user_id, exam_id)
    if not result:
        latest = await find_latest_finished(student.user_id, exam_id)
        if latest:
            logger.info(f"Repeat submit for {latest['result_id']}, returning stored outcome")
            return latest, False
        raise NotFoundError("No active exam attempt found")

    if now >= attempt_deadline(result, exam):
        # Answers sent after the deadline are not recorded
        logger.info(f"Late submit on {result['result_id']}, closing as auto-submitted")
        return await finalize_attempt(result, exam, auto=True, now=now)
    return await finalize_attempt(result, exam, patches, auto=auto, now=now)


async def sweep_expired_attempts(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Auto-submit every open attempt whose time is up. Meant for a scheduled job."""
    now = now or utc_now()
    open_attempts = await db.results.find(
        {"status": AttemptStatus.IN_PROGRESS.value}, {"_id": 0}
    ).to_list(None)

    exams: Dict[str, Optional[Dict[str, Any]]] = {}
    submitted = []
    for result in open_attempts:
        exam_id = result["exam_id"]
        if exam_id not in exams:
            exams[exam_id] = await db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
        exam = exams[exam_id]
        if not exam:
            logger.warning(f"Attempt {result['result_id']} references missing exam {exam_id}")
            continue
        if now < attempt_deadline(result, exam):
            continue
        _, scored = await finalize_attempt(result, exam, auto=True, now=now)
        if scored:
            submitted.append(result["result_id"])

    logger.info(f"Attempt sweep: {len(submitted)} auto-submitted of {len(open_attempts)} open")
    return {"checked": len(open_attempts), "auto_submitted": submitted}
