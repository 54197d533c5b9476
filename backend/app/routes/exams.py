"""Exam routes - compose, list, update, status workflow, roster, delete."""

from fastapi import APIRouter, Depends
from typing import Optional
import uuid

from app.config import logger
from app.database import db
from app.deps import get_current_user, get_staff_user
from app.errors import ValidationError
from app.models.exam import (
    AssignStudents,
    ExamCreate,
    ExamLifecycle,
    ExamStatus,
    ExamStatusUpdate,
    ExamUpdate,
)
from app.models.result import AttemptStatus
from app.models.user import Role, User
from app.services.attempts import find_in_progress, load_exam, load_exam_questions, student_exam_view
from app.services.eligibility import require_manage, require_view, visibility_filter
from app.services.exam_composer import (
    apply_end_time,
    check_frozen_update,
    check_marks,
    compose_question_refs,
    schedule_doc,
    student_exam_summary,
)
from app.services.lifecycle import transition_exam
from app.utils.response import success, page_window, pagination_meta
from app.utils.serialization import to_iso, utc_now

router = APIRouter(tags=["exams"])


@router.post("/exams", status_code=201)
async def create_exam(payload: ExamCreate, user: User = Depends(get_staff_user)):
    """Create a new exam in draft"""
    refs = await compose_question_refs(payload.questions)
    total_marks = check_marks(refs, payload.total_marks, payload.passing_marks, payload.total_marks_override)

    now = to_iso(utc_now())
    exam = payload.model_dump(mode="json", exclude={"questions", "schedule"})
    exam.update({
        "exam_id": f"exam_{uuid.uuid4().hex[:8]}",
        "questions": refs,
        "total_marks": total_marks,
        "schedule": schedule_doc(payload.schedule),
        "status": ExamStatus.DRAFT.value,
        "lifecycle": ExamLifecycle.LIVE.value,
        "created_by": user.user_id,
        "last_modified_by": user.user_id,
        "version": 1,
        "created_at": now,
        "updated_at": now,
    })
    await db.exams.insert_one(exam)

    logger.info(f"Created exam {exam['exam_id']} '{exam['title']}' with {len(refs)} questions by {user.user_id}")
    return success(exam, "Exam created successfully")


@router.get("/exams")
async def list_exams(
    status: Optional[ExamStatus] = None,
    subject: Optional[str] = None,
    include_archived: bool = False,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_user)
):
    """List the exams visible to the caller"""
    query = await visibility_filter(user)
    if status and user.role != Role.STUDENT:
        query["status"] = status.value
    if subject:
        query["subject"] = subject
    if not include_archived or user.role == Role.STUDENT:
        query["lifecycle"] = ExamLifecycle.LIVE.value

    page, limit, skip = page_window(page, limit)
    total = await db.exams.count_documents(query)
    exams = await db.exams.find(query, {"_id": 0}).sort("schedule.start_time", -1).skip(skip).limit(limit).to_list(limit)

    if user.role == Role.STUDENT:
        exams = [student_exam_summary(e) for e in exams]

    return success(exams, "Exams retrieved successfully", pagination_meta(page, limit, total))


@router.get("/exams/{exam_id}")
async def get_exam(exam_id: str, user: User = Depends(get_current_user)):
    """Full exam for staff; sanitized view for students"""
    exam = await load_exam(exam_id)
    await require_view(user, exam)

    if user.role != Role.STUDENT:
        return success(exam, "Exam retrieved successfully")

    questions = await load_exam_questions(exam)
    in_progress = await find_in_progress(user.user_id, exam_id)
    return success(student_exam_view(exam, questions, in_progress), "Exam retrieved successfully")


@router.put("/exams/{exam_id}")
async def update_exam(exam_id: str, payload: ExamUpdate, user: User = Depends(get_staff_user)):
    exam = await load_exam(exam_id)
    await require_manage(user, exam)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        return success(exam, "Nothing to update")
    has_results = await db.results.count_documents({"exam_id": exam_id}) > 0
    check_frozen_update(exam, changes, has_results)

    updates = {}
    for field in ("title", "description", "subject", "duration", "instructions", "total_marks_override"):
        if field in changes:
            updates[field] = changes[field]
    if "type" in changes:
        updates["type"] = payload.type.value
    if payload.settings is not None:
        updates["settings"] = payload.settings.model_dump(mode="json")
    if payload.eligibility is not None:
        updates["eligibility"] = payload.eligibility.model_dump(mode="json")

    if payload.schedule is not None:
        updates["schedule"] = schedule_doc(payload.schedule)
    if payload.end_time is not None:
        updates["schedule"] = apply_end_time(updates.get("schedule", exam["schedule"]), payload.end_time)

    marks_touched = {"questions", "total_marks", "passing_marks", "total_marks_override"} & set(changes)
    if marks_touched:
        refs = await compose_question_refs(payload.questions) if payload.questions is not None else exam["questions"]
        override = changes.get("total_marks_override", exam.get("total_marks_override", False))
        total = changes.get("total_marks")
        if total is None and override and "questions" not in changes:
            total = exam["total_marks"]
        passing = changes.get("passing_marks", exam["passing_marks"])
        updates["questions"] = refs
        updates["total_marks"] = check_marks(refs, total, passing, override)
        updates["passing_marks"] = passing
        if exam["status"] == ExamStatus.ACTIVE and not refs:
            raise ValidationError("An active exam must keep at least one question",
                                  errors=[{"field": "questions", "message": "Exam has no questions"}])

    updates["last_modified_by"] = user.user_id
    updates["updated_at"] = to_iso(utc_now())
    updates["version"] = exam.get("version", 1) + 1
    await db.exams.update_one({"exam_id": exam_id}, {"$set": updates})

    logger.info(f"Exam {exam_id} updated by {user.user_id}: {sorted(changes)}")
    return success({**exam, **updates}, "Exam updated successfully")


@router.patch("/exams/{exam_id}/status")
async def update_exam_status(exam_id: str, payload: ExamStatusUpdate, user: User = Depends(get_staff_user)):
    """Move an exam through draft -> active -> completed, or cancel it"""
    exam = await load_exam(exam_id)
    await require_manage(user, exam)

    new_status = transition_exam(exam["status"], payload.status, len(exam.get("questions", [])))
    await db.exams.update_one(
        {"exam_id": exam_id},
        {"$set": {
            "status": new_status.value,
            "last_modified_by": user.user_id,
            "updated_at": to_iso(utc_now()),
        }}
    )

    logger.info(f"Exam {exam_id} status {exam['status']} -> {new_status.value} by {user.user_id}")
    return success({"exam_id": exam_id, "status": new_status.value}, f"Exam status changed to {new_status.value}")


@router.post("/exams/{exam_id}/assign")
async def assign_students(exam_id: str, payload: AssignStudents, user: User = Depends(get_staff_user)):
    """Add students to the exam roster"""
    exam = await load_exam(exam_id)
    await require_manage(user, exam)

    student_ids = list(dict.fromkeys(payload.student_ids))
    found = await db.users.find(
        {"user_id": {"$in": student_ids}, "role": Role.STUDENT.value}, {"_id": 0, "user_id": 1}
    ).to_list(len(student_ids))
    found_ids = {u["user_id"] for u in found}
    missing = [sid for sid in student_ids if sid not in found_ids]
    if missing:
        raise ValidationError(
            "Some students were not found",
            errors=[{"field": "student_ids", "student_id": sid, "message": "Not a student"} for sid in missing],
        )

    await db.exams.update_one(
        {"exam_id": exam_id},
        {
            "$addToSet": {"eligibility.students": {"$each": student_ids}},
            "$set": {"last_modified_by": user.user_id, "updated_at": to_iso(utc_now())},
        }
    )
    updated = await load_exam(exam_id)

    logger.info(f"Assigned {len(student_ids)} students to exam {exam_id}")
    return success({"exam_id": exam_id, "eligibility": updated["eligibility"]}, "Students assigned successfully")


@router.delete("/exams/{exam_id}")
async def delete_exam(exam_id: str, user: User = Depends(get_staff_user)):
    """Hard delete when unused, otherwise cancel and archive"""
    exam = await load_exam(exam_id)
    await require_manage(user, exam)

    result_count = await db.results.count_documents({"exam_id": exam_id})
    if result_count == 0:
        await db.exams.delete_one({"exam_id": exam_id})
        logger.info(f"Deleted exam {exam_id}")
        return success({"exam_id": exam_id, "deleted": True}, "Exam deleted successfully")

    updates = {
        "lifecycle": ExamLifecycle.ARCHIVED.value,
        "last_modified_by": user.user_id,
        "updated_at": to_iso(utc_now()),
    }
    if exam["status"] in (ExamStatus.DRAFT, ExamStatus.ACTIVE):
        updates["status"] = transition_exam(exam["status"], ExamStatus.CANCELLED, len(exam["questions"])).value
    await db.exams.update_one({"exam_id": exam_id}, {"$set": updates})

    logger.info(f"Exam {exam_id} has {result_count} results; archived instead of deleting")
    return success({"exam_id": exam_id, "deleted": False, **updates}, "Exam has results and was archived")


@router.get("/exams/{exam_id}/results")
async def get_exam_results(
    exam_id: str,
    status: Optional[AttemptStatus] = None,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_staff_user)
):
    exam = await load_exam(exam_id)
    await require_manage(user, exam)

    query = {"exam_id": exam_id}
    if status:
        query["status"] = status.value

    page, limit, skip = page_window(page, limit)
    total = await db.results.count_documents(query)
    results = await db.results.find(query, {"_id": 0}).sort("submitted_at", -1).skip(skip).limit(limit).to_list(limit)
    return success(results, "Exam results retrieved successfully", pagination_meta(page, limit, total))
