"""Student attempt routes - start/resume, autosave, submit."""

from fastapi import APIRouter, Depends, Request
from typing import Optional

from app.deps import get_student_user
from app.models.result import ProgressRequest, SubmitRequest
from app.models.user import User
from app.services.attempts import (
    load_exam,
    load_exam_questions,
    save_progress,
    start_attempt,
    student_answers,
    student_exam_view,
    student_result_view,
    submit_attempt,
)
from app.utils.response import success

router = APIRouter(tags=["attempts"])


def _client_info(request: Request):
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return {"ip_address": ip_address, "user_agent": request.headers.get("user-agent")}


@router.post("/exams/{exam_id}/start")
async def start_exam(exam_id: str, request: Request, user: User = Depends(get_student_user)):
    """Start an attempt, or resume the one already open"""
    exam, result, resumed = await start_attempt(user, exam_id, client=_client_info(request))
    questions = await load_exam_questions(exam)
    view = student_exam_view(exam, questions, result)
    view["resumed"] = resumed
    return success(view, "Exam resumed" if resumed else "Exam started successfully")


@router.put("/exams/{exam_id}/progress")
async def save_exam_progress(exam_id: str, payload: ProgressRequest, user: User = Depends(get_student_user)):
    result = await save_progress(user, exam_id, payload.answers)
    return success(
        {"result_id": result["result_id"], "answers": student_answers(result["answers"]), "updated_at": result["updated_at"]},
        "Progress saved successfully",
    )


@router.post("/exams/{exam_id}/submit")
async def submit_exam(exam_id: str, payload: Optional[SubmitRequest] = None, user: User = Depends(get_student_user)):
    """Submit the open attempt; repeating a submit returns the stored outcome"""
    payload = payload or SubmitRequest()
    result, scored_now = await submit_attempt(user, exam_id, payload.answers, auto=payload.auto)

    view = student_result_view(result, await load_exam(exam_id))
    data = {
        "result_id": view["result_id"],
        "attempt_number": view["attempt_number"],
        "status": view["status"],
        "submitted_at": view.get("submitted_at"),
        "scoring": view.get("scoring"),
        "stats": view["stats"],
        "already_submitted": not scored_now,
    }
    message = "Exam submitted successfully" if scored_now else "Exam was already submitted"
    return success(data, message)
