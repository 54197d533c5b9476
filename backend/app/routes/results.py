"""Result routes - attempt outcomes scoped by role."""

from fastapi import APIRouter, Depends
from typing import Optional

from app.database import db
from app.deps import get_current_user
from app.errors import AuthorizationError, NotFoundError
from app.models.result import AttemptStatus
from app.models.user import Role, User
from app.services.attempts import load_exam, student_result_view
from app.services.eligibility import require_manage, visibility_filter
from app.utils.response import success, page_window, pagination_meta

router = APIRouter(tags=["results"])


async def results_scope(user: User) -> dict:
    """Students see their own results; instructors those of exams they can see."""
    if user.role == Role.ADMIN:
        return {}
    if user.role == Role.STUDENT:
        return {"student_id": user.user_id}
    exams = await db.exams.find(await visibility_filter(user), {"_id": 0, "exam_id": 1}).to_list(None)
    return {"exam_id": {"$in": [e["exam_id"] for e in exams]}}


@router.get("/results")
async def list_results(
    exam_id: Optional[str] = None,
    status: Optional[AttemptStatus] = None,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_current_user)
):
    query = await results_scope(user)
    if exam_id:
        allowed = query.get("exam_id", {}).get("$in")
        query["exam_id"] = exam_id if allowed is None or exam_id in allowed else {"$in": []}
    if status:
        query["status"] = status.value

    page, limit, skip = page_window(page, limit)
    total = await db.results.count_documents(query)
    results = await db.results.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)

    if user.role == Role.STUDENT:
        exams = {}
        views = []
        for result in results:
            if result["exam_id"] not in exams:
                exams[result["exam_id"]] = await db.exams.find_one({"exam_id": result["exam_id"]}, {"_id": 0}) or {}
            views.append(student_result_view(result, exams[result["exam_id"]]))
        results = views

    return success(results, "Results retrieved successfully", pagination_meta(page, limit, total))


@router.get("/results/{result_id}")
async def get_result(result_id: str, user: User = Depends(get_current_user)):
    result = await db.results.find_one({"result_id": result_id}, {"_id": 0})
    if not result:
        raise NotFoundError.for_resource("Result")

    exam = await load_exam(result["exam_id"])
    if user.role == Role.STUDENT:
        if result["student_id"] != user.user_id:
            raise AuthorizationError("Access denied. This result belongs to another student.")
        return success(student_result_view(result, exam), "Result retrieved successfully")

    await require_manage(user, exam)
    return success(result, "Result retrieved successfully")
