"""Grading routes - manual score override, bulk grading, review queue."""

from fastapi import APIRouter, Depends
from typing import Optional

from app.database import db
from app.deps import get_staff_user
from app.models.result import AttemptStatus, BulkGradeRequest, GradeRequest
from app.models.user import User
from app.services.eligibility import visibility_filter
from app.services.grading import bulk_grade, grade_result
from app.utils.response import success, page_window, pagination_meta

router = APIRouter(tags=["grading"])

AWAITING_REVIEW = [
    AttemptStatus.COMPLETED.value,
    AttemptStatus.SUBMITTED.value,
    AttemptStatus.AUTO_SUBMITTED.value,
]


# /grading/bulk must be registered before /grading/{result_id}
@router.post("/grading/bulk")
async def grade_results_bulk(payload: BulkGradeRequest, user: User = Depends(get_staff_user)):
    """Grade several results; each entry succeeds or fails on its own"""
    outcome = await bulk_grade(payload.grades, user)
    message = f"Graded {len(outcome['graded'])} of {len(payload.grades)} results"
    return success(outcome, message)


@router.get("/grading/queue")
async def get_grading_queue(
    exam_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    user: User = Depends(get_staff_user)
):
    """Submitted results not yet reviewed, oldest first"""
    exam_query = await visibility_filter(user)
    if exam_id:
        exam_query["exam_id"] = exam_id
    exams = await db.exams.find(exam_query, {"_id": 0, "exam_id": 1, "title": 1}).to_list(None)
    titles = {e["exam_id"]: e["title"] for e in exams}

    query = {"exam_id": {"$in": list(titles)}, "status": {"$in": AWAITING_REVIEW}}
    page, limit, skip = page_window(page, limit)
    total = await db.results.count_documents(query)
    results = await db.results.find(query, {"_id": 0}).sort("submitted_at", 1).skip(skip).limit(limit).to_list(limit)

    for result in results:
        result["exam_title"] = titles.get(result["exam_id"])
        result["pending_review"] = sum(
            1 for a in result.get("answers", []) if a.get("review_status") == "pending-review"
        )

    return success(results, "Grading queue retrieved successfully", pagination_meta(page, limit, total))


@router.post("/grading/{result_id}")
async def grade(result_id: str, payload: GradeRequest, user: User = Depends(get_staff_user)):
    updated = await grade_result(result_id, payload, user)
    return success(updated, "Result graded successfully")


@router.put("/grading/{result_id}")
async def regrade(result_id: str, payload: GradeRequest, user: User = Depends(get_staff_user)):
    """Replace a previous grade; the latest write wins"""
    updated = await grade_result(result_id, payload, user)
    return success(updated, "Grading updated successfully")
