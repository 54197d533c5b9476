"""API route registration."""

from fastapi import APIRouter
from .users import router as users_router
from .questions import router as questions_router
from .exams import router as exams_router
from .attempts import router as attempts_router
from .results import router as results_router
from .grading import router as grading_router
from .notifications import router as notifications_router
from .admin import router as admin_router


def register_all_routes(api_router: APIRouter):
    """Include all route modules on the main API router."""
    api_router.include_router(users_router)
    api_router.include_router(questions_router)
    api_router.include_router(exams_router)
    api_router.include_router(attempts_router)
    api_router.include_router(results_router)
    api_router.include_router(grading_router)
    api_router.include_router(notifications_router)
    api_router.include_router(admin_router)
