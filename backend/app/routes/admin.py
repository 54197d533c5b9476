"""Admin routes - maintenance jobs."""

from fastapi import APIRouter, Depends

from app.config import logger
from app.deps import get_admin_user
from app.models.user import User
from app.services.attempts import sweep_expired_attempts
from app.utils.response import success

router = APIRouter(tags=["admin"])


@router.post("/admin/attempts/sweep")
async def sweep_attempts(user: User = Depends(get_admin_user)):
    """Auto-submit every open attempt whose time has run out"""
    logger.info(f"Attempt sweep requested by {user.user_id}")
    outcome = await sweep_expired_attempts()
    return success(outcome, f"Auto-submitted {len(outcome['auto_submitted'])} attempts")
