"""
Eligibility decisions: who may start, view or manage an exam.

The ``can_*`` functions are pure and return a Decision instead of raising for
ordinary denials. The async helpers below them resolve the creator's role from
the users collection at call time and convert denials into AuthorizationError
at the HTTP boundary.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from app.config import logger, DEFAULT_BUFFER_BEFORE_MINUTES, DEFAULT_BUFFER_AFTER_MINUTES
from app.database import db
from app.errors import AuthorizationError
from app.models.exam import ExamStatus, ExamLifecycle
from app.models.user import Role, User
from app.utils.serialization import parse_iso, utc_now


class DenialReason(str, Enum):
    NOT_AVAILABLE = "not-available"
    NOT_YET_OPEN = "not-yet-open"
    CLOSED = "closed"
    NOT_ELIGIBLE = "not-eligible"
    ALREADY_ATTEMPTED = "already-attempted"
    NOT_OWNER = "not-owner"


# Shown to clients verbatim; the UI switches on these.
DENIAL_MESSAGES = {
    DenialReason.NOT_AVAILABLE: "Exam is not available",
    DenialReason.NOT_YET_OPEN: "Exam has not started yet",
    DenialReason.CLOSED: "Exam is closed",
    DenialReason.NOT_ELIGIBLE: "You are not eligible for this exam",
    DenialReason.ALREADY_ATTEMPTED: "You have already completed this exam",
    DenialReason.NOT_OWNER: "Access denied. This exam belongs to another instructor.",
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenialReason) -> "Decision":
        return cls(False, reason)

    @property
    def message(self) -> Optional[str]:
        return DENIAL_MESSAGES[self.reason] if self.reason else None

    def __bool__(self):
        return self.allowed


def exam_window(exam: Mapping[str, Any]) -> Tuple[datetime, datetime]:
    """Return (opens_at, closes_at) including the schedule buffers."""
    schedule = exam["schedule"]
    buffer = schedule.get("buffer") or {}
    opens_at = parse_iso(schedule["start_time"]) - timedelta(
        minutes=buffer.get("before", DEFAULT_BUFFER_BEFORE_MINUTES))
    closes_at = parse_iso(schedule["end_time"]) + timedelta(
        minutes=buffer.get("after", DEFAULT_BUFFER_AFTER_MINUTES))
    return opens_at, closes_at


def on_roster(user_id: str, exam: Mapping[str, Any]) -> bool:
    roster = (exam.get("eligibility") or {}).get("students") or []
    return not roster or user_id in roster


def can_start(
    user: User,
    exam: Mapping[str, Any],
    finished_attempts: int,
    now: Optional[datetime] = None,
) -> Decision:
    """May ``user`` begin (or resume) an attempt at ``exam`` right now?"""
    now = now or utc_now()

    if user.role != Role.STUDENT:
        return Decision.deny(DenialReason.NOT_ELIGIBLE)
    if exam.get("status") != ExamStatus.ACTIVE or exam.get("lifecycle", ExamLifecycle.LIVE) != ExamLifecycle.LIVE:
        return Decision.deny(DenialReason.NOT_AVAILABLE)

    opens_at, closes_at = exam_window(exam)
    if now < opens_at:
        return Decision.deny(DenialReason.NOT_YET_OPEN)
    if now > closes_at:
        return Decision.deny(DenialReason.CLOSED)

    if not on_roster(user.user_id, exam):
        return Decision.deny(DenialReason.NOT_ELIGIBLE)

    max_attempts = (exam.get("settings") or {}).get("max_attempts", 1)
    if finished_attempts >= max_attempts:
        return Decision.deny(DenialReason.ALREADY_ATTEMPTED)

    return Decision.allow()


def can_manage(user: User, owned: Mapping[str, Any], creator_role: Optional[str]) -> Decision:
    """
    Admins manage everything. Instructors manage what they created plus anything
    an admin created, never a peer instructor's work. Works for exams and questions.
    """
    if user.role == Role.ADMIN:
        return Decision.allow()
    if user.role == Role.INSTRUCTOR:
        if owned.get("created_by") == user.user_id or creator_role == Role.ADMIN:
            return Decision.allow()
    return Decision.deny(DenialReason.NOT_OWNER)


def can_view(
    user: User,
    exam: Mapping[str, Any],
    creator_role: Optional[str],
    now: Optional[datetime] = None,
) -> Decision:
    """Students see an exam only while they could sit it; staff need manage rights."""
    if user.role != Role.STUDENT:
        return can_manage(user, exam, creator_role)
    if exam.get("status") != ExamStatus.ACTIVE or exam.get("lifecycle", ExamLifecycle.LIVE) != ExamLifecycle.LIVE:
        return Decision.deny(DenialReason.NOT_AVAILABLE)
    if not on_roster(user.user_id, exam):
        return Decision.deny(DenialReason.NOT_ELIGIBLE)

    now = now or utc_now()
    opens_at, closes_at = exam_window(exam)
    if now < opens_at:
        return Decision.deny(DenialReason.NOT_YET_OPEN)
    if now > closes_at:
        return Decision.deny(DenialReason.CLOSED)
    return Decision.allow()


# ============== STORE-BACKED HELPERS ==============

async def resolve_creator_role(owned: Mapping[str, Any]) -> Optional[str]:
    creator = await db.users.find_one({"user_id": owned.get("created_by")}, {"_id": 0, "role": 1})
    return creator.get("role") if creator else None


async def check_manage(user: User, owned: Mapping[str, Any]) -> Decision:
    if user.role != Role.INSTRUCTOR:
        return can_manage(user, owned, None)
    if owned.get("created_by") == user.user_id:
        return Decision.allow()
    return can_manage(user, owned, await resolve_creator_role(owned))


async def require_manage(user: User, owned: Mapping[str, Any]) -> None:
    decision = await check_manage(user, owned)
    if not decision:
        logger.info(f"Manage denied for {user.user_id} on {owned.get('exam_id') or owned.get('question_id')}")
        raise AuthorizationError(decision.message, errors=[{"reason": decision.reason.value}])


async def require_view(user: User, exam: Mapping[str, Any], now: Optional[datetime] = None) -> None:
    creator_role = None
    if user.role == Role.INSTRUCTOR and exam.get("created_by") != user.user_id:
        creator_role = await resolve_creator_role(exam)
    decision = can_view(user, exam, creator_role, now)
    if not decision:
        raise AuthorizationError(decision.message, errors=[{"reason": decision.reason.value}])


async def visibility_filter(user: User) -> Dict[str, Any]:
    """
    Mongo filter selecting the exams (or questions) ``user`` may list.
    Admin ids are looked up per call so role changes take effect immediately.
    """
    if user.role == Role.ADMIN:
        return {}
    if user.role == Role.INSTRUCTOR:
        admins = await db.users.find({"role": Role.ADMIN.value}, {"_id": 0, "user_id": 1}).to_list(None)
        owners = [a["user_id"] for a in admins] + [user.user_id]
        return {"created_by": {"$in": owners}}
    return {
        "status": ExamStatus.ACTIVE.value,
        "lifecycle": ExamLifecycle.LIVE.value,
        "$or": [
            {"eligibility.students": {"$size": 0}},
            {"eligibility.students": user.user_id},
        ],
    }
