"""
FastAPI dependencies - get_current_user, require_roles, get_admin_user.
"""

from fastapi import Request, HTTPException, Depends

from .database import db
from .models.user import Role, User
from .utils.auth import decode_token
from .utils.serialization import parse_iso, utc_now


def _extract_token(request: Request):
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return request.cookies.get("session_token")


def _check_account(user: dict):
    account_status = user.get("account_status", "active")
    if account_status == "banned":
        raise HTTPException(status_code=403, detail="Account banned. Contact support.")
    elif account_status != "active":
        raise HTTPException(status_code=403, detail="Account is not active. Please contact administrator.")


async def get_current_user(request: Request) -> User:
    """Resolve the caller from a bearer JWT, falling back to an opaque session token"""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    jwt_payload = decode_token(token)
    if jwt_payload:
        user_id = jwt_payload.get("user_id")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")
    else:
        session = await db.user_sessions.find_one({"session_token": token}, {"_id": 0})
        if not session:
            raise HTTPException(status_code=401, detail="Invalid session")
        expires_at = parse_iso(session.get("expires_at"))
        if expires_at is None or expires_at < utc_now():
            raise HTTPException(status_code=401, detail="Session expired")
        user_id = session["user_id"]

    user = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    _check_account(user)
    return User(**user)


def require_roles(*roles: Role):
    """Dependency factory restricting an endpoint to the given roles"""
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required role(s): {allowed}. Your role: {user.role.value}",
            )
        return user
    return dependency


get_admin_user = require_roles(Role.ADMIN)
get_staff_user = require_roles(Role.ADMIN, Role.INSTRUCTOR)
get_student_user = require_roles(Role.STUDENT)
