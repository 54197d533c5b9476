"""User routes - current user, admin-managed accounts."""

from fastapi import APIRouter, Depends
from typing import Optional
import uuid

from pymongo.errors import DuplicateKeyError

from app.config import logger
from app.database import db
from app.deps import get_current_user, get_admin_user
from app.errors import ConflictError
from app.models.user import Role, User, UserCreate
from app.utils.response import success, page_window, pagination_meta
from app.utils.serialization import to_iso, utc_now

router = APIRouter(tags=["users"])


@router.get("/users/me")
async def get_me(user: User = Depends(get_current_user)):
    return success(user.model_dump(mode="json"), "Current user retrieved")


@router.post("/users", status_code=201)
async def create_user(payload: UserCreate, admin: User = Depends(get_admin_user)):
    """Create an instructor, student or admin account"""
    email = payload.email.lower()
    if await db.users.find_one({"email": email}, {"_id": 0, "user_id": 1}):
        raise ConflictError(f"A user with email {email} already exists")

    new_user = {
        "user_id": f"user_{uuid.uuid4().hex[:12]}",
        "email": email,
        "name": payload.name,
        "role": payload.role.value,
        "account_status": "active",
        "created_by": admin.user_id,
        "created_at": to_iso(utc_now()),
    }
    try:
        await db.users.insert_one(new_user)
    except DuplicateKeyError:
        raise ConflictError(f"A user with email {email} already exists")

    logger.info(f"Admin {admin.user_id} created {payload.role.value} {new_user['user_id']}")
    return success(new_user, "User created successfully")


@router.get("/users")
async def list_users(
    role: Optional[Role] = None,
    page: int = 1,
    limit: int = 20,
    admin: User = Depends(get_admin_user)
):
    query = {"role": role.value} if role else {}
    page, limit, skip = page_window(page, limit)

    total = await db.users.count_documents(query)
    users = await db.users.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return success(users, "Users retrieved successfully", pagination_meta(page, limit, total))
