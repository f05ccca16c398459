"""
services/auth/router.py
Admin panel authentication and account management.
Implements: Login → JWT issue → Logout (deny-list) → Profile
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.middleware.auth import TokenData, get_current_admin, get_token_data, require_super_admin
from shared.models.models import ActivityAction, AdminRole, AdminUser, utcnow
from shared.schemas.schemas import (
    AdminUserCreateRequest,
    AdminUserResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PaginatedResponse,
)
from shared.utils.audit import record_activity, request_meta
from shared.utils.errors import InvalidCredentials, ReferenceConflict
from shared.utils.pagination import clamp_page_size, paginate, total_pages
from shared.utils.security import (
    create_access_token,
    get_token_remaining_ttl,
    hash_password,
    password_needs_rehash,
    verify_password,
)
from tasks.email_tasks import send_welcome_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ── Login / Logout ────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Exchange username + password for a bearer token.
    Unknown users, wrong passwords and inactive accounts all get the same 401.
    """
    result = await db.execute(select(AdminUser).where(AdminUser.username == data.username))
    user = result.scalar_one_or_none()

    if not user or not user.is_active or not verify_password(data.password, user.password_hash):
        logger.info(f"Failed login for username {data.username!r}")
        raise InvalidCredentials("Invalid username or password")

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(data.password)
    user.last_login = utcnow()
    await db.commit()

    token, _, expires_at = create_access_token(
        user_id=str(user.id),
        role=user.role.value,
        username=user.username,
    )
    return LoginResponse(
        token=token,
        expires_at=expires_at,
        user=AdminUserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    token_data: TokenData = Depends(get_token_data),
    redis=Depends(get_redis),
):
    """Deny-list the token's jti until it would have expired anyway."""
    ttl = get_token_remaining_ttl(token_data.payload)
    if ttl > 0:
        await RedisCache(redis).revoke_token(token_data.jti, ttl)
    return MessageResponse(message="Logged out successfully")


@router.get("/profile", response_model=AdminUserResponse)
async def get_profile(current_user: AdminUser = Depends(get_current_admin)):
    return current_user


# ── User Management (super admin) ─────────────────────────────

@router.post("/users", response_model=AdminUserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: AdminUserCreateRequest,
    request: Request,
    current_user: AdminUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    existing = await db.scalar(select(AdminUser).where(AdminUser.username == data.username))
    if existing:
        raise ReferenceConflict("Username already exists", code="USERNAME_EXISTS")
    existing = await db.scalar(
        select(AdminUser).where(func.lower(AdminUser.email) == data.email.lower())
    )
    if existing:
        raise ReferenceConflict("Email already exists", code="EMAIL_EXISTS")

    now = utcnow()
    user = AdminUser(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password),
        role=AdminRole(data.role),
        permissions=data.permissions,
        is_active=data.is_active,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()

    await record_activity(
        db, current_user.id, ActivityAction.CREATE_USER, "admin_user", user.id,
        after={"username": user.username, "email": user.email, "role": user.role.value},
        **request_meta(request),
    )
    await db.commit()
    logger.info(f"Admin user {user.username} ({user.role.value}) created by {current_user.username}")

    try:
        send_welcome_email.delay(to_email=user.email, username=user.username)
    except Exception as e:
        logger.warning(f"Could not queue welcome email for {user.username}: {e}")

    return AdminUserResponse.model_validate(user)


@router.get("/users", response_model=PaginatedResponse[AdminUserResponse])
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    search: Optional[str] = None,
    role: Optional[AdminRole] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    current_user: AdminUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    page_size = clamp_page_size(page_size)
    query = select(AdminUser)
    if search and search.strip():
        term = search.strip().lower()
        query = query.where(or_(
            func.lower(AdminUser.username).contains(term, autoescape=True),
            func.lower(AdminUser.email).contains(term, autoescape=True),
        ))
    if role is not None:
        query = query.where(AdminUser.role == role)
    if is_active is not None:
        query = query.where(AdminUser.is_active == is_active)

    rows, total = await paginate(db, query.order_by(AdminUser.created_at.desc()), page, page_size)
    return PaginatedResponse[AdminUserResponse](
        items=[AdminUserResponse.model_validate(row[0]) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )
