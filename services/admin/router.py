"""
services/admin/router.py
Super-admin views over the immutable activity log.
Entries are written by shared/utils/audit.py from every admin mutation.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from shared.middleware.auth import require_super_admin
from shared.models.models import ActivityLog, AdminUser
from shared.schemas.schemas import ActivityLogResponse, PaginatedResponse
from shared.utils.pagination import clamp_page_size, paginate, total_pages

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/activity-logs", response_model=PaginatedResponse[ActivityLogResponse])
async def get_activity_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, alias="pageSize"),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[UUID] = Query(None, alias="entityId"),
    action: Optional[str] = None,
    current_user: AdminUser = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail, newest first."""
    page_size = clamp_page_size(page_size)
    query = select(ActivityLog)
    if entity_type:
        query = query.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.where(ActivityLog.entity_id == entity_id)
    if action:
        query = query.where(ActivityLog.action == action.upper())

    rows, total = await paginate(
        db, query.order_by(ActivityLog.created_at.desc(), ActivityLog.id), page, page_size
    )
    return PaginatedResponse[ActivityLogResponse](
        items=[ActivityLogResponse.model_validate(row[0]) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=total_pages(total, page_size),
    )
