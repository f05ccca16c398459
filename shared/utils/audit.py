"""
shared/utils/audit.py
Append-only activity log sink for admin mutations.
Snapshots are stored as serialized JSON; callers pass plain dicts.
"""

import json
import uuid
from typing import Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import ActivityAction, ActivityLog


def request_meta(request: Optional[Request]) -> dict:
    """ip_address / user_agent kwargs for record_activity."""
    if request is None:
        return {}
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _serialize(snapshot: Optional[dict]) -> Optional[str]:
    if snapshot is None:
        return None
    return json.dumps(jsonable_encoder(snapshot), sort_keys=True)


async def record_activity(
    db: AsyncSession,
    actor_id: Optional[uuid.UUID],
    action: ActivityAction,
    entity_type: str,
    entity_id: Optional[uuid.UUID],
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction."""
    log = ActivityLog(
        admin_user_id=actor_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=_serialize(before),
        new_values=_serialize(after),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(log)
    return log
