"""
shared/utils/pagination.py
Offset pagination over SQLAlchemy selects.
"""

from typing import Any, List, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, settings.MAX_PAGE_SIZE))


def total_pages(total: int, page_size: int) -> int:
    return -(-total // page_size)  # ceiling division


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int,
    page_size: int,
) -> Tuple[List[Any], int]:
    """Returns (rows, total). Rows are Row objects, so multi-entity selects stay tuples."""
    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    result = await db.execute(query.offset((page - 1) * page_size).limit(page_size))
    return list(result.all()), total or 0
