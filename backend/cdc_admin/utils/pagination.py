"""
Pagination Utility Module

Page/limit helpers shared by the list endpoints.
"""
import math
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select


def parse_limit(limit: Optional[str], default: int = 10) -> Optional[int]:
    """
    Interpret a ``limit`` query value.

    ``"0"``, ``"all"`` or anything above 100 means "no paging" and returns None.
    """
    if limit is None or limit == "":
        return default
    if limit == "all":
        return None
    try:
        value = int(limit)
    except ValueError:
        return default
    if value <= 0 or value > 100:
        return None
    return value


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: Optional[int] = 10,
) -> Dict[str, Any]:
    """
    Apply page/limit to a SQLAlchemy query.

    Returns a dict with ``items`` and ``pagination{page, limit, total, pages}``.
    A ``limit`` of None returns every row as a single page.
    """
    count_stmt = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    if limit is None:
        items = (await db.execute(query)).scalars().all()
        return {
            "items": list(items),
            "pagination": {"page": 1, "limit": len(items), "total": total, "pages": 1},
        }

    page = max(1, page)
    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items = result.scalars().all()

    return {
        "items": list(items),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }
