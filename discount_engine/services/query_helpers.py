# discount_engine/services/query_helpers.py
import math
from typing import Iterable, Optional, Set, Tuple

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from discount_engine.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from discount_engine.schemas.common_schemas import Pagination, SENSITIVE_FIELDS


def parse_fields(fields: Optional[str]) -> Optional[Set[str]]:
    """'id,name , priority' -> {'id', 'name', 'priority'}; blank means everything."""
    if not fields:
        return None
    parsed = {f.strip() for f in fields.split(",") if f.strip()}
    return parsed or None


def project(out: BaseModel, fields: Optional[Set[str]] = None) -> dict:
    data = out.model_dump(mode="json", exclude=set(SENSITIVE_FIELDS))
    if fields:
        data = {k: v for k, v in data.items() if k in fields}
    return data


async def paginate(
    db: AsyncSession,
    model,
    filters: Iterable,
    order_by: Iterable,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[list, Pagination]:
    """Apply the same filters to a count and a page query."""
    filters = list(filters)
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    count_stmt = select(func.count()).select_from(model).where(*filters)
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = select(model).where(*filters).order_by(*order_by).offset((page - 1) * page_size).limit(page_size)
    rows = (await db.execute(stmt)).scalars().all()

    pagination = Pagination(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
    return list(rows), pagination
