from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import FundRequest, RequestHistory


def append_history(
    session: AsyncSession,
    request: FundRequest,
    action: str,
    performed_by: int,
    comments: str | None = None,
    *,
    now: datetime,
) -> RequestHistory:
    """Stage a history row in the caller's transaction; it commits with the transition."""
    entry = RequestHistory(
        request_id=request.id,
        action=action,
        performed_by=performed_by,
        comments=comments,
        created_at=now,
    )
    session.add(entry)
    return entry


async def list_history(session: AsyncSession, request_id: int, newest_first: bool = False) -> list[RequestHistory]:
    # Insertion id breaks ties between entries stamped in the same instant
    if newest_first:
        ordering = (RequestHistory.created_at.desc(), RequestHistory.id.desc())
    else:
        ordering = (RequestHistory.created_at.asc(), RequestHistory.id.asc())
    result = await session.execute(
        select(RequestHistory).where(RequestHistory.request_id == request_id).order_by(*ordering)
    )
    return list(result.scalars().all())
