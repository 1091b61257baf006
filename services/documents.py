from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import FundRequest, RequestDocument, RequestStatus
from services.access import Actor
from services.errors import InvalidStateTransition, NotAuthorized, RequestNotFound

UPLOAD_STATUSES = frozenset(
    {RequestStatus.PENDING.value, RequestStatus.INCOMPLETE.value, RequestStatus.UNDER_REVIEW_OFFICER.value}
)
DELETE_STATUSES = frozenset({RequestStatus.PENDING.value, RequestStatus.INCOMPLETE.value})


class RequiredDocumentsCheck:
    """Completeness check consulted before review transitions."""

    def __init__(self, minimum: int | None = None):
        self.minimum = settings.required_document_count if minimum is None else minimum

    async def is_complete(self, session: AsyncSession, request: FundRequest) -> bool:
        if self.minimum <= 0:
            return True
        result = await session.execute(
            select(func.count(RequestDocument.id)).where(RequestDocument.request_id == request.id)
        )
        return result.scalar_one() >= self.minimum


async def list_documents(session: AsyncSession, request_id: int) -> list[RequestDocument]:
    result = await session.execute(
        select(RequestDocument)
        .where(RequestDocument.request_id == request_id)
        .order_by(RequestDocument.uploaded_at.asc(), RequestDocument.id.asc())
    )
    return list(result.scalars().all())


def add_document(
    session: AsyncSession,
    request: FundRequest,
    actor: Actor,
    file_name: str,
    file_url: str,
    *,
    now: datetime,
) -> RequestDocument:
    if request.applicant_id != actor.id and not actor.is_hr:
        raise NotAuthorized("Only the applicant or HR staff can attach documents")
    if request.status not in UPLOAD_STATUSES:
        raise InvalidStateTransition(request.status, "attach documents to")
    document = RequestDocument(
        request_id=request.id,
        file_name=file_name,
        file_url=file_url,
        uploaded_by=actor.id,
        uploaded_at=now,
    )
    session.add(document)
    return document


async def delete_document(session: AsyncSession, request: FundRequest, actor: Actor, document_id: int) -> None:
    result = await session.execute(
        select(RequestDocument).where(
            RequestDocument.id == document_id, RequestDocument.request_id == request.id
        )
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise RequestNotFound("document", document_id)
    if document.uploaded_by != actor.id:
        raise NotAuthorized("Only the uploader can delete a document")
    if request.status not in DELETE_STATUSES:
        raise InvalidStateTransition(request.status, "delete documents from")
    await session.delete(document)
