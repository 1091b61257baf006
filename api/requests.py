from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor
from database import get_db
from models import ApprovalStep, FundRequest, RequestDocument, RequestHistory, RequestKind
from schemas.action import AccessFlags, ActionCommand
from schemas.document import DocumentCreate
from schemas.request import RequestFilters
from services import approval_chain
from services.access import Actor
from services.requests import WorkflowService, get_workflow_service
from utils.case import dict_keys_to_camel


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def request_to_response(r: FundRequest) -> dict[str, Any]:
    """Serialize a request with camelCase keys for the frontend."""
    return {
        "id": r.id,
        "kind": r.kind,
        "status": r.status,
        "applicantId": r.applicant_id,
        "amount": r.amount,
        "details": dict_keys_to_camel(r.details or {}),
        "notes": r.notes,
        "readyForReview": r.ready_for_review,
        "assistantId": r.assistant_id,
        "officerId": r.officer_id,
        "releaseReference": r.release_reference,
        "currentApproverId": approval_chain.current_approver(r),
        "version": r.version,
        "createdAt": _iso(r.created_at),
        "updatedAt": _iso(r.updated_at),
        "reviewedAt": _iso(r.reviewed_at),
        "approvedAt": _iso(r.approved_at),
        "releasedAt": _iso(r.released_at),
        "rejectedAt": _iso(r.rejected_at),
        "cancelledAt": _iso(r.cancelled_at),
    }


def step_to_response(s: ApprovalStep) -> dict[str, Any]:
    return {
        "id": s.id,
        "approverId": s.approver_id,
        "sequenceOrder": s.sequence_order,
        "decision": s.decision,
        "reviewedAt": _iso(s.reviewed_at),
        "comments": s.comments,
        "isCurrent": s.is_current,
    }


def history_to_response(h: RequestHistory) -> dict[str, Any]:
    return {
        "id": h.id,
        "requestId": h.request_id,
        "action": h.action,
        "performedBy": h.performed_by,
        "comments": h.comments,
        "createdAt": _iso(h.created_at),
    }


def document_to_response(d: RequestDocument) -> dict[str, Any]:
    return {
        "id": d.id,
        "requestId": d.request_id,
        "fileName": d.file_name,
        "fileUrl": d.file_url,
        "uploadedBy": d.uploaded_by,
        "uploadedAt": _iso(d.uploaded_at),
    }


def _detail_response(r: FundRequest, access: AccessFlags) -> dict[str, Any]:
    return {
        "request": request_to_response(r),
        "approvals": [step_to_response(s) for s in approval_chain.ordered_steps(r)],
        "access": access.model_dump(by_alias=True),
    }


def build_router(kind: RequestKind, prefix: str, tag: str) -> APIRouter:
    """Routes shared by loans and withdrawals; only the kind and create body differ."""
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.get("")
    async def list_requests(
        status: Optional[str] = None,
        applicant_id: Optional[int] = Query(None, alias="applicantId"),
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        filters = RequestFilters(status=status, applicant_id=applicant_id, start_date=start_date, end_date=end_date)
        requests = await service.list_requests(db, kind, filters, actor)
        return [request_to_response(r) for r in requests]

    @router.get("/summary")
    async def status_summary(
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        return await service.status_summary(db, kind, actor)

    @router.get("/{request_id}")
    async def get_request(
        request_id: int,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        request, access = await service.get_with_access(db, kind, request_id, actor)
        return _detail_response(request, access)

    @router.get("/{request_id}/access")
    async def get_access(
        request_id: int,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        _, access = await service.get_with_access(db, kind, request_id, actor)
        return access.model_dump(by_alias=True)

    @router.get("/{request_id}/approvals")
    async def get_approvals(
        request_id: int,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        request = await service.get_request(db, kind, request_id, actor)
        return [step_to_response(s) for s in approval_chain.ordered_steps(request)]

    @router.get("/{request_id}/history")
    async def get_history(
        request_id: int,
        order: Literal["asc", "desc"] = "asc",
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        entries = await service.history(db, kind, request_id, actor, newest_first=order == "desc")
        return [history_to_response(h) for h in entries]

    @router.post("/{request_id}/actions")
    async def perform_action(
        request_id: int,
        body: ActionCommand,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        result = await service.perform(db, kind, request_id, actor, body)
        return _detail_response(result.request, result.access)

    @router.get("/{request_id}/documents")
    async def list_documents(
        request_id: int,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        documents = await service.list_documents(db, kind, request_id, actor)
        return [document_to_response(d) for d in documents]

    @router.post("/{request_id}/documents", status_code=201)
    async def add_document(
        request_id: int,
        body: DocumentCreate,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        document = await service.add_document(db, kind, request_id, actor, body.file_name, body.file_url)
        return document_to_response(document)

    @router.delete("/{request_id}/documents/{document_id}", status_code=204)
    async def delete_document(
        request_id: int,
        document_id: int,
        db: AsyncSession = Depends(get_db),
        service: WorkflowService = Depends(get_workflow_service),
        actor: Actor = Depends(get_actor),
    ):
        await service.delete_document(db, kind, request_id, actor, document_id)

    return router
