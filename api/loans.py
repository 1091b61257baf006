from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor
from api.requests import build_router, request_to_response
from database import get_db
from models import RequestKind
from schemas.request import LoanCreate
from services.access import Actor
from services.requests import WorkflowService, get_workflow_service

router = build_router(RequestKind.LOAN, "/api/loans", "loans")


@router.post("", status_code=201)
async def apply_for_loan(
    body: LoanCreate,
    db: AsyncSession = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    actor: Actor = Depends(get_actor),
):
    loan = await service.create_loan(db, actor, body)
    return request_to_response(loan)
