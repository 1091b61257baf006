from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_actor
from api.requests import build_router, request_to_response
from database import get_db
from models import RequestKind
from schemas.request import WithdrawalCreate
from services.access import Actor
from services.requests import WorkflowService, get_workflow_service

router = build_router(RequestKind.WITHDRAWAL, "/api/withdrawals", "withdrawals")


@router.post("", status_code=201)
async def request_withdrawal(
    body: WithdrawalCreate,
    db: AsyncSession = Depends(get_db),
    service: WorkflowService = Depends(get_workflow_service),
    actor: Actor = Depends(get_actor),
):
    withdrawal = await service.create_withdrawal(db, actor, body)
    return request_to_response(withdrawal)
