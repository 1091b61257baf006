"""
Request workflow service: creation, actions and reads for loans and withdrawals.

Every action runs under a per-request lock and commits state, approval chain
and history together. Notifications go out only after the commit succeeds.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models import FundRequest, RequestDocument, RequestHistory, RequestKind, RequestStatus
from models.enums import TERMINAL_STATUSES
from schemas.action import AccessFlags, ActionCommand
from schemas.request import LoanCreate, RequestFilters, WithdrawalCreate
from services import documents as document_registry
from services import policy, workflow
from services.access import Actor, resolve_access
from services.balances import AccountBalanceProvider, FundBalanceProvider
from services.documents import RequiredDocumentsCheck
from services.errors import ConcurrencyConflict, NotAuthorized, RequestNotFound, ValidationError
from services.history import append_history, list_history
from services.notifications import LoggingNotificationSink, NotificationSink, build_notifications

logger = logging.getLogger(__name__)

NOUNS = {
    RequestKind.LOAN.value: "loan",
    RequestKind.WITHDRAWAL.value: "withdrawal request",
}

_CLOSED_LOAN_STATUSES = frozenset(s.value for s in TERMINAL_STATUSES)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestLocks:
    """One asyncio.Lock per request id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, request_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(request_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[request_id] = lock
        async with lock:
            yield


@dataclass
class ActionResult:
    request: FundRequest
    access: AccessFlags
    outcome: workflow.TransitionOutcome


class WorkflowService:
    def __init__(
        self,
        notifier: Optional[NotificationSink] = None,
        documents: Optional[RequiredDocumentsCheck] = None,
        locks: Optional[RequestLocks] = None,
        balances: Optional[FundBalanceProvider] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.notifier = notifier or LoggingNotificationSink()
        self.documents = documents or RequiredDocumentsCheck()
        self.locks = locks or RequestLocks()
        self.balances = balances or AccountBalanceProvider()
        self.clock = clock

    # ---- creation ---------------------------------------------------------

    async def create_loan(self, session: AsyncSession, actor: Actor, body: LoanCreate) -> FundRequest:
        policy.require_consent(body.consent_acknowledged)
        policy.validate_loan_terms(body.amount, body.repayment_term_months)
        open_loans = await session.execute(
            select(func.count(FundRequest.id)).where(
                FundRequest.kind == RequestKind.LOAN.value,
                FundRequest.applicant_id == actor.id,
                FundRequest.status.not_in(_CLOSED_LOAN_STATUSES),
            )
        )
        if open_loans.scalar_one() > 0:
            raise ValidationError("Not eligible: existing loan application in progress")
        account = await self.balances.get_account(session, actor.id)
        policy.check_loan_eligibility(account, body.amount, self.clock().date())

        details = body.model_dump(exclude={"amount", "consent_acknowledged", "notes"})
        details["monthly_amortization"] = policy.monthly_amortization(body.amount, body.repayment_term_months)
        return await self._create(session, actor, RequestKind.LOAN, body.amount, details, body.notes)

    async def create_withdrawal(self, session: AsyncSession, actor: Actor, body: WithdrawalCreate) -> FundRequest:
        policy.require_consent(body.consent_acknowledged)
        policy.validate_withdrawal_terms(body.payout_amount)
        account = await self.balances.get_account(session, actor.id)
        policy.check_withdrawal_payout(account, body.request_type.value, body.payout_amount, self.clock().date())
        details = body.model_dump(mode="json", exclude={"payout_amount", "consent_acknowledged", "notes"})
        return await self._create(session, actor, RequestKind.WITHDRAWAL, body.payout_amount, details, body.notes)

    async def _create(
        self,
        session: AsyncSession,
        actor: Actor,
        kind: RequestKind,
        amount: int,
        details: dict,
        notes: Optional[str],
    ) -> FundRequest:
        now = self.clock()
        request = FundRequest(
            kind=kind.value,
            status=RequestStatus.PENDING.value,
            applicant_id=actor.id,
            amount=amount,
            details=details,
            consent_acknowledged=True,
            notes=notes,
            ready_for_review=False,
            approvals=[],
            created_at=now,
            updated_at=now,
        )
        session.add(request)
        await session.flush()
        append_history(session, request, "Application submitted", actor.id, now=now)
        await session.commit()
        logger.info("%s %s created by user %s", NOUNS[kind.value].capitalize(), request.id, actor.id)
        return request

    # ---- workflow actions -------------------------------------------------

    async def perform(
        self,
        session: AsyncSession,
        kind: RequestKind,
        request_id: int,
        actor: Actor,
        command: ActionCommand,
    ) -> ActionResult:
        async with self.locks.hold(request_id):
            try:
                request = await self._load_visible(session, kind, request_id, actor, for_update=True)
                # Compare-and-swap: the action only applies to the version the caller last read
                if command.expected_version != request.version:
                    raise ConcurrencyConflict(request_id)

                transition = workflow.transition_for(request, command.action)
                documents_complete = True
                if transition.requires_documents:
                    documents_complete = await self.documents.is_complete(session, request)
                account = None
                if transition.requires_account:
                    account = policy.require_account(await self.balances.get_account(session, request.applicant_id))

                now = self.clock()
                outcome = workflow.apply_transition(
                    request,
                    command.action,
                    actor,
                    command.payload,
                    now=now,
                    documents_complete=documents_complete,
                    account=account,
                )
                append_history(session, request, outcome.label, actor.id, outcome.comments, now=now)
                await session.commit()
            except StaleDataError as e:
                await session.rollback()
                raise ConcurrencyConflict(request_id) from e
            except Exception:
                await session.rollback()
                raise
            access = resolve_access(request, actor)

        logger.info(
            "%s %s: %s by user %s (%s -> %s)",
            NOUNS[kind.value].capitalize(),
            request.id,
            command.action.value,
            actor.id,
            outcome.previous_status,
            request.status,
        )
        await self._dispatch(outcome)
        return ActionResult(request=request, access=access, outcome=outcome)

    async def _dispatch(self, outcome: workflow.TransitionOutcome) -> None:
        for notification in build_notifications(outcome):
            try:
                await self.notifier.send(notification)
            except Exception:
                logger.exception(
                    "Failed to notify user %s about request %s", notification.user_id, outcome.request.id
                )

    # ---- documents --------------------------------------------------------

    async def add_document(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor, file_name: str, file_url: str
    ) -> RequestDocument:
        async with self.locks.hold(request_id):
            try:
                request = await self._load_visible(session, kind, request_id, actor)
                now = self.clock()
                document = document_registry.add_document(session, request, actor, file_name, file_url, now=now)
                append_history(session, request, "Document uploaded", actor.id, file_name, now=now)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return document

    async def delete_document(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor, document_id: int
    ) -> None:
        async with self.locks.hold(request_id):
            try:
                request = await self._load_visible(session, kind, request_id, actor)
                await document_registry.delete_document(session, request, actor, document_id)
                append_history(session, request, "Document removed", actor.id, now=self.clock())
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def list_documents(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor
    ) -> list[RequestDocument]:
        await self._load_visible(session, kind, request_id, actor)
        return await document_registry.list_documents(session, request_id)

    # ---- reads ------------------------------------------------------------

    async def get_request(self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor) -> FundRequest:
        return await self._load_visible(session, kind, request_id, actor)

    async def get_with_access(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor
    ) -> tuple[FundRequest, AccessFlags]:
        # Status and chain are read under the same lock as writers, so flags never mix two states.
        async with self.locks.hold(request_id):
            request = await self._load_visible(session, kind, request_id, actor)
            return request, resolve_access(request, actor)

    async def history(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor, newest_first: bool = False
    ) -> list[RequestHistory]:
        await self._load_visible(session, kind, request_id, actor)
        return await list_history(session, request_id, newest_first=newest_first)

    async def list_requests(
        self, session: AsyncSession, kind: RequestKind, filters: RequestFilters, actor: Actor
    ) -> list[FundRequest]:
        stmt = select(FundRequest).where(FundRequest.kind == kind.value)
        if not actor.is_hr:
            # Employees only ever see their own requests
            stmt = stmt.where(FundRequest.applicant_id == actor.id)
        if filters.status:
            stmt = stmt.where(FundRequest.status == filters.status)
        if filters.applicant_id is not None:
            stmt = stmt.where(FundRequest.applicant_id == filters.applicant_id)
        if filters.start_date:
            stmt = stmt.where(FundRequest.created_at >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(FundRequest.created_at <= filters.end_date)
        result = await session.execute(stmt.order_by(FundRequest.created_at.desc(), FundRequest.id.desc()))
        return list(result.scalars().all())

    async def status_summary(self, session: AsyncSession, kind: RequestKind, actor: Actor) -> list[dict]:
        if not actor.is_hr:
            raise NotAuthorized("Only HR staff can view the status summary")
        result = await session.execute(
            select(FundRequest.status, func.count(FundRequest.id))
            .where(FundRequest.kind == kind.value)
            .group_by(FundRequest.status)
            .order_by(FundRequest.status)
        )
        return [{"status": status, "count": count} for status, count in result.all()]

    async def _load_visible(
        self, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor, for_update: bool = False
    ) -> FundRequest:
        """Load a request the caller may see; other applicants' requests look missing."""
        request = await self._load(session, kind, request_id, for_update=for_update)
        if not actor.is_hr and request.applicant_id != actor.id:
            raise RequestNotFound(NOUNS[kind.value], request_id)
        return request

    async def _load(
        self, session: AsyncSession, kind: RequestKind, request_id: int, for_update: bool = False
    ) -> FundRequest:
        stmt = (
            select(FundRequest)
            .where(FundRequest.id == request_id, FundRequest.kind == kind.value)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFound(NOUNS[kind.value], request_id)
        return request


workflow_service = WorkflowService()


def get_workflow_service() -> WorkflowService:
    return workflow_service
