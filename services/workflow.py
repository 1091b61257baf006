"""
Status transition engine for loan and withdrawal requests.

Each request kind has its own transition table. A transition names the
statuses it may start from, the capability flag the caller needs, and whether
a reason or supporting documents are required. `apply_transition` validates
everything up front and only then mutates the request (and its approval
chain); persistence, history and notifications are the caller's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from config import settings
from models import ApprovalDecision, ApprovalStep, FundAccount, FundRequest, RequestKind, RequestStatus
from schemas.action import ActionPayload, WorkflowAction
from schemas.request import LoanCorrection, WithdrawalCorrection
from services import approval_chain, policy
from services.access import CANCELLABLE_STATUSES, Actor, resolve_access
from services.errors import InvalidStateTransition, NotAuthorized, ValidationError

S = RequestStatus


@dataclass(frozen=True)
class Transition:
    action: WorkflowAction
    sources: frozenset[str]
    target: Optional[str]
    capability: str
    label: str
    requires_reason: bool = False
    requires_documents: bool = False
    # Corrections are re-checked against the applicant's fund account
    requires_account: bool = False
    # Loan decisions are guarded by the approval chain instead of a flag
    chain_guarded: bool = False


@dataclass
class TransitionOutcome:
    request: FundRequest
    action: WorkflowAction
    actor: Actor
    previous_status: str
    label: str
    comments: Optional[str] = None
    decided_step: Optional[ApprovalStep] = None
    account: Optional[FundAccount] = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.request.status


def _states(*statuses: RequestStatus) -> frozenset[str]:
    return frozenset(s.value for s in statuses)


LOAN_TRANSITIONS: dict[WorkflowAction, Transition] = {
    t.action: t
    for t in (
        Transition(
            WorkflowAction.MARK_INCOMPLETE, _states(S.PENDING, S.UNDER_REVIEW_OFFICER), S.INCOMPLETE.value,
            "can_mark_incomplete", "Marked incomplete", requires_reason=True,
        ),
        Transition(
            WorkflowAction.RESUBMIT, _states(S.INCOMPLETE), S.PENDING.value,
            "can_resubmit", "Resubmitted with corrections", requires_account=True,
        ),
        Transition(
            WorkflowAction.MARK_READY, _states(S.PENDING, S.INCOMPLETE), S.UNDER_REVIEW_OFFICER.value,
            "can_mark_ready", "Marked ready for review",
        ),
        Transition(
            WorkflowAction.MOVE_TO_REVIEW, _states(S.UNDER_REVIEW_OFFICER), S.AWAITING_APPROVALS.value,
            "can_move_to_review", "Moved to approval review", requires_documents=True,
        ),
        Transition(
            WorkflowAction.ASSIGN_APPROVERS, _states(S.UNDER_REVIEW_OFFICER, S.AWAITING_APPROVALS), None,
            "can_assign_approvers", "Approvers assigned",
        ),
        Transition(
            WorkflowAction.REMOVE_APPROVER, _states(S.UNDER_REVIEW_OFFICER, S.AWAITING_APPROVALS), None,
            "can_assign_approvers", "Approver removed",
        ),
        Transition(
            WorkflowAction.APPROVE, _states(S.AWAITING_APPROVALS), None,
            "can_approve", "Approved", chain_guarded=True,
        ),
        Transition(
            WorkflowAction.REJECT, _states(S.AWAITING_APPROVALS), S.REJECTED.value,
            "can_reject", "Rejected", requires_reason=True, chain_guarded=True,
        ),
        Transition(
            WorkflowAction.RELEASE, _states(S.APPROVED), S.RELEASED.value,
            "can_release", "Released to trust bank",
        ),
        Transition(
            WorkflowAction.CANCEL, CANCELLABLE_STATUSES[RequestKind.LOAN.value], S.CANCELLED.value,
            "can_cancel", "Cancelled", requires_reason=True,
        ),
    )
}

# Withdrawals have no approval chain: the assigned officer decides directly.
WITHDRAWAL_TRANSITIONS: dict[WorkflowAction, Transition] = {
    t.action: t
    for t in (
        Transition(
            WorkflowAction.MARK_INCOMPLETE, _states(S.PENDING, S.UNDER_REVIEW_OFFICER), S.INCOMPLETE.value,
            "can_mark_incomplete", "Marked incomplete", requires_reason=True,
        ),
        Transition(
            WorkflowAction.RESUBMIT, _states(S.INCOMPLETE), S.PENDING.value,
            "can_resubmit", "Resubmitted with corrections", requires_account=True,
        ),
        Transition(
            WorkflowAction.MARK_READY, _states(S.PENDING, S.INCOMPLETE), S.UNDER_REVIEW_OFFICER.value,
            "can_mark_ready", "Marked ready for review", requires_documents=True,
        ),
        Transition(
            WorkflowAction.APPROVE, _states(S.UNDER_REVIEW_OFFICER), S.APPROVED.value,
            "can_approve", "Approved by HR officer",
        ),
        Transition(
            WorkflowAction.REJECT, _states(S.UNDER_REVIEW_OFFICER), S.REJECTED.value,
            "can_reject", "Rejected by HR officer", requires_reason=True,
        ),
        Transition(
            WorkflowAction.RELEASE, _states(S.APPROVED), S.RELEASED.value,
            "can_release", "Funds released",
        ),
        Transition(
            WorkflowAction.CANCEL, CANCELLABLE_STATUSES[RequestKind.WITHDRAWAL.value], S.CANCELLED.value,
            "can_cancel", "Cancelled", requires_reason=True,
        ),
    )
}

WORKFLOWS: dict[str, dict[WorkflowAction, Transition]] = {
    RequestKind.LOAN.value: LOAN_TRANSITIONS,
    RequestKind.WITHDRAWAL.value: WITHDRAWAL_TRANSITIONS,
}


def transition_for(request: FundRequest, action: WorkflowAction) -> Transition:
    """Look up the transition for this request's kind; unknown actions are illegal moves."""
    transition = WORKFLOWS[RequestKind(request.kind).value].get(action)
    if transition is None:
        raise InvalidStateTransition(request.status, action.value)
    return transition


def apply_transition(
    request: FundRequest,
    action: WorkflowAction,
    actor: Actor,
    payload: ActionPayload,
    *,
    now: datetime,
    documents_complete: bool = True,
    account: Optional[FundAccount] = None,
) -> TransitionOutcome:
    transition = transition_for(request, action)
    if request.status not in transition.sources:
        raise InvalidStateTransition(request.status, action.value)

    uses_chain = transition.chain_guarded and RequestKind(request.kind) is RequestKind.LOAN
    if not uses_chain and not resolve_access(request, actor).allows(transition.capability):
        raise NotAuthorized(f"You are not authorized to {action.value.replace('_', ' ')} this request")

    reason = (payload.reason or "").strip() or None
    if transition.requires_reason and reason is None:
        raise ValidationError(f"A reason is required to {action.value.replace('_', ' ')} a request")
    if transition.requires_documents and not documents_complete:
        raise ValidationError("Required documents have not been uploaded")

    outcome = TransitionOutcome(
        request=request,
        action=action,
        actor=actor,
        previous_status=request.status,
        label=transition.label,
        comments=reason,
        account=account,
    )
    _HANDLERS[action](outcome, transition, payload, now)
    request.updated_at = now
    return outcome


def _stamp(request: FundRequest, field: str, now: datetime) -> None:
    """Audit timestamps are written once, the first time their transition fires."""
    if getattr(request, field) is None:
        setattr(request, field, now)


def _chain_is_active(request: FundRequest) -> bool:
    return request.status == S.AWAITING_APPROVALS


def _approver_exclusions(request: FundRequest, officer_id: int) -> set[int]:
    return {officer_id, request.applicant_id}


def _mark_incomplete(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request, actor = outcome.request, outcome.actor
    if request.status == S.PENDING:
        request.assistant_id = actor.id
    else:
        request.officer_id = actor.id
    request.ready_for_review = False
    request.notes = outcome.comments
    request.status = transition.target


def _resubmit(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request = outcome.request
    changes = payload.details or {}
    is_loan = RequestKind(request.kind) is RequestKind.LOAN
    schema = LoanCorrection if is_loan else WithdrawalCorrection
    try:
        correction = schema.model_validate(changes)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid correction: {e.errors()[0]['msg']}") from e

    fields = correction.model_dump(mode="json", exclude_none=True)
    if is_loan:
        amount, details = policy.apply_loan_correction(
            request.amount, dict(request.details or {}), fields, account=outcome.account, today=now.date()
        )
    else:
        amount, details = policy.apply_withdrawal_correction(
            request.amount, dict(request.details or {}), fields, account=outcome.account, today=now.date()
        )

    request.amount = amount
    request.details = details
    request.ready_for_review = False
    request.status = transition.target
    if fields:
        outcome.comments = outcome.comments or f"Corrected: {', '.join(sorted(changes))}"


def _mark_ready(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request = outcome.request
    request.assistant_id = outcome.actor.id
    request.ready_for_review = True
    request.notes = None
    request.status = transition.target


def _move_to_review(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request, actor = outcome.request, outcome.actor
    if payload.approvers:
        approval_chain.create_chain(
            request,
            payload.approvers,
            active=False,
            forbidden=_approver_exclusions(request, actor.id),
            min_approvers=settings.min_loan_approvers,
        )
    request.officer_id = actor.id
    _stamp(request, "reviewed_at", now)
    request.status = transition.target
    approval_chain.sync_current(request, active=True)


def _assign_approvers(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request, actor = outcome.request, outcome.actor
    approval_chain.create_chain(
        request,
        payload.approvers or [],
        active=_chain_is_active(request),
        forbidden=_approver_exclusions(request, actor.id),
        min_approvers=settings.min_loan_approvers,
    )
    request.officer_id = actor.id
    outcome.comments = outcome.comments or "Approvers: " + ", ".join(
        str(s.approver_id) for s in approval_chain.ordered_steps(request)
    )


def _remove_approver(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    if payload.approver_id is None:
        raise ValidationError("approverId is required to remove an approver")
    approval_chain.remove_approver(
        outcome.request,
        payload.approver_id,
        active=_chain_is_active(outcome.request),
        min_approvers=settings.min_loan_approvers,
    )
    outcome.comments = outcome.comments or f"Removed approver {payload.approver_id}"


def _approve(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request, actor = outcome.request, outcome.actor
    if RequestKind(request.kind) is RequestKind.LOAN:
        step = approval_chain.record_decision(request, actor.id, ApprovalDecision.APPROVED, outcome.comments, now)
        outcome.decided_step = step
        outcome.label = f"Approved (step {step.sequence_order} of {len(request.approvals)})"
        if not approval_chain.is_fully_approved(request):
            return
    else:
        request.officer_id = actor.id
        _stamp(request, "reviewed_at", now)
    request.status = S.APPROVED.value
    _stamp(request, "approved_at", now)


def _reject(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request, actor = outcome.request, outcome.actor
    if RequestKind(request.kind) is RequestKind.LOAN:
        step = approval_chain.record_decision(request, actor.id, ApprovalDecision.REJECTED, outcome.comments, now)
        outcome.decided_step = step
        outcome.label = f"Rejected (step {step.sequence_order} of {len(request.approvals)})"
    else:
        request.officer_id = actor.id
        _stamp(request, "reviewed_at", now)
    request.notes = outcome.comments
    request.status = transition.target
    _stamp(request, "rejected_at", now)


def _release(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    reference = (payload.reference or "").strip()
    if not reference:
        raise ValidationError("A payment reference is required to release funds")
    request = outcome.request
    request.release_reference = reference
    request.status = transition.target
    _stamp(request, "released_at", now)
    outcome.comments = outcome.comments or f"Reference {reference}"


def _cancel(outcome: TransitionOutcome, transition: Transition, payload: ActionPayload, now: datetime) -> None:
    request = outcome.request
    request.notes = outcome.comments
    request.status = transition.target
    _stamp(request, "cancelled_at", now)
    approval_chain.sync_current(request, active=False)


_HANDLERS: dict[WorkflowAction, Callable[[TransitionOutcome, Transition, ActionPayload, datetime], None]] = {
    WorkflowAction.MARK_INCOMPLETE: _mark_incomplete,
    WorkflowAction.RESUBMIT: _resubmit,
    WorkflowAction.MARK_READY: _mark_ready,
    WorkflowAction.MOVE_TO_REVIEW: _move_to_review,
    WorkflowAction.ASSIGN_APPROVERS: _assign_approvers,
    WorkflowAction.REMOVE_APPROVER: _remove_approver,
    WorkflowAction.APPROVE: _approve,
    WorkflowAction.REJECT: _reject,
    WorkflowAction.RELEASE: _release,
    WorkflowAction.CANCEL: _cancel,
}
