"""
Sequential approval chains for loan requests.

A chain is the ordered list of ApprovalStep rows attached to a request. Steps
are numbered 1..N; while the chain is active exactly one step is current: the
first step, in sequence order, whose decision is still Pending. A rejection
closes the chain immediately and later approvers are never consulted.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Iterable

from models import ApprovalDecision, ApprovalStep, FundRequest
from schemas.action import ApproverAssignment
from services.errors import (
    ChainAlreadyResolved,
    DuplicateApprover,
    EmptyChain,
    NotCurrentApprover,
    ValidationError,
)


def validate_assignments(
    assignments: list[ApproverAssignment],
    *,
    forbidden: Iterable[int] = (),
    min_approvers: int = 1,
) -> list[ApproverAssignment]:
    """Check an approver list and return it sorted by requested sequence."""
    if not assignments:
        raise EmptyChain("At least one approver is required")

    approver_counts = Counter(a.approver_id for a in assignments)
    duplicates = sorted(i for i, n in approver_counts.items() if n > 1)
    if duplicates:
        raise DuplicateApprover(f"Duplicate approvers are not allowed: {duplicates}")

    sequence_counts = Counter(a.sequence for a in assignments)
    if any(n > 1 for n in sequence_counts.values()):
        raise ValidationError("Approval sequence numbers must be unique")

    blocked = set(forbidden) & set(approver_counts)
    if blocked:
        raise ValidationError(
            f"Users {sorted(blocked)} cannot approve this request"
        )

    if len(assignments) < min_approvers:
        raise ValidationError(f"At least {min_approvers} approvers are required")

    return sorted(assignments, key=lambda a: a.sequence)


def create_chain(
    request: FundRequest,
    assignments: list[ApproverAssignment],
    *,
    active: bool,
    forbidden: Iterable[int] = (),
    min_approvers: int = 1,
) -> list[ApprovalStep]:
    """Replace the request's chain; sequence numbers are normalized to 1..N."""
    if has_started(request):
        raise ChainAlreadyResolved("Approvers cannot be reassigned after a decision was recorded")
    ordered = validate_assignments(assignments, forbidden=forbidden, min_approvers=min_approvers)
    request.approvals = [
        ApprovalStep(
            approver_id=a.approver_id,
            sequence_order=position,
            decision=ApprovalDecision.PENDING.value,
            is_current=False,
        )
        for position, a in enumerate(ordered, start=1)
    ]
    sync_current(request, active=active)
    return request.approvals


def remove_approver(request: FundRequest, approver_id: int, *, active: bool, min_approvers: int = 1) -> ApprovalStep:
    """Drop a pending step and renumber the remaining steps in one go."""
    steps = request.approvals
    if is_resolved(request):
        raise ChainAlreadyResolved("The approval chain is already resolved")
    target = next((s for s in steps if s.approver_id == approver_id), None)
    if target is None:
        raise ValidationError(f"User {approver_id} is not an approver on this request")
    if target.decision != ApprovalDecision.PENDING.value:
        raise ValidationError("An approver who already decided cannot be removed")
    if len(steps) - 1 < max(min_approvers, 1):
        raise EmptyChain(f"At least {max(min_approvers, 1)} approvers must remain")

    request.approvals.remove(target)
    renumber(request)
    sync_current(request, active=active)
    return target


def renumber(request: FundRequest) -> None:
    for position, step in enumerate(ordered_steps(request), start=1):
        step.sequence_order = position


def record_decision(
    request: FundRequest,
    approver_id: int,
    decision: ApprovalDecision,
    comments: str | None,
    now: datetime,
) -> ApprovalStep:
    """Record the current approver's decision and advance the chain."""
    if not request.approvals:
        raise EmptyChain("No approvers have been assigned to this request")
    current = current_step(request)
    if current is None:
        raise ChainAlreadyResolved("The approval chain is already resolved")
    if current.approver_id != approver_id:
        raise NotCurrentApprover("You cannot approve yet. It is not your turn.")

    current.decision = decision.value
    current.reviewed_at = now
    current.comments = comments
    sync_current(request, active=True)
    return current


def sync_current(request: FundRequest, *, active: bool) -> None:
    """Recompute is_current so that at most one step carries it."""
    steps = ordered_steps(request)
    next_pending = None
    if active and not any(s.decision == ApprovalDecision.REJECTED.value for s in steps):
        next_pending = next((s for s in steps if s.decision == ApprovalDecision.PENDING.value), None)
    for step in steps:
        step.is_current = step is next_pending


def ordered_steps(request: FundRequest) -> list[ApprovalStep]:
    return sorted(request.approvals, key=lambda s: s.sequence_order)


def current_step(request: FundRequest) -> ApprovalStep | None:
    return next((s for s in request.approvals if s.is_current), None)


def current_approver(request: FundRequest) -> int | None:
    step = current_step(request)
    return step.approver_id if step else None


def has_started(request: FundRequest) -> bool:
    return any(s.decision != ApprovalDecision.PENDING.value for s in request.approvals)


def is_fully_approved(request: FundRequest) -> bool:
    return bool(request.approvals) and all(
        s.decision == ApprovalDecision.APPROVED.value for s in request.approvals
    )


def is_resolved(request: FundRequest) -> bool:
    return is_fully_approved(request) or any(
        s.decision == ApprovalDecision.REJECTED.value for s in request.approvals
    )
