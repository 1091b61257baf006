"""
Capability resolution: which workflow actions a caller may take on a request.

Flags are a pure function of the request's current state, its approval chain
and the caller's identity. They are recomputed on every read and never stored.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from models import FundRequest, HRRole, RequestKind, RequestStatus, UserRole
from schemas.action import AccessFlags
from services import approval_chain

_OPEN_FOR_CANCEL = (
    RequestStatus.PENDING.value,
    RequestStatus.INCOMPLETE.value,
    RequestStatus.UNDER_REVIEW_OFFICER.value,
)

# Approved is excluded: cancelling would set a second terminal timestamp.
CANCELLABLE_STATUSES = {
    RequestKind.LOAN.value: frozenset(_OPEN_FOR_CANCEL + (RequestStatus.AWAITING_APPROVALS.value,)),
    RequestKind.WITHDRAWAL.value: frozenset(_OPEN_FOR_CANCEL),
}

ASSISTANT_ROLES = frozenset({HRRole.BENEFITS_ASSISTANT.value, HRRole.BENEFITS_OFFICER.value})
OFFICER_ROLES = frozenset({HRRole.BENEFITS_OFFICER.value})


@dataclass(frozen=True)
class Actor:
    """The caller as reported by the identity provider."""

    id: int
    role: str
    hr_role: Optional[str] = None

    @property
    def is_hr(self) -> bool:
        return self.role == UserRole.HR.value

    @property
    def is_assistant(self) -> bool:
        return self.is_hr and self.hr_role in ASSISTANT_ROLES

    @property
    def is_officer(self) -> bool:
        return self.is_hr and self.hr_role in OFFICER_ROLES


def resolve_access(request: FundRequest, actor: Actor) -> AccessFlags:
    is_applicant = request.applicant_id == actor.id
    status = request.status

    # Staff never act on their own requests; the applicant keeps cancel/resubmit.
    if is_applicant:
        return AccessFlags(
            can_resubmit=status == RequestStatus.INCOMPLETE,
            can_cancel=status in _cancellable(request.kind),
        )

    if RequestKind(request.kind) is RequestKind.LOAN:
        return _loan_access(request, actor)
    return _withdrawal_access(request, actor)


def _cancellable(kind: str) -> frozenset[str]:
    return CANCELLABLE_STATUSES[RequestKind(kind).value]


def _can_screen(request: FundRequest, actor: Actor) -> bool:
    """Assistant pre-screening: unclaimed, or claimed by the same assistant."""
    return actor.is_assistant and request.assistant_id in (None, actor.id)


def _can_officiate(request: FundRequest, actor: Actor) -> bool:
    """Officer review: not the screening assistant, and the assigned officer once there is one."""
    return (
        actor.is_officer
        and request.assistant_id != actor.id
        and request.officer_id in (None, actor.id)
    )


def _loan_access(request: FundRequest, actor: Actor) -> AccessFlags:
    status = request.status
    flags: dict[str, bool] = {}

    if status == RequestStatus.PENDING:
        screen = _can_screen(request, actor)
        flags.update(can_mark_ready=screen, can_mark_incomplete=screen, can_cancel=screen or actor.is_officer)

    elif status == RequestStatus.INCOMPLETE:
        screen = _can_screen(request, actor)
        flags.update(can_mark_ready=screen, can_cancel=screen or actor.is_officer)

    elif status == RequestStatus.UNDER_REVIEW_OFFICER:
        officer = _can_officiate(request, actor)
        flags.update(
            can_move_to_review=officer,
            can_assign_approvers=officer,
            can_mark_incomplete=officer,
            can_cancel=officer,
        )

    elif status == RequestStatus.AWAITING_APPROVALS:
        is_current = approval_chain.current_approver(request) == actor.id
        is_officer = actor.is_officer and request.officer_id == actor.id
        flags.update(
            can_approve=is_current,
            can_reject=is_current,
            can_assign_approvers=is_officer and not approval_chain.has_started(request),
            can_cancel=is_officer,
        )

    elif status == RequestStatus.APPROVED:
        flags["can_release"] = actor.is_officer and request.officer_id == actor.id

    return AccessFlags(**flags)


def _withdrawal_access(request: FundRequest, actor: Actor) -> AccessFlags:
    status = request.status
    flags: dict[str, bool] = {}

    if status == RequestStatus.PENDING:
        screen = _can_screen(request, actor)
        flags.update(can_mark_ready=screen, can_mark_incomplete=screen, can_cancel=screen or actor.is_officer)

    elif status == RequestStatus.INCOMPLETE:
        screen = _can_screen(request, actor)
        flags.update(can_mark_ready=screen, can_cancel=screen or actor.is_officer)

    elif status == RequestStatus.UNDER_REVIEW_OFFICER:
        officer = _can_officiate(request, actor)
        flags.update(
            can_approve=officer,
            can_reject=officer,
            can_mark_incomplete=officer,
            can_cancel=officer,
        )

    elif status == RequestStatus.APPROVED:
        flags["can_release"] = actor.is_officer and request.officer_id == actor.id

    return AccessFlags(**flags)
