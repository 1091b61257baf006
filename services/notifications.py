"""
Notification side channel. Messages are built from a committed transition and
handed to a sink; delivery is best-effort and never affects workflow state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from models import RequestKind, RequestStatus
from schemas.action import WorkflowAction
from services import approval_chain
from services.workflow import TransitionOutcome

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    user_id: int
    title: str
    message: str
    type: str = "info"
    data: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    async def send(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Default sink: writes notifications to the application log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification for user %s: %s - %s", notification.user_id, notification.title, notification.message
        )


_STATUS_MESSAGES = {
    RequestStatus.INCOMPLETE.value: ("Action required", "warning", "needs corrections before it can be reviewed"),
    RequestStatus.UNDER_REVIEW_OFFICER.value: ("Under review", "info", "is now under HR officer review"),
    RequestStatus.AWAITING_APPROVALS.value: ("Awaiting approvals", "info", "has been sent for approval"),
    RequestStatus.APPROVED.value: ("Approved", "success", "has been approved"),
    RequestStatus.REJECTED.value: ("Rejected", "error", "has been rejected"),
    RequestStatus.RELEASED.value: ("Funds released", "success", "has been released"),
    RequestStatus.CANCELLED.value: ("Cancelled", "warning", "has been cancelled"),
}


def build_notifications(outcome: TransitionOutcome) -> list[Notification]:
    request = outcome.request
    noun = "loan" if RequestKind(request.kind) is RequestKind.LOAN else "withdrawal request"
    data = {f"{RequestKind(request.kind).value}Id": request.id, "amount": request.amount}
    out: list[Notification] = []

    if outcome.status_changed and request.status in _STATUS_MESSAGES:
        title, kind, phrase = _STATUS_MESSAGES[request.status]
        message = f"Your {noun} #{request.id} {phrase}."
        if outcome.comments and request.status in (RequestStatus.INCOMPLETE, RequestStatus.REJECTED):
            message += f" Remarks: {outcome.comments}"
        if request.applicant_id != outcome.actor.id:
            out.append(Notification(request.applicant_id, f"{noun.capitalize()} {title.lower()}", message, kind, data))

    if outcome.action in (
        WorkflowAction.MOVE_TO_REVIEW,
        WorkflowAction.ASSIGN_APPROVERS,
        WorkflowAction.REMOVE_APPROVER,
        WorkflowAction.APPROVE,
    ):
        next_approver = approval_chain.current_approver(request)
        if next_approver is not None and next_approver != outcome.actor.id:
            out.append(
                Notification(
                    next_approver,
                    "Approval required",
                    f"{noun.capitalize()} #{request.id} is awaiting your approval.",
                    "action_required",
                    data,
                )
            )
    return out
