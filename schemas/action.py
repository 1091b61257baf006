from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class WorkflowAction(str, Enum):
    MARK_INCOMPLETE = "mark_incomplete"
    RESUBMIT = "resubmit"
    MARK_READY = "mark_ready"
    MOVE_TO_REVIEW = "move_to_review"
    ASSIGN_APPROVERS = "assign_approvers"
    REMOVE_APPROVER = "remove_approver"
    APPROVE = "approve"
    REJECT = "reject"
    RELEASE = "release"
    CANCEL = "cancel"


class ApproverAssignment(BaseModel):
    approver_id: int = Field(..., alias="approverId")
    sequence: int

    model_config = {"populate_by_name": True}


class ActionPayload(BaseModel):
    """Action-specific fields; which ones are required depends on the action."""

    reason: Optional[str] = None
    approvers: Optional[list[ApproverAssignment]] = None
    approver_id: Optional[int] = Field(None, alias="approverId")
    reference: Optional[str] = None
    # Corrected amount/terms sent with a resubmission
    details: Optional[dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class ActionCommand(BaseModel):
    """An action against the request version the caller last read."""

    action: WorkflowAction
    payload: ActionPayload = Field(default_factory=ActionPayload)
    expected_version: int = Field(..., alias="expectedVersion", ge=1)

    model_config = {"populate_by_name": True}


class AccessFlags(BaseModel):
    """Derived per caller on every read; never stored."""

    can_mark_ready: bool = False
    can_mark_incomplete: bool = False
    can_resubmit: bool = False
    can_move_to_review: bool = False
    can_assign_approvers: bool = False
    can_approve: bool = False
    can_reject: bool = False
    can_release: bool = False
    can_cancel: bool = False

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "frozen": True}

    def allows(self, flag: str) -> bool:
        return bool(getattr(self, flag))
