from schemas.action import (
    AccessFlags,
    ActionCommand,
    ActionPayload,
    ApproverAssignment,
    WorkflowAction,
)
from schemas.document import DocumentCreate
from schemas.request import (
    LoanCorrection,
    LoanCreate,
    RequestFilters,
    WithdrawalCorrection,
    WithdrawalCreate,
)

__all__ = [
    "AccessFlags",
    "ActionCommand",
    "ActionPayload",
    "ApproverAssignment",
    "DocumentCreate",
    "LoanCorrection",
    "LoanCreate",
    "RequestFilters",
    "WithdrawalCorrection",
    "WithdrawalCreate",
    "WorkflowAction",
]
