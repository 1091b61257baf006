from models.account import FundAccount
from models.approval import ApprovalStep
from models.document import RequestDocument
from models.enums import (
    ApprovalDecision,
    EmploymentStatus,
    HRRole,
    RequestKind,
    RequestStatus,
    UserRole,
    WithdrawalType,
)
from models.history import RequestHistory
from models.request import FundRequest

__all__ = [
    "ApprovalDecision",
    "ApprovalStep",
    "EmploymentStatus",
    "FundAccount",
    "FundRequest",
    "HRRole",
    "RequestDocument",
    "RequestHistory",
    "RequestKind",
    "RequestStatus",
    "UserRole",
    "WithdrawalType",
]
