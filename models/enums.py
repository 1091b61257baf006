from enum import Enum


class RequestKind(str, Enum):
    LOAN = "loan"
    WITHDRAWAL = "withdrawal"


class RequestStatus(str, Enum):
    PENDING = "Pending"
    INCOMPLETE = "Incomplete"
    UNDER_REVIEW_OFFICER = "UnderReviewOfficer"
    AWAITING_APPROVALS = "AwaitingApprovals"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    RELEASED = "Released"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.REJECTED, RequestStatus.RELEASED, RequestStatus.CANCELLED}
)


class ApprovalDecision(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class UserRole(str, Enum):
    EMPLOYEE = "Employee"
    HR = "HR"
    ADMIN = "Admin"


class HRRole(str, Enum):
    BENEFITS_ASSISTANT = "BenefitsAssistant"
    BENEFITS_OFFICER = "BenefitsOfficer"
    DEPT_HEAD = "DeptHead"
    MGMT_APPROVER = "MgmtApprover"
    GENERAL_HR = "GeneralHR"


class WithdrawalType(str, Enum):
    RETIREMENT = "Retirement"
    RESIGNATION = "Resignation"
    REDUNDANCY = "Redundancy"
    DISABILITY = "Disability"
    DEATH = "Death"
    OTHER = "Other"


class EmploymentStatus(str, Enum):
    ACTIVE = "Active"
    RESIGNED = "Resigned"
    RETIRED = "Retired"
    TERMINATED = "Terminated"
