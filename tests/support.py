"""Shared builders for workflow tests."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from itertools import count

from database import build_engine, build_sessionmaker, init_db
from models import EmploymentStatus, FundAccount, FundRequest, HRRole, RequestKind, RequestStatus, UserRole
from schemas.action import ActionCommand, ActionPayload, ApproverAssignment, WorkflowAction
from services.access import Actor

APPLICANT = Actor(id=1, role=UserRole.EMPLOYEE.value)
OTHER_EMPLOYEE = Actor(id=2, role=UserRole.EMPLOYEE.value)
ASSISTANT = Actor(id=10, role=UserRole.HR.value, hr_role=HRRole.BENEFITS_ASSISTANT.value)
OFFICER = Actor(id=20, role=UserRole.HR.value, hr_role=HRRole.BENEFITS_OFFICER.value)
OTHER_OFFICER = Actor(id=21, role=UserRole.HR.value, hr_role=HRRole.BENEFITS_OFFICER.value)
APPROVER_A = Actor(id=31, role=UserRole.HR.value, hr_role=HRRole.DEPT_HEAD.value)
APPROVER_B = Actor(id=32, role=UserRole.HR.value, hr_role=HRRole.MGMT_APPROVER.value)
APPROVER_C = Actor(id=33, role=UserRole.HR.value, hr_role=HRRole.GENERAL_HR.value)
ADMIN = Actor(id=99, role=UserRole.ADMIN.value)

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def ticking_clock(start: datetime = NOW):
    """Clock returning a strictly increasing instant on every call."""
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


def make_request(
    kind: RequestKind = RequestKind.LOAN,
    status: RequestStatus = RequestStatus.PENDING,
    **fields,
) -> FundRequest:
    """Transient request for pure engine tests (never flushed)."""
    defaults = {
        "id": 1,
        "kind": kind.value,
        "status": status.value,
        "applicant_id": APPLICANT.id,
        "amount": 20_000,
        "details": {"repayment_term_months": 12, "purpose_category": "Education", "monthly_amortization": 1667}
        if kind is RequestKind.LOAN
        else {"request_type": "Resignation"},
        "consent_acknowledged": True,
        "ready_for_review": False,
        "approvals": [],
        "created_at": NOW,
    }
    defaults.update(fields)
    return FundRequest(**defaults)


def chain(*approvers: Actor) -> list[ApproverAssignment]:
    return [ApproverAssignment(approver_id=a.id, sequence=i) for i, a in enumerate(approvers, start=1)]


def command(action: WorkflowAction, expected_version: int, **payload) -> ActionCommand:
    return ActionCommand(action=action, payload=ActionPayload(**payload), expected_version=expected_version)


def loan_body(**overrides) -> dict:
    body = {
        "amount": 20_000,
        "repaymentTermMonths": 12,
        "purposeCategory": "Education",
        "consentAcknowledged": True,
    }
    body.update(overrides)
    return body


def withdrawal_body(**overrides) -> dict:
    body = {
        "requestType": "Resignation",
        "payoutAmount": 60_000,
        "consentAcknowledged": True,
    }
    body.update(overrides)
    return body


def make_account(user_id: int = APPLICANT.id, **fields) -> FundAccount:
    """Fund account hired well past the vesting cliff: 120,000 vested, 60,000 borrowable."""
    defaults = {
        "user_id": user_id,
        "employee_total": 60_000,
        "employer_total": 60_000,
        "date_hired": date(2018, 1, 15),
        "employment_status": EmploymentStatus.ACTIVE.value,
        "updated_at": NOW,
    }
    defaults.update(fields)
    return FundAccount(**defaults)


async def open_account(sessionmaker, user_id: int = APPLICANT.id, **fields) -> None:
    async with sessionmaker() as session:
        session.add(make_account(user_id, **fields))
        await session.commit()


async def make_database():
    """In-memory SQLite engine with all tables created."""
    engine = build_engine("sqlite+aiosqlite://", echo=False)
    await init_db(engine)
    return engine, build_sessionmaker(engine)


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, notification) -> None:
        if self.fail:
            raise RuntimeError("notification service unavailable")
        self.sent.append(notification)
