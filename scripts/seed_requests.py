"""
Seed demo loan and withdrawal requests at different workflow stages.
Run: python -m scripts.seed_requests (from the project root).
"""
import asyncio
import os
import sys
from datetime import date

# Add parent so we can import from the project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import AsyncSessionLocal, init_db
from models import EmploymentStatus, FundAccount, FundRequest, HRRole, RequestKind, UserRole
from schemas.action import ActionCommand, ActionPayload, ApproverAssignment, WorkflowAction
from schemas.request import LoanCreate, WithdrawalCreate
from services.access import Actor
from services.requests import WorkflowService

ASSISTANT = Actor(id=900, role=UserRole.HR.value, hr_role=HRRole.BENEFITS_ASSISTANT.value)
OFFICER = Actor(id=901, role=UserRole.HR.value, hr_role=HRRole.BENEFITS_OFFICER.value)
DEPT_HEAD = Actor(id=902, role=UserRole.HR.value, hr_role=HRRole.DEPT_HEAD.value)
MGMT = Actor(id=903, role=UserRole.HR.value, hr_role=HRRole.MGMT_APPROVER.value)

LOANS_DATA = [
    {"applicant": 101, "amount": 20_000, "repaymentTermMonths": 12, "purposeCategory": "Education", "stage": "pending"},
    {"applicant": 102, "amount": 45_000, "repaymentTermMonths": 24, "purposeCategory": "Medical", "stage": "awaiting"},
    {"applicant": 103, "amount": 15_000, "repaymentTermMonths": 6, "purposeCategory": "Housing", "stage": "approved"},
]

# Balance snapshots the applicants borrow or withdraw against
ACCOUNTS_DATA = [
    {"user_id": 101, "employee_total": 60_000, "employer_total": 60_000, "date_hired": date(2019, 6, 1)},
    {"user_id": 102, "employee_total": 90_000, "employer_total": 90_000, "date_hired": date(2016, 2, 15)},
    {"user_id": 103, "employee_total": 40_000, "employer_total": 40_000, "date_hired": date(2021, 9, 1)},
    {"user_id": 104, "employee_total": 85_000, "employer_total": 85_000, "date_hired": date(2018, 1, 8),
     "employment_status": EmploymentStatus.RESIGNED.value},
    {"user_id": 105, "employee_total": 130_000, "employer_total": 130_000, "date_hired": date(1995, 4, 3),
     "employment_status": EmploymentStatus.RETIRED.value},
]

WITHDRAWALS_DATA = [
    {"applicant": 104, "requestType": "Resignation", "payoutAmount": 80_000, "stage": "pending"},
    {"applicant": 105, "requestType": "Retirement", "payoutAmount": 250_000, "stage": "review"},
]


async def _advance(
    service: WorkflowService, session: AsyncSession, kind: RequestKind, request_id: int, actor: Actor,
    action: WorkflowAction, **payload
) -> None:
    request = await service.get_request(session, kind, request_id, actor)
    command = ActionCommand(action=action, payload=ActionPayload(**payload), expected_version=request.version)
    await service.perform(session, kind, request_id, actor, command)


async def _walk(service: WorkflowService, session: AsyncSession, kind: RequestKind, request_id: int, stage: str) -> None:
    """Advance a freshly created request to the requested demo stage."""
    if stage == "pending":
        return
    await service.add_document(session, kind, request_id, ASSISTANT, "payslip.pdf", f"seed/{request_id}/payslip.pdf")
    await _advance(service, session, kind, request_id, ASSISTANT, WorkflowAction.MARK_READY)
    if kind is RequestKind.WITHDRAWAL:
        return

    approvers = [
        ApproverAssignment(approver_id=DEPT_HEAD.id, sequence=1),
        ApproverAssignment(approver_id=MGMT.id, sequence=2),
    ]
    await _advance(service, session, kind, request_id, OFFICER, WorkflowAction.MOVE_TO_REVIEW, approvers=approvers)
    if stage == "approved":
        await _advance(service, session, kind, request_id, DEPT_HEAD, WorkflowAction.APPROVE)
        await _advance(service, session, kind, request_id, MGMT, WorkflowAction.APPROVE)


async def seed():
    await init_db()
    service = WorkflowService()
    async with AsyncSessionLocal() as session:
        existing = await session.execute(select(func.count(FundRequest.id)))
        if existing.scalar_one() > 0:
            print("Requests already seeded, skipping")
            return

        session.add_all(FundAccount(**data) for data in ACCOUNTS_DATA)
        await session.commit()
        print(f"Seeded {len(ACCOUNTS_DATA)} fund accounts")

        for data in LOANS_DATA:
            applicant = Actor(id=data["applicant"], role=UserRole.EMPLOYEE.value)
            loan = await service.create_loan(session, applicant, LoanCreate.model_validate({**data, "consentAcknowledged": True}))
            await _walk(service, session, RequestKind.LOAN, loan.id, data["stage"])
            print(f"Seeded loan #{loan.id} ({data['stage']})")

        for data in WITHDRAWALS_DATA:
            applicant = Actor(id=data["applicant"], role=UserRole.EMPLOYEE.value)
            withdrawal = await service.create_withdrawal(
                session, applicant, WithdrawalCreate.model_validate({**data, "consentAcknowledged": True})
            )
            await _walk(service, session, RequestKind.WITHDRAWAL, withdrawal.id, data["stage"])
            print(f"Seeded withdrawal #{withdrawal.id} ({data['stage']})")
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
