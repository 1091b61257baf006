"""
Service-level tests against an in-memory SQLite database.
Run from project root: python -m pytest tests/test_request_service.py -v
"""
import asyncio
import unittest
from datetime import date

from models import EmploymentStatus, RequestKind, RequestStatus
from schemas.action import WorkflowAction
from schemas.request import LoanCreate, RequestFilters, WithdrawalCreate
from services.errors import (
    ConcurrencyConflict,
    NotAuthorized,
    NotCurrentApprover,
    RequestNotFound,
    ValidationError,
)
from services.requests import WorkflowService
from tests.support import (
    APPLICANT,
    APPROVER_A,
    APPROVER_B,
    APPROVER_C,
    ASSISTANT,
    OFFICER,
    OTHER_EMPLOYEE,
    OTHER_OFFICER,
    RecordingSink,
    chain,
    command,
    loan_body,
    make_database,
    open_account,
    ticking_clock,
    withdrawal_body,
)

A = WorkflowAction
LOAN = RequestKind.LOAN
WITHDRAWAL = RequestKind.WITHDRAWAL


class WorkflowServiceTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine, self.sessionmaker = await make_database()
        await open_account(self.sessionmaker)
        self.sink = RecordingSink()
        self.service = WorkflowService(notifier=self.sink, clock=ticking_clock())

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def create_loan(self, actor=APPLICANT, **overrides):
        async with self.sessionmaker() as session:
            loan = await self.service.create_loan(session, actor, LoanCreate.model_validate(loan_body(**overrides)))
            return loan.id

    async def create_withdrawal(self, **overrides):
        async with self.sessionmaker() as session:
            withdrawal = await self.service.create_withdrawal(
                session, APPLICANT, WithdrawalCreate.model_validate(withdrawal_body(**overrides))
            )
            return withdrawal.id

    async def act(self, request_id, actor, action, kind=LOAN, expected_version=None, **payload):
        """Perform an action; without an explicit version the current one is read first."""
        if expected_version is None:
            expected_version = (await self.reload(request_id, kind=kind)).version
        async with self.sessionmaker() as session:
            return await self.service.perform(
                session, kind, request_id, actor, command(action, expected_version=expected_version, **payload)
            )

    async def attach_document(self, request_id, kind=LOAN):
        async with self.sessionmaker() as session:
            await self.service.add_document(session, kind, request_id, APPLICANT, "payslip.pdf", "files/payslip.pdf")

    async def loan_awaiting(self, *approvers):
        loan_id = await self.create_loan()
        await self.attach_document(loan_id)
        await self.act(loan_id, ASSISTANT, A.MARK_READY)
        await self.act(loan_id, OFFICER, A.MOVE_TO_REVIEW, approvers=chain(*approvers))
        return loan_id

    async def withdrawal_under_review(self):
        withdrawal_id = await self.create_withdrawal()
        await self.attach_document(withdrawal_id, kind=WITHDRAWAL)
        await self.act(withdrawal_id, ASSISTANT, A.MARK_READY, kind=WITHDRAWAL)
        return withdrawal_id

    async def reload(self, request_id, kind=LOAN, actor=OFFICER):
        async with self.sessionmaker() as session:
            return await self.service.get_request(session, kind, request_id, actor)

    async def history(self, request_id, newest_first=False):
        async with self.sessionmaker() as session:
            return await self.service.history(session, LOAN, request_id, OFFICER, newest_first=newest_first)


class TestCreation(WorkflowServiceTestCase):
    async def test_loan_created_pending_with_amortization(self):
        loan = await self.reload(await self.create_loan(amount=12_000, repaymentTermMonths=5))
        self.assertEqual(loan.status, RequestStatus.PENDING)
        self.assertEqual(loan.applicant_id, APPLICANT.id)
        self.assertEqual(loan.details["monthly_amortization"], 2400)
        self.assertEqual(loan.version, 1)
        self.assertIsNotNone(loan.created_at)

    async def test_policy_limits(self):
        with self.assertRaises(ValidationError):
            await self.create_loan(amount=1_000)
        with self.assertRaises(ValidationError):
            await self.create_loan(repaymentTermMonths=36)
        with self.assertRaises(ValidationError):
            await self.create_loan(consentAcknowledged=False)

    async def test_one_open_loan_per_applicant(self):
        loan_id = await self.create_loan()
        with self.assertRaises(ValidationError):
            await self.create_loan()
        await self.act(loan_id, APPLICANT, A.CANCEL, reason="Applied twice")
        self.assertIsNotNone(await self.create_loan())

    async def test_withdrawal_created(self):
        withdrawal = await self.reload(await self.create_withdrawal(), kind=WITHDRAWAL)
        self.assertEqual(withdrawal.kind, WITHDRAWAL.value)
        self.assertEqual(withdrawal.amount, 60_000)
        self.assertEqual(withdrawal.details["request_type"], "Resignation")

    async def test_kinds_do_not_leak(self):
        loan_id = await self.create_loan()
        with self.assertRaises(RequestNotFound):
            await self.reload(loan_id, kind=WITHDRAWAL)


class TestFundEligibility(WorkflowServiceTestCase):
    async def test_loan_capped_at_half_of_vested_balance(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.create_loan(amount=60_001)
        self.assertIn("60,000", ctx.exception.message)
        self.assertIsNotNone(await self.create_loan(amount=60_000))

    async def test_employer_share_unvested_before_cliff(self):
        await open_account(self.sessionmaker, OTHER_EMPLOYEE.id, date_hired=date(2024, 6, 1))
        with self.assertRaises(ValidationError):
            await self.create_loan(actor=OTHER_EMPLOYEE, amount=40_000)
        self.assertIsNotNone(await self.create_loan(actor=OTHER_EMPLOYEE, amount=30_000))

    async def test_loan_requires_active_account(self):
        with self.assertRaises(ValidationError):
            await self.create_loan(actor=OTHER_EMPLOYEE)
        await open_account(self.sessionmaker, OTHER_EMPLOYEE.id, employment_status=EmploymentStatus.RESIGNED.value)
        with self.assertRaises(ValidationError):
            await self.create_loan(actor=OTHER_EMPLOYEE)

    async def test_withdrawal_limited_to_eligible_payout(self):
        with self.assertRaises(ValidationError):
            await self.create_withdrawal(payoutAmount=120_001)
        self.assertIsNotNone(await self.create_withdrawal(payoutAmount=120_000))

    async def test_retirement_pays_full_balance_before_cliff(self):
        await open_account(self.sessionmaker, OTHER_EMPLOYEE.id, date_hired=date(2024, 6, 1))
        async with self.sessionmaker() as session:
            with self.assertRaises(ValidationError):
                await self.service.create_withdrawal(
                    session, OTHER_EMPLOYEE, WithdrawalCreate.model_validate(withdrawal_body(payoutAmount=100_000))
                )
            retirement = await self.service.create_withdrawal(
                session,
                OTHER_EMPLOYEE,
                WithdrawalCreate.model_validate(withdrawal_body(requestType="Retirement", payoutAmount=100_000)),
            )
        self.assertEqual(retirement.amount, 100_000)

    async def test_resubmission_rechecks_cap(self):
        loan_id = await self.create_loan()
        await self.act(loan_id, ASSISTANT, A.MARK_INCOMPLETE, reason="Wrong amount")
        with self.assertRaises(ValidationError):
            await self.act(loan_id, APPLICANT, A.RESUBMIT, details={"amount": 90_000})
        loan = await self.reload(loan_id)
        self.assertEqual(loan.status, RequestStatus.INCOMPLETE)
        self.assertEqual(loan.amount, 20_000)

        result = await self.act(loan_id, APPLICANT, A.RESUBMIT, details={"amount": 50_000})
        self.assertEqual(result.request.status, RequestStatus.PENDING)
        self.assertEqual(result.request.amount, 50_000)


class TestVisibility(WorkflowServiceTestCase):
    async def test_other_employee_cannot_read_request(self):
        loan_id = await self.create_loan()
        await self.attach_document(loan_id)
        async with self.sessionmaker() as session:
            with self.assertRaises(RequestNotFound):
                await self.service.get_request(session, LOAN, loan_id, OTHER_EMPLOYEE)
            with self.assertRaises(RequestNotFound):
                await self.service.get_with_access(session, LOAN, loan_id, OTHER_EMPLOYEE)
            with self.assertRaises(RequestNotFound):
                await self.service.history(session, LOAN, loan_id, OTHER_EMPLOYEE)
            with self.assertRaises(RequestNotFound):
                await self.service.list_documents(session, LOAN, loan_id, OTHER_EMPLOYEE)
            self.assertEqual(await self.service.list_requests(session, LOAN, RequestFilters(), OTHER_EMPLOYEE), [])
            own = await self.service.list_documents(session, LOAN, loan_id, APPLICANT)
        self.assertEqual(len(own), 1)

    async def test_other_employee_cannot_act(self):
        loan_id = await self.create_loan()
        with self.assertRaises(RequestNotFound):
            await self.act(loan_id, OTHER_EMPLOYEE, A.CANCEL, reason="Not mine")
        self.assertEqual((await self.reload(loan_id)).status, RequestStatus.PENDING)

    async def test_summary_is_hr_only(self):
        await self.create_loan()
        async with self.sessionmaker() as session:
            with self.assertRaises(NotAuthorized):
                await self.service.status_summary(session, LOAN, APPLICANT)
            summary = await self.service.status_summary(session, LOAN, OFFICER)
        self.assertEqual(summary, [{"status": "Pending", "count": 1}])


class TestApprovalFlow(WorkflowServiceTestCase):
    async def test_round_trip_to_approved(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B, APPROVER_C)
        for approver in (APPROVER_A, APPROVER_B):
            result = await self.act(loan_id, approver, A.APPROVE)
            self.assertEqual(result.request.status, RequestStatus.AWAITING_APPROVALS)
        result = await self.act(loan_id, APPROVER_C, A.APPROVE)
        self.assertEqual(result.request.status, RequestStatus.APPROVED)
        self.assertFalse(result.access.can_approve)

        loan = await self.reload(loan_id)
        self.assertIsNotNone(loan.approved_at)
        self.assertIsNone(loan.rejected_at)
        self.assertIsNone(loan.cancelled_at)
        self.assertEqual([s.sequence_order for s in loan.approvals], [1, 2, 3])
        self.assertFalse(any(s.is_current for s in loan.approvals))

    async def test_rejection_short_circuit_persisted(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        await self.act(loan_id, APPROVER_A, A.REJECT, reason="Outstanding balance")
        loan = await self.reload(loan_id)
        self.assertEqual(loan.status, RequestStatus.REJECTED)
        async with self.sessionmaker() as session:
            _, access = await self.service.get_with_access(session, LOAN, loan_id, APPROVER_B)
        self.assertFalse(access.can_approve)

    async def test_guard_failure_changes_nothing(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        before = await self.reload(loan_id)
        entries_before = len(await self.history(loan_id))
        with self.assertRaises(NotCurrentApprover):
            await self.act(loan_id, APPROVER_B, A.APPROVE)
        after = await self.reload(loan_id)
        self.assertEqual(after.status, RequestStatus.AWAITING_APPROVALS)
        self.assertEqual(after.version, before.version)
        self.assertEqual([s.is_current for s in after.approvals], [True, False])
        self.assertEqual(len(await self.history(loan_id)), entries_before)

    async def test_access_reads_are_idempotent(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        async with self.sessionmaker() as session:
            _, first = await self.service.get_with_access(session, LOAN, loan_id, APPROVER_A)
            _, second = await self.service.get_with_access(session, LOAN, loan_id, APPROVER_A)
        self.assertEqual(first, second)
        self.assertTrue(first.can_approve)

    async def test_move_to_review_needs_documents(self):
        loan_id = await self.create_loan()
        await self.act(loan_id, ASSISTANT, A.MARK_READY)
        with self.assertRaises(ValidationError):
            await self.act(loan_id, OFFICER, A.MOVE_TO_REVIEW, approvers=chain(APPROVER_A, APPROVER_B))
        await self.attach_document(loan_id)
        result = await self.act(loan_id, OFFICER, A.MOVE_TO_REVIEW, approvers=chain(APPROVER_A, APPROVER_B))
        self.assertEqual(result.request.status, RequestStatus.AWAITING_APPROVALS)

    async def test_reassigning_replaces_chain(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        await self.act(loan_id, OFFICER, A.ASSIGN_APPROVERS, approvers=chain(APPROVER_C, APPROVER_A))
        loan = await self.reload(loan_id)
        self.assertEqual([(s.approver_id, s.sequence_order) for s in loan.approvals], [(APPROVER_C.id, 1), (APPROVER_A.id, 2)])
        self.assertTrue(loan.approvals[0].is_current)

    async def test_remove_approver_persists_renumbering(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B, APPROVER_C)
        await self.act(loan_id, OFFICER, A.REMOVE_APPROVER, approver_id=APPROVER_A.id)
        loan = await self.reload(loan_id)
        self.assertEqual([(s.approver_id, s.sequence_order) for s in loan.approvals], [(APPROVER_B.id, 1), (APPROVER_C.id, 2)])
        self.assertTrue(loan.approvals[0].is_current)


class TestHistoryAndNotifications(WorkflowServiceTestCase):
    async def test_cancel_appends_exactly_one_entry(self):
        loan_id = await self.create_loan()
        with self.assertRaises(ValidationError):
            await self.act(loan_id, APPLICANT, A.CANCEL, reason="")
        before = await self.history(loan_id)
        await self.act(loan_id, APPLICANT, A.CANCEL, reason="Found other financing")
        after = await self.history(loan_id)
        self.assertEqual(len(after), len(before) + 1)
        self.assertEqual(after[-1].action, "Cancelled")
        self.assertEqual(after[-1].comments, "Found other financing")
        self.assertEqual((await self.reload(loan_id)).status, RequestStatus.CANCELLED)

    async def test_history_order_is_read_time_choice(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        oldest_first = await self.history(loan_id)
        newest_first = await self.history(loan_id, newest_first=True)
        self.assertEqual([h.id for h in oldest_first], [h.id for h in reversed(newest_first)])
        self.assertEqual(oldest_first[0].action, "Application submitted")
        self.assertEqual(oldest_first[-1].action, "Moved to approval review")

    async def test_next_approver_and_applicant_notified(self):
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        recipients = [n.user_id for n in self.sink.sent]
        self.assertIn(APPROVER_A.id, recipients)
        self.assertIn(APPLICANT.id, recipients)
        self.sink.sent.clear()
        await self.act(loan_id, APPROVER_A, A.APPROVE)
        self.assertEqual([n.user_id for n in self.sink.sent], [APPROVER_B.id])

    async def test_notification_failure_keeps_transition(self):
        self.service.notifier = RecordingSink(fail=True)
        loan_id = await self.create_loan()
        with self.assertLogs("services.requests", level="ERROR"):
            await self.act(loan_id, ASSISTANT, A.MARK_INCOMPLETE, reason="Missing ID")
        self.assertEqual((await self.reload(loan_id)).status, RequestStatus.INCOMPLETE)


class TestConcurrency(WorkflowServiceTestCase):
    async def test_stale_version_rejected(self):
        loan_id = await self.create_loan()
        version = (await self.reload(loan_id)).version
        await self.act(loan_id, ASSISTANT, A.MARK_READY, expected_version=version)
        with self.assertRaises(ConcurrencyConflict):
            await self.act(loan_id, APPLICANT, A.CANCEL, expected_version=version, reason="Too slow")
        self.assertEqual((await self.reload(loan_id)).status, RequestStatus.UNDER_REVIEW_OFFICER)

    async def test_racing_approve_and_cancel_single_winner(self):
        """Approve and cancel issued against the same snapshot: exactly one applies."""
        loan_id = await self.loan_awaiting(APPROVER_A, APPROVER_B)
        version = (await self.reload(loan_id)).version

        results = await asyncio.gather(
            self.act(loan_id, APPROVER_A, A.APPROVE, expected_version=version),
            self.act(loan_id, OFFICER, A.CANCEL, expected_version=version, reason="Withdrawn by HR"),
            return_exceptions=True,
        )
        conflicts = [r for r in results if isinstance(r, ConcurrencyConflict)]
        successes = [r for r in results if not isinstance(r, Exception)]
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(len(successes), 1)

        loan = await self.reload(loan_id)
        self.assertEqual(loan.version, version + 1)
        self.assertEqual(loan.status, successes[0].request.status)
        decisions = [s.decision for s in loan.approvals]
        if loan.status == RequestStatus.CANCELLED:
            self.assertEqual(decisions, ["Pending", "Pending"])
        else:
            self.assertEqual(decisions, ["Approved", "Pending"])
            self.assertIsNone(loan.cancelled_at)

    async def test_racing_officer_decisions_single_winner(self):
        withdrawal_id = await self.withdrawal_under_review()
        version = (await self.reload(withdrawal_id, kind=WITHDRAWAL)).version

        results = await asyncio.gather(
            self.act(withdrawal_id, OFFICER, A.APPROVE, kind=WITHDRAWAL, expected_version=version),
            self.act(withdrawal_id, OTHER_OFFICER, A.REJECT, kind=WITHDRAWAL, expected_version=version, reason="No"),
            return_exceptions=True,
        )
        self.assertEqual(sum(isinstance(r, ConcurrencyConflict) for r in results), 1)
        winner = next(r for r in results if not isinstance(r, Exception))

        withdrawal = await self.reload(withdrawal_id, kind=WITHDRAWAL)
        self.assertEqual(withdrawal.status, winner.request.status)
        self.assertEqual(withdrawal.officer_id, winner.outcome.actor.id)
        stamps = [t for t in (withdrawal.approved_at, withdrawal.rejected_at) if t is not None]
        self.assertEqual(len(stamps), 1)


class TestWithdrawalFlow(WorkflowServiceTestCase):
    async def test_officer_decision_and_release(self):
        withdrawal_id = await self.withdrawal_under_review()
        await self.act(withdrawal_id, OFFICER, A.APPROVE, kind=WITHDRAWAL)
        result = await self.act(withdrawal_id, OFFICER, A.RELEASE, kind=WITHDRAWAL, reference="PAY-1001")
        self.assertEqual(result.request.status, RequestStatus.RELEASED)
        self.assertEqual(result.request.release_reference, "PAY-1001")

        async with self.sessionmaker() as session:
            summary = await self.service.status_summary(session, WITHDRAWAL, OFFICER)
            listed = await self.service.list_requests(
                session, WITHDRAWAL, RequestFilters(status=RequestStatus.RELEASED.value), OFFICER
            )
        self.assertEqual(summary, [{"status": "Released", "count": 1}])
        self.assertEqual([r.id for r in listed], [withdrawal_id])


if __name__ == "__main__":
    unittest.main()
