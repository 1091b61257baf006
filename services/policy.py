"""
Fund policy checks applied when a request is created or corrected.
Details are stored snake_case; amounts are whole currency units.

Eligibility is measured against the member's fund account: the employee share
is always vested, the employer share only after the vesting cliff (or at once
for retirement, redundancy, disability and death payouts).
"""
from __future__ import annotations

import math
from datetime import date
from typing import Any, Optional

from config import settings
from models import EmploymentStatus, FundAccount, WithdrawalType
from services.errors import ValidationError

IMMEDIATE_VESTING = frozenset(
    {
        WithdrawalType.RETIREMENT.value,
        WithdrawalType.REDUNDANCY.value,
        WithdrawalType.DISABILITY.value,
        WithdrawalType.DEATH.value,
    }
)
FULL_BALANCE_PAYOUTS = frozenset(
    {WithdrawalType.RETIREMENT.value, WithdrawalType.DISABILITY.value, WithdrawalType.DEATH.value}
)


def monthly_amortization(amount: int, term_months: int) -> int:
    return math.ceil(amount / term_months)


def validate_loan_terms(amount: int | None, term_months: int | None) -> None:
    if amount is None or amount < settings.min_loan_amount:
        raise ValidationError(f"Minimum loan is {settings.min_loan_amount:,}")
    if term_months is None or term_months <= 0 or term_months > settings.max_repayment_months:
        raise ValidationError(
            f"Repayment term must be between 1 and {settings.max_repayment_months} months"
        )


def validate_withdrawal_terms(amount: int | None) -> None:
    if amount is None or amount < settings.min_withdrawal_amount:
        raise ValidationError(f"Minimum withdrawal is {settings.min_withdrawal_amount:,}")


def require_consent(consent_acknowledged: bool) -> None:
    if not consent_acknowledged:
        raise ValidationError("Consent must be acknowledged")


def require_account(account: Optional[FundAccount]) -> FundAccount:
    if account is None:
        raise ValidationError("Not eligible: no fund account on record")
    return account


# ---- vesting and caps ---------------------------------------------------------


def _type_value(withdrawal_type) -> Optional[str]:
    return WithdrawalType(withdrawal_type).value if withdrawal_type else None


def tenure_months(date_hired: date, today: date) -> int:
    return (today.year - date_hired.year) * 12 + (today.month - date_hired.month)


def vested_amount(account: FundAccount, today: date, withdrawal_type: Optional[str] = None) -> int:
    past_cliff = tenure_months(account.date_hired, today) >= settings.vesting_cliff_months
    if past_cliff or _type_value(withdrawal_type) in IMMEDIATE_VESTING:
        return account.total_balance
    return account.employee_total


def max_loan_amount(account: FundAccount, today: date) -> int:
    return math.floor(vested_amount(account, today) * settings.loan_cap)


def eligible_payout(account: FundAccount, withdrawal_type: str, today: date) -> int:
    if _type_value(withdrawal_type) in FULL_BALANCE_PAYOUTS:
        return account.total_balance
    return vested_amount(account, today, withdrawal_type)


def check_loan_eligibility(account: Optional[FundAccount], amount: int, today: date) -> None:
    account = require_account(account)
    if account.employment_status != EmploymentStatus.ACTIVE.value:
        raise ValidationError("Not eligible: employment status not Active")
    if vested_amount(account, today) <= 0:
        raise ValidationError("Not eligible: no vested balance")
    limit = max_loan_amount(account, today)
    if amount > limit:
        raise ValidationError(f"Requested amount exceeds the maximum loan of {limit:,}")


def check_withdrawal_payout(account: Optional[FundAccount], withdrawal_type: str, amount: int, today: date) -> None:
    account = require_account(account)
    limit = eligible_payout(account, withdrawal_type, today)
    if amount > limit:
        raise ValidationError(f"Requested amount exceeds the eligible payout of {limit:,}")


# ---- corrections ----------------------------------------------------------------


def apply_loan_correction(
    amount: int,
    details: dict[str, Any],
    changes: dict[str, Any],
    *,
    account: Optional[FundAccount] = None,
    today: Optional[date] = None,
) -> tuple[int, dict[str, Any]]:
    """Merge corrected loan fields, re-validate and recompute amortization."""
    new_amount = changes.get("amount") or amount
    merged = {**details, **{k: v for k, v in changes.items() if k != "amount"}}
    term = merged.get("repayment_term_months")
    validate_loan_terms(new_amount, term)
    if account is not None:
        check_loan_eligibility(account, new_amount, today or date.today())
    merged["monthly_amortization"] = monthly_amortization(new_amount, term)
    return new_amount, merged


def apply_withdrawal_correction(
    amount: int,
    details: dict[str, Any],
    changes: dict[str, Any],
    *,
    account: Optional[FundAccount] = None,
    today: Optional[date] = None,
) -> tuple[int, dict[str, Any]]:
    new_amount = changes.get("payout_amount") or amount
    merged = {**details, **{k: v for k, v in changes.items() if k != "payout_amount"}}
    validate_withdrawal_terms(new_amount)
    if account is not None:
        check_withdrawal_payout(account, merged.get("request_type"), new_amount, today or date.today())
    return new_amount, merged
