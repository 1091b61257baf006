from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.enums import WithdrawalType


class LoanCreate(BaseModel):
    amount: int = Field(..., gt=0)
    repayment_term_months: int = Field(..., alias="repaymentTermMonths")
    purpose_category: str = Field(..., alias="purposeCategory", min_length=1)
    purpose_detail: Optional[str] = Field(None, alias="purposeDetail")
    co_maker_employee_id: Optional[str] = Field(None, alias="coMakerEmployeeId")
    consent_acknowledged: bool = Field(False, alias="consentAcknowledged")
    notes: Optional[str] = None

    model_config = {"populate_by_name": True}


class WithdrawalCreate(BaseModel):
    request_type: WithdrawalType = Field(..., alias="requestType")
    payout_amount: int = Field(..., alias="payoutAmount", gt=0)
    purpose_detail: Optional[str] = Field(None, alias="purposeDetail")
    payout_method: Optional[str] = Field(None, alias="payoutMethod")
    beneficiary_name: Optional[str] = Field(None, alias="beneficiaryName")
    beneficiary_relationship: Optional[str] = Field(None, alias="beneficiaryRelationship")
    beneficiary_contact: Optional[str] = Field(None, alias="beneficiaryContact")
    consent_acknowledged: bool = Field(False, alias="consentAcknowledged")
    notes: Optional[str] = None

    model_config = {"populate_by_name": True}


class LoanCorrection(BaseModel):
    """Fields an applicant may correct while the loan is Incomplete."""

    amount: Optional[int] = Field(None, gt=0)
    repayment_term_months: Optional[int] = Field(None, alias="repaymentTermMonths")
    purpose_category: Optional[str] = Field(None, alias="purposeCategory")
    purpose_detail: Optional[str] = Field(None, alias="purposeDetail")
    co_maker_employee_id: Optional[str] = Field(None, alias="coMakerEmployeeId")

    model_config = {"populate_by_name": True, "extra": "forbid"}


class WithdrawalCorrection(BaseModel):
    payout_amount: Optional[int] = Field(None, alias="payoutAmount", gt=0)
    request_type: Optional[WithdrawalType] = Field(None, alias="requestType")
    purpose_detail: Optional[str] = Field(None, alias="purposeDetail")
    payout_method: Optional[str] = Field(None, alias="payoutMethod")
    beneficiary_name: Optional[str] = Field(None, alias="beneficiaryName")
    beneficiary_relationship: Optional[str] = Field(None, alias="beneficiaryRelationship")
    beneficiary_contact: Optional[str] = Field(None, alias="beneficiaryContact")

    model_config = {"populate_by_name": True, "extra": "forbid"}


class RequestFilters(BaseModel):
    status: Optional[str] = None
    applicant_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
