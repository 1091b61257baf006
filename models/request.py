from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from database import Base
from models.enums import RequestStatus


class FundRequest(Base):
    """A loan or withdrawal request moving through the approval workflow."""

    __tablename__ = "fund_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(16), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=RequestStatus.PENDING.value, index=True)
    applicant_id = Column(Integer, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    # Kind-specific fields (loan terms, withdrawal type, beneficiary...)
    details = Column(JSON, nullable=False, default=dict)
    consent_acknowledged = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    ready_for_review = Column(Boolean, nullable=False, default=False)
    # Weak references to HR staff; identities live in the external provider
    assistant_id = Column(Integer, nullable=True, index=True)
    officer_id = Column(Integer, nullable=True, index=True)
    release_reference = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    approvals = relationship(
        "ApprovalStep",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalStep.sequence_order",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}
