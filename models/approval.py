from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.enums import ApprovalDecision


class ApprovalStep(Base):
    __tablename__ = "approval_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("fund_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, nullable=False, index=True)
    # Uniqueness of approver/sequence per request is enforced by the chain manager;
    # a DB constraint would trip on renumbering within a single flush.
    sequence_order = Column(Integer, nullable=False)
    decision = Column(String(16), nullable=False, default=ApprovalDecision.PENDING.value)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    comments = Column(Text, nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)

    request = relationship("FundRequest", back_populates="approvals")
