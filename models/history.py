from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from database import Base


class RequestHistory(Base):
    """Append-only audit trail; rows are never updated or deleted."""

    __tablename__ = "request_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("fund_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(128), nullable=False)
    performed_by = Column(Integer, nullable=False)
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
