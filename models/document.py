from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from database import Base


class RequestDocument(Base):
    __tablename__ = "request_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("fund_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    # Storage location handed back by the upload service
    file_url = Column(String(1024), nullable=False)
    uploaded_by = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
