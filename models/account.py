from sqlalchemy import Column, Date, DateTime, Integer, String, func

from database import Base
from models.enums import EmploymentStatus


class FundAccount(Base):
    """Member balance snapshot kept in sync by the contributions ledger."""

    __tablename__ = "fund_accounts"

    user_id = Column(Integer, primary_key=True, autoincrement=False)
    employee_total = Column(Integer, nullable=False, default=0)
    employer_total = Column(Integer, nullable=False, default=0)
    date_hired = Column(Date, nullable=False)
    employment_status = Column(String(16), nullable=False, default=EmploymentStatus.ACTIVE.value)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def total_balance(self) -> int:
        return self.employee_total + self.employer_total
