from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import FundAccount


class FundBalanceProvider(Protocol):
    async def get_account(self, session: AsyncSession, user_id: int) -> Optional[FundAccount]: ...


class AccountBalanceProvider:
    """Reads the member's balance snapshot from the fund_accounts table."""

    async def get_account(self, session: AsyncSession, user_id: int) -> Optional[FundAccount]:
        result = await session.execute(select(FundAccount).where(FundAccount.user_id == user_id))
        return result.scalar_one_or_none()
