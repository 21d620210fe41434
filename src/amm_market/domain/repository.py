"""Repository Protocol — dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.enums import MarketStatus, Outcome
from src.amm_market.domain.models import Market


class MarketRepositoryProtocol(Protocol):
    async def insert_market(self, db: AsyncSession, market: Market) -> Market: ...

    async def get_market_by_id(
        self, db: AsyncSession, market_id: str
    ) -> Market | None: ...

    async def get_market_for_update(
        self, db: AsyncSession, market_id: str
    ) -> Market | None: ...

    async def find_by_prefix(
        self, db: AsyncSession, prefix: str
    ) -> Market | None: ...

    async def list_markets(
        self,
        db: AsyncSession,
        status: MarketStatus | None,
        group_id: str | None,
        limit: int,
    ) -> list[Market]: ...

    async def update_trade_state(
        self,
        db: AsyncSession,
        market_id: str,
        shares_yes: Decimal,
        shares_no: Decimal,
        total_volume: Decimal,
    ) -> None: ...

    async def mark_resolved(
        self,
        db: AsyncSession,
        market_id: str,
        outcome: Outcome,
        resolved_at: datetime,
        dispute_deadline: datetime,
    ) -> Market: ...

    async def update_status(
        self,
        db: AsyncSession,
        market_id: str,
        status: MarketStatus,
        resolved_outcome: Outcome | None = None,
    ) -> None: ...

    async def mark_finalized(
        self, db: AsyncSession, market_id: str, finalized_at: datetime
    ) -> None: ...

    async def list_expired_resolved(
        self, db: AsyncSession, now: datetime
    ) -> list[str]: ...
