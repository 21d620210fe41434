"""MarketApplicationService — market creation and read-only queries.

create_market commits its own transaction; every other method is read-only.
Trading, resolution and finalization live in amm_ledger.
"""

import logging
import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.amm_common.datetime_utils import utc_now
from src.amm_common.decimals import percent
from src.amm_common.enums import MarketStatus, Outcome
from src.amm_common.errors import InvalidLiquidityError, MarketNotFoundError
from src.amm_market.application.schemas import QuoteResponse
from src.amm_market.domain.models import Market
from src.amm_market.domain.repository import MarketRepositoryProtocol
from src.amm_market.infrastructure.persistence import MarketRepository
from src.amm_pricing import lmsr

logger = logging.getLogger(__name__)


class MarketApplicationService:
    def __init__(self, repo: MarketRepositoryProtocol | None = None) -> None:
        self._repo: MarketRepositoryProtocol = repo or MarketRepository()

    async def create_market(
        self,
        db: AsyncSession,
        creator_id: str,
        question: str,
        outcome_yes_label: str = "Yes",
        outcome_no_label: str = "No",
        b: Decimal | None = None,
        group_id: str | None = None,
    ) -> Market:
        liquidity = b if b is not None else settings.DEFAULT_LMSR_B
        if liquidity < settings.MIN_LMSR_B:
            raise InvalidLiquidityError(liquidity, settings.MIN_LMSR_B)

        now = utc_now()
        draft = Market(
            id=uuid.uuid4().hex,
            creator_id=creator_id,
            question=question,
            outcome_yes_label=outcome_yes_label,
            outcome_no_label=outcome_no_label,
            b=liquidity,
            shares_yes=Decimal("0"),
            shares_no=Decimal("0"),
            total_volume=Decimal("0"),
            status=MarketStatus.ACTIVE,
            resolved_outcome=None,
            resolved_at=None,
            dispute_deadline=None,
            finalized_at=None,
            group_id=group_id,
            created_at=now,
            updated_at=now,
        )
        try:
            market = await self._repo.insert_market(db, draft)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Market %s created by %s (b=%s)", market.id, creator_id, liquidity)
        return market

    async def get_market(self, db: AsyncSession, market_id: str) -> Market:
        market = await self._repo.get_market_by_id(db, market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    async def find_by_prefix(self, db: AsyncSession, short_id: str) -> Market:
        """Resolve the 8-char short id the chat front end shows to users."""
        market = await self._repo.find_by_prefix(db, short_id.lower())
        if market is None:
            raise MarketNotFoundError(short_id)
        return market

    async def list_active(
        self, db: AsyncSession, group_id: str | None = None, limit: int = 10
    ) -> list[Market]:
        return await self._repo.list_markets(db, MarketStatus.ACTIVE, group_id, limit)

    async def get_quote(
        self, db: AsyncSession, market_id: str, outcome: Outcome, amount: Decimal
    ) -> QuoteResponse:
        market = await self.get_market(db, market_id)
        check = lmsr.validate_bet(
            market, amount, settings.MIN_BET, settings.MAX_BET_PERCENT,
            settings.SETTLEMENT_CURRENCY,
        )
        quote = lmsr.execute_buy(
            market, outcome, amount, percent(settings.TRADING_FEE_PERCENT),
            settings.SHARES_TOLERANCE,
        )
        return QuoteResponse.from_quote(market, outcome, quote, check.valid, check.reason)
