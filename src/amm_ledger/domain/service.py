"""SettlementLedger — atomic buy / sell / resolve / finalize.

Every mutating operation follows the same shape:

    async with market lock:
        SELECT market FOR UPDATE
        business checks (AppError on failure)
        writes: balances, market counters, positions, ledger entries
        COMMIT
    on any exception: ROLLBACK and re-raise

so an operation is applied completely or not at all, and two operations on
the same market are never interleaved. Prices come from amm_pricing; this
module never does LMSR math itself.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.amm_account.domain.repository import AccountRepositoryProtocol
from src.amm_account.infrastructure.persistence import AccountRepository
from src.amm_common.datetime_utils import hours_from, utc_now
from src.amm_common.decimals import (
    ONE,
    ZERO,
    percent,
    quantize_amount,
    quantize_shares,
    to_decimal,
)
from src.amm_common.enums import LedgerEntryType, MarketStatus, Outcome
from src.amm_common.errors import (
    BetAboveMaximumError,
    BetBelowMinimumError,
    DisputeWindowOpenError,
    InsufficientBalanceError,
    InsufficientSharesError,
    InternalError,
    InvalidAmountError,
    MarketNotActiveError,
    MarketNotFoundError,
    MarketNotResolvedError,
    NotMarketCreatorError,
)
from src.amm_common.locks import MarketLockRegistry, market_locks
from src.amm_dispute.domain.repository import DisputeRepositoryProtocol
from src.amm_dispute.infrastructure.persistence import DisputeRepository
from src.amm_ledger.domain.models import BuyResult, FinalizeResult, SellResult
from src.amm_market.domain.models import Market
from src.amm_market.domain.repository import MarketRepositoryProtocol
from src.amm_market.infrastructure.persistence import MarketRepository
from src.amm_pricing import lmsr
from src.amm_pricing.models import BetViolation, LmsrState

logger = logging.getLogger(__name__)


class SettlementLedger:
    def __init__(
        self,
        market_repo: MarketRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        dispute_repo: DisputeRepositoryProtocol | None = None,
        locks: MarketLockRegistry | None = None,
    ) -> None:
        self._markets: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._disputes: DisputeRepositoryProtocol = dispute_repo or DisputeRepository()
        self._locks = locks or market_locks

    async def _lock_market(self, db: AsyncSession, market_id: str) -> Market:
        market = await self._markets.get_market_for_update(db, market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def execute_buy(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        outcome: Outcome,
        amount: Decimal,
    ) -> BuyResult:
        """Spend `amount` (fee included) on `outcome` shares."""
        currency = settings.SETTLEMENT_CURRENCY
        amount = quantize_amount(to_decimal(amount))

        async with self._locks.for_market(market_id):
            try:
                market = await self._lock_market(db, market_id)
                if market.status is not MarketStatus.ACTIVE:
                    raise MarketNotActiveError(market_id)
                if amount <= ZERO:
                    raise InvalidAmountError("buy amount must be positive")

                account = await self._accounts.get_account(db, user_id, currency)
                available = account.balance if account else ZERO
                if available < amount:
                    raise InsufficientBalanceError(amount, available)

                check = lmsr.validate_bet(
                    market, amount, settings.MIN_BET, settings.MAX_BET_PERCENT, currency
                )
                if not check.valid:
                    if check.violation is BetViolation.BELOW_MINIMUM:
                        raise BetBelowMinimumError(check.reason or "")
                    raise BetAboveMaximumError(check.reason or "")

                account = await self._accounts.debit(db, user_id, amount, currency)
                quote = lmsr.execute_buy(
                    market, outcome, amount,
                    percent(settings.TRADING_FEE_PERCENT), settings.SHARES_TOLERANCE,
                )
                shares = quantize_shares(quote.shares)

                after = LmsrState(market.b, market.shares_yes, market.shares_no)
                after = after.shifted(outcome, shares)
                await self._markets.update_trade_state(
                    db, market_id, after.shares_yes, after.shares_no,
                    market.total_volume + amount,
                )
                await self._accounts.add_to_position(
                    db, user_id, market_id, outcome, shares, amount
                )
                entry = await self._accounts.append_ledger(
                    db,
                    user_id=user_id,
                    entry_type=LedgerEntryType.BUY,
                    currency=currency,
                    amount=-amount,
                    balance_after=account.balance,
                    market_id=market_id,
                    outcome=outcome,
                    shares=shares,
                    price=quote.new_price,
                    fee=quantize_amount(quote.fee),
                    description=f"Buy {outcome.value} in {market.short_id}",
                )
                if entry is None:
                    raise InternalError("Buy ledger insert returned no rows")
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "BUY %s %s shares of %s in %s for %s (price now %.4f)",
            user_id, shares, outcome.value, market_id, amount, quote.new_price,
        )
        return BuyResult(
            market_id=market_id,
            user_id=user_id,
            outcome=outcome,
            amount=amount,
            shares=shares,
            cost=quote.cost,
            fee=quote.fee,
            new_price=quote.new_price,
            balance=account.balance,
            ledger_entry_id=entry.id,
        )

    async def execute_sell(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        outcome: Outcome,
        shares: Decimal,
    ) -> SellResult:
        """Sell `shares` back to the market maker; net proceeds are credited."""
        currency = settings.SETTLEMENT_CURRENCY
        shares = quantize_shares(to_decimal(shares))

        async with self._locks.for_market(market_id):
            try:
                market = await self._lock_market(db, market_id)
                if market.status is not MarketStatus.ACTIVE:
                    raise MarketNotActiveError(market_id)
                if shares <= ZERO:
                    raise InvalidAmountError("shares to sell must be positive")

                position = await self._accounts.get_position_for_update(
                    db, user_id, market_id, outcome
                )
                held = position.shares if position else ZERO
                if position is None or held < shares:
                    raise InsufficientSharesError(shares, held)

                quote = lmsr.execute_sell(
                    market, outcome, shares, percent(settings.TRADING_FEE_PERCENT)
                )
                proceeds = quantize_amount(quote.cost)
                account = await self._accounts.credit(db, user_id, proceeds, currency)

                after = LmsrState(market.b, market.shares_yes, market.shares_no)
                after = after.shifted(outcome, -shares)
                await self._markets.update_trade_state(
                    db, market_id, after.shares_yes, after.shares_no, market.total_volume
                )
                await self._accounts.reduce_position(db, position, shares)
                entry = await self._accounts.append_ledger(
                    db,
                    user_id=user_id,
                    entry_type=LedgerEntryType.SELL,
                    currency=currency,
                    amount=proceeds,
                    balance_after=account.balance,
                    market_id=market_id,
                    outcome=outcome,
                    shares=shares,
                    price=quote.new_price,
                    fee=quantize_amount(quote.fee),
                    description=f"Sell {outcome.value} in {market.short_id}",
                )
                if entry is None:
                    raise InternalError("Sell ledger insert returned no rows")
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "SELL %s %s shares of %s in %s for %s (price now %.4f)",
            user_id, shares, outcome.value, market_id, proceeds, quote.new_price,
        )
        return SellResult(
            market_id=market_id,
            user_id=user_id,
            outcome=outcome,
            shares=shares,
            gross=quote.total_cost,
            fee=quote.fee,
            proceeds=proceeds,
            new_price=quote.new_price,
            balance=account.balance,
            ledger_entry_id=entry.id,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(
        self,
        db: AsyncSession,
        market_id: str,
        outcome: Outcome,
        requested_by: str | None = None,
        now: datetime | None = None,
    ) -> Market:
        """Declare the outcome and open the dispute window.

        When `requested_by` is given it must be the market creator.
        """
        now = now or utc_now()
        async with self._locks.for_market(market_id):
            try:
                market = await self._lock_market(db, market_id)
                if requested_by is not None and requested_by != market.creator_id:
                    raise NotMarketCreatorError()
                if market.status is not MarketStatus.ACTIVE:
                    raise MarketNotActiveError(market_id)

                market = await self._markets.mark_resolved(
                    db, market_id, outcome, now,
                    hours_from(now, settings.DISPUTE_WINDOW_HOURS),
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Market %s resolved %s, dispute window until %s",
            market_id, outcome.value, market.dispute_deadline,
        )
        return market

    async def finalize(
        self, db: AsyncSession, market_id: str, now: datetime | None = None
    ) -> FinalizeResult:
        """Pay 1 unit of the settlement currency per winning share and close the market.

        Finalizing an already FINALIZED market is a no-op, so the scheduler
        can retry freely.
        """
        now = now or utc_now()
        currency = settings.SETTLEMENT_CURRENCY
        async with self._locks.for_market(market_id):
            try:
                market = await self._lock_market(db, market_id)
                if market.status is MarketStatus.FINALIZED:
                    await db.rollback()
                    return FinalizeResult(
                        market_id=market_id,
                        outcome=market.resolved_outcome,
                        already_finalized=True,
                    )
                if market.status is not MarketStatus.RESOLVED or market.resolved_outcome is None:
                    raise MarketNotResolvedError(market_id, market.status.value)
                if await self._disputes.get_active_for_market(db, market_id) is not None:
                    raise MarketNotResolvedError(market_id, MarketStatus.DISPUTED.value)
                if market.dispute_deadline is None or now < market.dispute_deadline:
                    raise DisputeWindowOpenError(market_id)

                winning = market.resolved_outcome
                winners_paid = 0
                total_paid = ZERO
                positions = await self._accounts.list_market_positions(db, market_id, winning)
                for pos in positions:
                    payout = quantize_amount(pos.shares)
                    if payout <= ZERO:
                        continue
                    account = await self._accounts.credit(db, pos.user_id, payout, currency)
                    await self._accounts.append_ledger(
                        db,
                        user_id=pos.user_id,
                        entry_type=LedgerEntryType.PAYOUT,
                        currency=currency,
                        amount=payout,
                        balance_after=account.balance,
                        market_id=market_id,
                        outcome=winning,
                        shares=pos.shares,
                        price=ONE,
                        description=f"Payout for {winning.value} in {market.short_id}",
                    )
                    winners_paid += 1
                    total_paid += payout

                await self._markets.mark_finalized(db, market_id, now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        # FINALIZED is terminal
        self._locks.discard(market_id)

        logger.info(
            "Market %s finalized %s: %d winners paid %s %s",
            market_id, winning.value, winners_paid, total_paid, currency,
        )
        return FinalizeResult(
            market_id=market_id,
            outcome=winning,
            already_finalized=False,
            winners_paid=winners_paid,
            total_paid=total_paid,
        )
