"""AccountApplicationService — balances, custody operations and read models.

Custody operations (credit_external_deposit, debit_for_withdrawal,
revert_debit) commit their own transaction and roll back on any error.
get_balance, get_portfolio and list_ledger are read-only.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.amm_account.application.schemas import (
    BalanceResponse,
    DepositResponse,
    LedgerEntryItem,
    LedgerResponse,
    PortfolioResponse,
    PositionItem,
    RevertResponse,
    WithdrawalResponse,
    cursor_decode,
    cursor_encode,
)
from src.amm_account.domain.repository import AccountRepositoryProtocol
from src.amm_account.infrastructure.persistence import AccountRepository
from src.amm_common.decimals import ZERO, quantize_amount
from src.amm_common.enums import LedgerEntryType
from src.amm_common.errors import (
    InternalError,
    InvalidAmountError,
    WithdrawalNotFoundError,
)
from src.amm_market.domain.repository import MarketRepositoryProtocol
from src.amm_market.infrastructure.persistence import MarketRepository
from src.amm_pricing import lmsr

logger = logging.getLogger(__name__)


def revert_ref(withdrawal_id: int) -> str:
    return f"revert:{withdrawal_id}"


class AccountApplicationService:
    def __init__(
        self,
        repo: AccountRepositoryProtocol | None = None,
        market_repo: MarketRepositoryProtocol | None = None,
    ) -> None:
        self._repo: AccountRepositoryProtocol = repo or AccountRepository()
        self._market_repo: MarketRepositoryProtocol = market_repo or MarketRepository()

    async def get_balance(
        self, db: AsyncSession, user_id: str, currency: str | None = None
    ) -> BalanceResponse:
        currency = currency or settings.SETTLEMENT_CURRENCY
        account = await self._repo.get_account(db, user_id, currency)
        balance = account.balance if account else ZERO
        return BalanceResponse.build(user_id, currency, balance)

    # ------------------------------------------------------------------
    # Custody
    # ------------------------------------------------------------------

    async def credit_external_deposit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: Decimal,
        currency: str,
        tx_ref: str,
    ) -> DepositResponse:
        """Credit an on-chain deposit exactly once per `tx_ref`.

        The ledger insert carries the reference as its unique external_ref;
        a replay hits the conflict, the balance credit is rolled back and the
        call reports a successful no-op.
        """
        credited_amount = quantize_amount(amount)
        if credited_amount <= ZERO:
            raise InvalidAmountError(f"deposit amount {amount} rounds to zero")

        try:
            account = await self._repo.credit(db, user_id, credited_amount, currency)
            entry = await self._repo.append_ledger(
                db,
                user_id=user_id,
                entry_type=LedgerEntryType.DEPOSIT,
                currency=currency,
                amount=credited_amount,
                balance_after=account.balance,
                external_ref=tx_ref,
                description=f"Deposit {tx_ref}",
            )
            if entry is None:
                await db.rollback()
                logger.info("Deposit %s already credited, skipping", tx_ref)
                current = await self._repo.get_account(db, user_id, currency)
                return DepositResponse(
                    user_id=user_id,
                    currency=currency,
                    amount=credited_amount,
                    credited=False,
                    balance=current.balance if current else ZERO,
                    ledger_entry_id=None,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Credited %s %s to %s (tx %s)", credited_amount, currency, user_id, tx_ref)
        return DepositResponse(
            user_id=user_id,
            currency=currency,
            amount=credited_amount,
            credited=True,
            balance=account.balance,
            ledger_entry_id=entry.id,
        )

    async def debit_for_withdrawal(
        self,
        db: AsyncSession,
        user_id: str,
        amount: Decimal,
        currency: str,
        destination: str | None = None,
    ) -> WithdrawalResponse:
        """Debit before the custody layer submits the transfer.

        The returned withdrawal_id is what revert_debit takes if the
        on-chain transfer fails.
        """
        debit_amount = quantize_amount(amount)
        if debit_amount <= ZERO:
            raise InvalidAmountError(f"withdrawal amount {amount} rounds to zero")

        try:
            account = await self._repo.debit(db, user_id, debit_amount, currency)
            entry = await self._repo.append_ledger(
                db,
                user_id=user_id,
                entry_type=LedgerEntryType.WITHDRAW,
                currency=currency,
                amount=-debit_amount,
                balance_after=account.balance,
                description=f"Withdrawal to {destination}" if destination else "Withdrawal",
            )
            if entry is None:
                raise InternalError("Withdrawal ledger insert returned no rows")
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Debited %s %s from %s for withdrawal %s", debit_amount, currency, user_id, entry.id)
        return WithdrawalResponse(
            withdrawal_id=entry.id,
            user_id=user_id,
            currency=currency,
            amount=debit_amount,
            balance=account.balance,
        )

    async def revert_debit(self, db: AsyncSession, withdrawal_id: int) -> RevertResponse:
        """Give back a withdrawal debit whose on-chain transfer failed. Idempotent."""
        try:
            original = await self._repo.get_ledger_entry(db, withdrawal_id)
            if original is None or original.entry_type is not LedgerEntryType.WITHDRAW:
                raise WithdrawalNotFoundError(withdrawal_id)

            refund = -original.amount
            account = await self._repo.credit(db, original.user_id, refund, original.currency)
            entry = await self._repo.append_ledger(
                db,
                user_id=original.user_id,
                entry_type=LedgerEntryType.WITHDRAW_REVERT,
                currency=original.currency,
                amount=refund,
                balance_after=account.balance,
                external_ref=revert_ref(withdrawal_id),
                reference_id=str(withdrawal_id),
                description="Withdrawal failed, funds returned",
            )
            if entry is None:
                await db.rollback()
                logger.info("Withdrawal %s already reverted, skipping", withdrawal_id)
                current = await self._repo.get_account(db, original.user_id, original.currency)
                return RevertResponse(
                    withdrawal_id=withdrawal_id,
                    reverted=False,
                    balance=current.balance if current else ZERO,
                )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Reverted withdrawal %s for %s", withdrawal_id, original.user_id)
        return RevertResponse(withdrawal_id=withdrawal_id, reverted=True, balance=account.balance)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def get_portfolio(self, db: AsyncSession, user_id: str) -> PortfolioResponse:
        """Balance plus every open position marked to the current LMSR price."""
        currency = settings.SETTLEMENT_CURRENCY
        account = await self._repo.get_account(db, user_id, currency)
        balance = account.balance if account else ZERO

        items: list[PositionItem] = []
        for pos in await self._repo.list_user_positions(db, user_id):
            market = await self._market_repo.get_market_by_id(db, pos.market_id)
            if market is None:
                continue
            price = lmsr.prices(market).of(pos.outcome)
            items.append(
                PositionItem(
                    market_id=market.id,
                    short_id=market.short_id,
                    question=market.question,
                    market_status=market.status,
                    outcome=pos.outcome,
                    outcome_label=market.label_of(pos.outcome),
                    shares=pos.shares,
                    cost_basis=pos.cost_basis,
                    current_price=price,
                    current_value=quantize_amount(pos.shares * price),
                )
            )

        positions_value = sum((i.current_value for i in items), ZERO)
        return PortfolioResponse(
            user_id=user_id,
            currency=currency,
            balance=balance,
            positions=items,
            positions_value=positions_value,
            total_value=balance + positions_value,
        )

    async def list_ledger(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        entry_type: str | None,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_ledger_entries(
            db, user_id, cursor_id, limit + 1, entry_type
        )
        has_more = len(entries) > limit
        page = entries[:limit]

        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(
            items=[LedgerEntryItem.from_domain(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )
