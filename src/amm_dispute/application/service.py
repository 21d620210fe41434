"""DisputeService — stake-weighted challenge of a resolved outcome.

Flow:
  create   initiator stakes a share of the market's volume and proposes the
           other outcome; market goes DISPUTED, initiator counts as a FOR vote
  vote     any holder of shares in the market votes once; weight is the
           holder's total shares at that moment, stored on the vote
  resolve  after the voting period (driven by the scheduler): strict
           majority FOR flips the outcome and refunds the stake; otherwise
           the outcome stands and the stake goes to the treasury account

All mutations run under the same per-market lock as SettlementLedger and
hold the market row lock for the whole transaction.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.amm_account.domain.repository import AccountRepositoryProtocol
from src.amm_account.infrastructure.persistence import AccountRepository
from src.amm_common.datetime_utils import utc_now
from src.amm_common.decimals import ZERO, percent, quantize_amount_up
from src.amm_common.enums import (
    DisputeStatus,
    LedgerEntryType,
    MarketStatus,
    Outcome,
    VoteChoice,
)
from src.amm_common.errors import (
    AlreadyFinalizedError,
    AlreadyVotedError,
    DisputeAlreadyActiveError,
    DisputeNotActiveError,
    DisputeNotFoundError,
    DisputeWindowClosedError,
    InsufficientBalanceError,
    MarketNotFoundError,
    MarketNotResolvedError,
    NoVotingStakeError,
    SameOutcomeDisputeError,
)
from src.amm_common.locks import MarketLockRegistry, market_locks
from src.amm_dispute.domain.models import Dispute, DisputeOutcome, DisputeVote, VoteResult
from src.amm_dispute.domain.repository import DisputeRepositoryProtocol
from src.amm_dispute.infrastructure.persistence import DisputeRepository
from src.amm_market.domain.models import Market
from src.amm_market.domain.repository import MarketRepositoryProtocol
from src.amm_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)


class DisputeService:
    def __init__(
        self,
        dispute_repo: DisputeRepositoryProtocol | None = None,
        market_repo: MarketRepositoryProtocol | None = None,
        account_repo: AccountRepositoryProtocol | None = None,
        locks: MarketLockRegistry | None = None,
    ) -> None:
        self._disputes: DisputeRepositoryProtocol = dispute_repo or DisputeRepository()
        self._markets: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._locks = locks or market_locks

    async def _lock_market(self, db: AsyncSession, market_id: str) -> Market:
        market = await self._markets.get_market_for_update(db, market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    async def create(
        self,
        db: AsyncSession,
        market_id: str,
        initiator_id: str,
        proposed_outcome: Outcome,
        evidence: str,
        now: datetime | None = None,
    ) -> Dispute:
        now = now or utc_now()
        currency = settings.SETTLEMENT_CURRENCY
        async with self._locks.for_market(market_id):
            try:
                market = await self._lock_market(db, market_id)
                if market.status is MarketStatus.FINALIZED:
                    raise AlreadyFinalizedError(market_id)
                if market.status is MarketStatus.DISPUTED:
                    raise DisputeAlreadyActiveError(market_id)
                if market.status is not MarketStatus.RESOLVED:
                    raise MarketNotResolvedError(market_id, market.status.value)
                if proposed_outcome is market.resolved_outcome:
                    raise SameOutcomeDisputeError()
                if market.dispute_deadline is None or now >= market.dispute_deadline:
                    raise DisputeWindowClosedError(market_id)
                if await self._disputes.get_active_for_market(db, market_id) is not None:
                    raise DisputeAlreadyActiveError(market_id)

                stake = quantize_amount_up(
                    market.total_volume * percent(settings.DISPUTE_STAKE_PERCENT)
                )
                account = await self._accounts.get_account(db, initiator_id, currency)
                available = account.balance if account else ZERO
                if available < stake:
                    raise InsufficientBalanceError(stake, available)
                account = await self._accounts.debit(db, initiator_id, stake, currency)

                dispute = await self._disputes.insert_dispute(
                    db,
                    Dispute(
                        id=uuid.uuid4().hex,
                        market_id=market_id,
                        initiator_id=initiator_id,
                        proposed_outcome=proposed_outcome,
                        evidence=evidence,
                        stake_amount=stake,
                        status=DisputeStatus.ACTIVE,
                        votes_for=stake,
                        votes_against=ZERO,
                        created_at=now,
                    ),
                )
                await self._disputes.insert_vote(
                    db, DisputeVote(dispute.id, initiator_id, VoteChoice.FOR, stake)
                )
                await self._accounts.append_ledger(
                    db,
                    user_id=initiator_id,
                    entry_type=LedgerEntryType.DISPUTE_STAKE,
                    currency=currency,
                    amount=-stake,
                    balance_after=account.balance,
                    market_id=market_id,
                    reference_id=dispute.id,
                    description=f"Dispute stake on {market.short_id}",
                )
                await self._markets.update_status(db, market_id, MarketStatus.DISPUTED)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Dispute %s opened on %s by %s proposing %s (stake %s)",
            dispute.id, market_id, initiator_id, proposed_outcome.value, stake,
        )
        return dispute

    async def vote(
        self,
        db: AsyncSession,
        dispute_id: str,
        user_id: str,
        choice: VoteChoice,
    ) -> VoteResult:
        found = await self._disputes.get_dispute(db, dispute_id)
        if found is None:
            raise DisputeNotFoundError(dispute_id)

        async with self._locks.for_market(found.market_id):
            try:
                await self._lock_market(db, found.market_id)
                dispute = await self._disputes.get_dispute_for_update(db, dispute_id)
                if dispute is None:
                    raise DisputeNotFoundError(dispute_id)
                if dispute.status is not DisputeStatus.ACTIVE:
                    raise DisputeNotActiveError(dispute_id)
                if await self._disputes.get_vote(db, dispute_id, user_id) is not None:
                    raise AlreadyVotedError(dispute_id)

                # Snapshot: later trades do not change a cast vote
                weight = await self._accounts.get_user_market_shares(
                    db, user_id, dispute.market_id
                )
                if weight <= ZERO:
                    raise NoVotingStakeError()

                if not await self._disputes.insert_vote(
                    db, DisputeVote(dispute_id, user_id, choice, weight)
                ):
                    raise AlreadyVotedError(dispute_id)
                dispute = await self._disputes.add_votes(db, dispute_id, choice, weight)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Vote %s on dispute %s by %s (weight %s)", choice.value, dispute_id, user_id, weight)
        return VoteResult(
            dispute_id=dispute_id,
            user_id=user_id,
            vote=choice,
            weight=weight,
            votes_for=dispute.votes_for,
            votes_against=dispute.votes_against,
        )

    async def resolve(
        self, db: AsyncSession, dispute_id: str, now: datetime | None = None
    ) -> DisputeOutcome:
        now = now or utc_now()
        currency = settings.SETTLEMENT_CURRENCY
        found = await self._disputes.get_dispute(db, dispute_id)
        if found is None:
            raise DisputeNotFoundError(dispute_id)

        async with self._locks.for_market(found.market_id):
            try:
                market = await self._lock_market(db, found.market_id)
                dispute = await self._disputes.get_dispute_for_update(db, dispute_id)
                if dispute is None:
                    raise DisputeNotFoundError(dispute_id)
                if dispute.status is not DisputeStatus.ACTIVE:
                    raise DisputeNotActiveError(dispute_id)

                stake = dispute.stake_amount
                if dispute.passed:
                    status = DisputeStatus.PASSED
                    outcome = dispute.proposed_outcome
                    await self._markets.update_status(
                        db, market.id, MarketStatus.RESOLVED, outcome
                    )
                    payee, entry_type = dispute.initiator_id, LedgerEntryType.DISPUTE_REFUND
                    description = f"Dispute {dispute.short_id} passed, stake refunded"
                else:
                    status = DisputeStatus.REJECTED
                    outcome = market.resolved_outcome or dispute.proposed_outcome.other
                    await self._markets.update_status(db, market.id, MarketStatus.RESOLVED)
                    payee, entry_type = settings.TREASURY_USER_ID, LedgerEntryType.DISPUTE_FORFEIT
                    description = f"Dispute {dispute.short_id} rejected, stake forfeited"

                if stake > ZERO:
                    account = await self._accounts.credit(db, payee, stake, currency)
                    await self._accounts.append_ledger(
                        db,
                        user_id=payee,
                        entry_type=entry_type,
                        currency=currency,
                        amount=stake,
                        balance_after=account.balance,
                        market_id=market.id,
                        reference_id=dispute.id,
                        description=description,
                    )
                dispute = await self._disputes.mark_resolved(db, dispute_id, status, now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Dispute %s %s (%s for / %s against), market %s outcome %s",
            dispute_id, status.value, dispute.votes_for, dispute.votes_against,
            market.id, outcome.value,
        )
        return DisputeOutcome(
            dispute_id=dispute_id,
            market_id=market.id,
            status=status,
            resolved_outcome=outcome,
            votes_for=dispute.votes_for,
            votes_against=dispute.votes_against,
            stake_amount=stake,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_dispute(self, db: AsyncSession, dispute_id: str) -> Dispute:
        dispute = await self._disputes.get_dispute(db, dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def get_active_for_market(
        self, db: AsyncSession, market_id: str
    ) -> Dispute | None:
        return await self._disputes.get_active_for_market(db, market_id)

    async def find_by_prefix(self, db: AsyncSession, short_id: str) -> Dispute:
        dispute = await self._disputes.find_by_prefix(db, short_id.lower())
        if dispute is None:
            raise DisputeNotFoundError(short_id)
        return dispute
