"""In-memory repositories behind the domain Protocols.

FakeSession.commit snapshots the store and rollback restores the last
snapshot, so a service that fails half way can be checked for leaving no
partial writes behind, without PostgreSQL.
"""

import asyncio
import copy
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from src.amm_account.domain.models import Account, LedgerEntry, Position
from src.amm_common.datetime_utils import utc_now
from src.amm_common.decimals import ZERO, quantize_amount
from src.amm_common.enums import (
    DisputeStatus,
    LedgerEntryType,
    MarketStatus,
    Outcome,
    VoteChoice,
)
from src.amm_common.errors import (
    DisputeNotFoundError,
    InsufficientBalanceError,
    InsufficientSharesError,
)
from src.amm_common.locks import MarketLockRegistry
from src.amm_dispute.application.service import DisputeService
from src.amm_dispute.domain.models import Dispute, DisputeVote
from src.amm_ledger.domain.service import SettlementLedger
from src.amm_market.domain.models import Market

_TABLES = ("markets", "accounts", "positions", "ledger", "disputes", "votes", "next_ledger_id")


class FakeStore:
    def __init__(self) -> None:
        self.markets: dict[str, Market] = {}
        self.accounts: dict[tuple[str, str], Account] = {}
        self.positions: dict[tuple[str, str, Outcome], Position] = {}
        self.ledger: list[LedgerEntry] = []
        self.disputes: dict[str, Dispute] = {}
        self.votes: dict[tuple[str, str], DisputeVote] = {}
        self.next_ledger_id = 1
        self.commits = 0
        self.rollbacks = 0
        self._snapshot = self._state()

    def _state(self) -> dict:
        return copy.deepcopy({name: getattr(self, name) for name in _TABLES})

    def commit(self) -> None:
        self._snapshot = self._state()
        self.commits += 1

    def rollback(self) -> None:
        for name, value in copy.deepcopy(self._snapshot).items():
            setattr(self, name, value)
        self.rollbacks += 1

    # --- seeding (committed immediately) ---

    def add_market(self, market_id: str = "a1b2c3d4e5f6", **overrides: object) -> Market:
        now = utc_now()
        fields: dict = {
            "id": market_id,
            "creator_id": "creator",
            "question": "Will it rain tomorrow?",
            "outcome_yes_label": "Yes",
            "outcome_no_label": "No",
            "b": Decimal("100"),
            "shares_yes": ZERO,
            "shares_no": ZERO,
            "total_volume": ZERO,
            "status": MarketStatus.ACTIVE,
            "resolved_outcome": None,
            "resolved_at": None,
            "dispute_deadline": None,
            "finalized_at": None,
            "group_id": None,
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        market = Market(**fields)
        self.markets[market.id] = market
        self.commit()
        return market

    def fund(self, user_id: str, amount: str | Decimal, currency: str = "USDC") -> None:
        self.accounts[(user_id, currency)] = Account(user_id, currency, Decimal(amount), 0)
        self.commit()

    def add_position(
        self, user_id: str, market_id: str, outcome: Outcome, shares: str | Decimal
    ) -> None:
        self.positions[(user_id, market_id, outcome)] = Position(
            user_id, market_id, outcome, Decimal(shares), Decimal(shares)
        )
        self.commit()

    # --- inspection ---

    def balance(self, user_id: str, currency: str = "USDC") -> Decimal:
        account = self.accounts.get((user_id, currency))
        return account.balance if account else ZERO

    def shares(self, user_id: str, market_id: str, outcome: Outcome) -> Decimal:
        pos = self.positions.get((user_id, market_id, outcome))
        return pos.shares if pos else ZERO

    def entries(
        self, user_id: str | None = None, entry_type: LedgerEntryType | None = None
    ) -> list[LedgerEntry]:
        return [
            e for e in self.ledger
            if (user_id is None or e.user_id == user_id)
            and (entry_type is None or e.entry_type is entry_type)
        ]


class FakeSession:
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    async def commit(self) -> None:
        self.store.commit()

    async def rollback(self) -> None:
        self.store.rollback()

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class FakeMarketRepo:
    def __init__(self, store: FakeStore) -> None:
        self.s = store

    async def insert_market(self, db, market: Market) -> Market:
        self.s.markets[market.id] = replace(market)
        return replace(market)

    async def get_market_by_id(self, db, market_id: str) -> Market | None:
        market = self.s.markets.get(market_id)
        return replace(market) if market else None

    async def get_market_for_update(self, db, market_id: str) -> Market | None:
        # Yield like a real round trip so concurrent callers interleave
        await asyncio.sleep(0)
        return await self.get_market_by_id(db, market_id)

    async def find_by_prefix(self, db, prefix: str) -> Market | None:
        matches = sorted(
            (m for m in self.s.markets.values() if m.id.startswith(prefix)),
            key=lambda m: m.created_at,
            reverse=True,
        )
        return replace(matches[0]) if matches else None

    async def list_markets(self, db, status, group_id, limit) -> list[Market]:
        found = [
            replace(m) for m in self.s.markets.values()
            if (status is None or m.status is status)
            and (group_id is None or m.group_id == group_id)
        ]
        found.sort(key=lambda m: m.created_at, reverse=True)
        return found[:limit]

    async def update_trade_state(self, db, market_id, shares_yes, shares_no, total_volume) -> None:
        market = self.s.markets[market_id]
        self.s.markets[market_id] = replace(
            market, shares_yes=shares_yes, shares_no=shares_no, total_volume=total_volume
        )

    async def mark_resolved(self, db, market_id, outcome, resolved_at, dispute_deadline) -> Market:
        market = replace(
            self.s.markets[market_id],
            status=MarketStatus.RESOLVED,
            resolved_outcome=outcome,
            resolved_at=resolved_at,
            dispute_deadline=dispute_deadline,
        )
        self.s.markets[market_id] = market
        return replace(market)

    async def update_status(self, db, market_id, status, resolved_outcome=None) -> None:
        market = self.s.markets[market_id]
        self.s.markets[market_id] = replace(
            market,
            status=status,
            resolved_outcome=resolved_outcome or market.resolved_outcome,
        )

    async def mark_finalized(self, db, market_id, finalized_at) -> None:
        market = self.s.markets[market_id]
        self.s.markets[market_id] = replace(
            market, status=MarketStatus.FINALIZED, finalized_at=finalized_at
        )

    async def list_expired_resolved(self, db, now: datetime) -> list[str]:
        return [
            m.id for m in self.s.markets.values()
            if m.status is MarketStatus.RESOLVED
            and m.dispute_deadline is not None
            and m.dispute_deadline <= now
        ]


class FakeAccountRepo:
    def __init__(self, store: FakeStore) -> None:
        self.s = store

    async def get_account(self, db, user_id, currency) -> Account | None:
        account = self.s.accounts.get((user_id, currency))
        return replace(account) if account else None

    async def credit(self, db, user_id, amount, currency) -> Account:
        current = self.s.accounts.get((user_id, currency))
        if current is None:
            account = Account(user_id, currency, amount, 0)
        else:
            account = replace(current, balance=current.balance + amount, version=current.version + 1)
        self.s.accounts[(user_id, currency)] = account
        return replace(account)

    async def debit(self, db, user_id, amount, currency) -> Account:
        current = self.s.accounts.get((user_id, currency))
        available = current.balance if current else ZERO
        if current is None or available < amount:
            raise InsufficientBalanceError(amount, available)
        account = replace(current, balance=current.balance - amount, version=current.version + 1)
        self.s.accounts[(user_id, currency)] = account
        return replace(account)

    async def append_ledger(
        self,
        db,
        *,
        user_id: str,
        entry_type: LedgerEntryType,
        currency: str,
        amount: Decimal,
        balance_after: Decimal,
        market_id: str | None = None,
        outcome: Outcome | None = None,
        shares: Decimal | None = None,
        price: Decimal | None = None,
        fee: Decimal | None = None,
        external_ref: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry | None:
        if external_ref is not None and any(e.external_ref == external_ref for e in self.s.ledger):
            return None
        entry = LedgerEntry(
            id=self.s.next_ledger_id,
            user_id=user_id,
            entry_type=entry_type,
            currency=currency,
            amount=amount,
            balance_after=balance_after,
            market_id=market_id,
            outcome=outcome,
            shares=shares,
            price=price,
            fee=fee,
            external_ref=external_ref,
            reference_id=reference_id,
            description=description,
            created_at=utc_now(),
        )
        self.s.next_ledger_id += 1
        self.s.ledger.append(entry)
        return replace(entry)

    async def get_ledger_entry(self, db, entry_id) -> LedgerEntry | None:
        for entry in self.s.ledger:
            if entry.id == entry_id:
                return replace(entry)
        return None

    async def list_ledger_entries(self, db, user_id, cursor_id, limit, entry_type) -> list[LedgerEntry]:
        found = [
            replace(e) for e in reversed(self.s.ledger)
            if e.user_id == user_id
            and (cursor_id is None or e.id < cursor_id)
            and (entry_type is None or e.entry_type.value == entry_type)
        ]
        return found[:limit]

    async def get_position_for_update(self, db, user_id, market_id, outcome) -> Position | None:
        pos = self.s.positions.get((user_id, market_id, outcome))
        return replace(pos) if pos else None

    async def add_to_position(self, db, user_id, market_id, outcome, shares, cost) -> Position:
        key = (user_id, market_id, outcome)
        current = self.s.positions.get(key)
        if current is None:
            pos = Position(user_id, market_id, outcome, shares, cost)
        else:
            pos = replace(current, shares=current.shares + shares, cost_basis=current.cost_basis + cost)
        self.s.positions[key] = pos
        return replace(pos)

    async def reduce_position(self, db, position, shares) -> Position | None:
        key = (position.user_id, position.market_id, position.outcome)
        current = self.s.positions[key]
        remaining = current.shares - shares
        if remaining < ZERO:
            raise InsufficientSharesError(shares, current.shares)
        if remaining == ZERO:
            del self.s.positions[key]
            return None
        pos = replace(
            current,
            shares=remaining,
            cost_basis=quantize_amount(current.cost_basis * remaining / current.shares),
        )
        self.s.positions[key] = pos
        return replace(pos)

    async def list_market_positions(self, db, market_id, outcome) -> list[Position]:
        return [
            replace(p) for (_, m, o), p in self.s.positions.items()
            if m == market_id and o is outcome and p.shares > ZERO
        ]

    async def list_user_positions(self, db, user_id) -> list[Position]:
        return [
            replace(p) for (u, _, _), p in self.s.positions.items()
            if u == user_id and p.shares > ZERO
        ]

    async def get_user_market_shares(self, db, user_id, market_id) -> Decimal:
        return sum(
            (p.shares for (u, m, _), p in self.s.positions.items() if u == user_id and m == market_id),
            ZERO,
        )


class FakeDisputeRepo:
    def __init__(self, store: FakeStore) -> None:
        self.s = store

    async def insert_dispute(self, db, dispute: Dispute) -> Dispute:
        self.s.disputes[dispute.id] = replace(dispute)
        return replace(dispute)

    async def get_dispute(self, db, dispute_id) -> Dispute | None:
        dispute = self.s.disputes.get(dispute_id)
        return replace(dispute) if dispute else None

    async def get_dispute_for_update(self, db, dispute_id) -> Dispute | None:
        return await self.get_dispute(db, dispute_id)

    async def get_active_for_market(self, db, market_id) -> Dispute | None:
        for dispute in self.s.disputes.values():
            if dispute.market_id == market_id and dispute.status is DisputeStatus.ACTIVE:
                return replace(dispute)
        return None

    async def find_by_prefix(self, db, prefix) -> Dispute | None:
        for dispute in self.s.disputes.values():
            if dispute.id.startswith(prefix):
                return replace(dispute)
        return None

    async def get_vote(self, db, dispute_id, user_id) -> DisputeVote | None:
        vote = self.s.votes.get((dispute_id, user_id))
        return replace(vote) if vote else None

    async def insert_vote(self, db, vote: DisputeVote) -> bool:
        key = (vote.dispute_id, vote.user_id)
        if key in self.s.votes:
            return False
        self.s.votes[key] = replace(vote)
        return True

    async def add_votes(self, db, dispute_id, choice, weight) -> Dispute:
        dispute = self.s.disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        if choice is VoteChoice.FOR:
            dispute = replace(dispute, votes_for=dispute.votes_for + weight)
        else:
            dispute = replace(dispute, votes_against=dispute.votes_against + weight)
        self.s.disputes[dispute_id] = dispute
        return replace(dispute)

    async def mark_resolved(self, db, dispute_id, status, resolved_at) -> Dispute:
        dispute = replace(self.s.disputes[dispute_id], status=status, resolved_at=resolved_at)
        self.s.disputes[dispute_id] = dispute
        return replace(dispute)

    async def list_expired_active(self, db, created_before) -> list[str]:
        return [
            d.id for d in self.s.disputes.values()
            if d.status is DisputeStatus.ACTIVE and d.created_at < created_before
        ]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def db(store: FakeStore) -> FakeSession:
    return FakeSession(store)


@pytest.fixture
def market_repo(store: FakeStore) -> FakeMarketRepo:
    return FakeMarketRepo(store)


@pytest.fixture
def account_repo(store: FakeStore) -> FakeAccountRepo:
    return FakeAccountRepo(store)


@pytest.fixture
def dispute_repo(store: FakeStore) -> FakeDisputeRepo:
    return FakeDisputeRepo(store)


@pytest.fixture
def locks() -> MarketLockRegistry:
    return MarketLockRegistry()


@pytest.fixture
def ledger(market_repo, account_repo, dispute_repo, locks) -> SettlementLedger:
    return SettlementLedger(market_repo, account_repo, dispute_repo, locks)


@pytest.fixture
def disputes(market_repo, account_repo, dispute_repo, locks) -> DisputeService:
    return DisputeService(dispute_repo, market_repo, account_repo, locks)
