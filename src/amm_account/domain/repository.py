"""Repository Protocol — dependency inversion for testability.

Unit tests inject a mock (or the in-memory fake store) conforming to this
Protocol. Infrastructure layer provides the real implementation.
"""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_account.domain.models import Account, LedgerEntry, Position
from src.amm_common.enums import LedgerEntryType, Outcome


class AccountRepositoryProtocol(Protocol):
    # --- balances ---

    async def get_account(
        self, db: AsyncSession, user_id: str, currency: str
    ) -> Account | None: ...

    async def credit(
        self, db: AsyncSession, user_id: str, amount: Decimal, currency: str
    ) -> Account: ...

    async def debit(
        self, db: AsyncSession, user_id: str, amount: Decimal, currency: str
    ) -> Account: ...

    # --- ledger ---

    async def append_ledger(
        self,
        db: AsyncSession,
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
    ) -> LedgerEntry | None: ...

    async def get_ledger_entry(
        self, db: AsyncSession, entry_id: int
    ) -> LedgerEntry | None: ...

    async def list_ledger_entries(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerEntry]: ...

    # --- positions ---

    async def get_position_for_update(
        self, db: AsyncSession, user_id: str, market_id: str, outcome: Outcome
    ) -> Position | None: ...

    async def add_to_position(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        outcome: Outcome,
        shares: Decimal,
        cost: Decimal,
    ) -> Position: ...

    async def reduce_position(
        self, db: AsyncSession, position: Position, shares: Decimal
    ) -> Position | None: ...

    async def list_market_positions(
        self, db: AsyncSession, market_id: str, outcome: Outcome
    ) -> list[Position]: ...

    async def list_user_positions(
        self, db: AsyncSession, user_id: str
    ) -> list[Position]: ...

    async def get_user_market_shares(
        self, db: AsyncSession, user_id: str, market_id: str
    ) -> Decimal: ...
