"""AccountRepository — concrete implementation of AccountRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A debit returning 0 rows means the balance was insufficient; the balance is
never observed negative.

Transaction ownership: The CALLER (application service or settlement ledger)
is responsible for committing or rolling back.
"""

from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_account.domain.models import Account, LedgerEntry, Position
from src.amm_common.decimals import ZERO, quantize_amount
from src.amm_common.enums import LedgerEntryType, Outcome
from src.amm_common.errors import (
    InsufficientBalanceError,
    InsufficientSharesError,
    InternalError,
)

# ---------------------------------------------------------------------------
# SQL: accounts
# ---------------------------------------------------------------------------

_ACCOUNT_COLUMNS = "user_id, currency, balance, version, created_at, updated_at"

_GET_ACCOUNT_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts
    WHERE user_id = :user_id AND currency = :currency
""")

_CREDIT_SQL = text(f"""
    INSERT INTO accounts (user_id, currency, balance)
    VALUES (:user_id, :currency, :amount)
    ON CONFLICT (user_id, currency) DO UPDATE
        SET balance = accounts.balance + EXCLUDED.balance,
            version = accounts.version + 1,
            updated_at = NOW()
    RETURNING {_ACCOUNT_COLUMNS}
""")

_DEBIT_SQL = text(f"""
    UPDATE accounts
    SET balance = balance - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND currency = :currency AND balance >= :amount
    RETURNING {_ACCOUNT_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: ledger (append-only)
# ---------------------------------------------------------------------------

_LEDGER_COLUMNS = """
    id, user_id, entry_type, currency, amount, balance_after,
    market_id, outcome, shares, price, fee,
    external_ref, reference_id, description, created_at
"""

_INSERT_LEDGER_SQL = text(f"""
    INSERT INTO ledger_entries
        (user_id, entry_type, currency, amount, balance_after,
         market_id, outcome, shares, price, fee,
         external_ref, reference_id, description)
    VALUES
        (:user_id, :entry_type, :currency, :amount, :balance_after,
         :market_id, :outcome, :shares, :price, :fee,
         :external_ref, :reference_id, :description)
    ON CONFLICT (external_ref) DO NOTHING
    RETURNING {_LEDGER_COLUMNS}
""")

_GET_LEDGER_SQL = text(f"""
    SELECT {_LEDGER_COLUMNS}
    FROM ledger_entries
    WHERE id = :entry_id
""")

_LIST_LEDGER_SQL = text(f"""
    SELECT {_LEDGER_COLUMNS}
    FROM ledger_entries
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < CAST(:cursor_id AS BIGINT))
      AND (CAST(:entry_type AS TEXT) IS NULL OR entry_type = CAST(:entry_type AS TEXT))
    ORDER BY id DESC
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL: positions
# ---------------------------------------------------------------------------

_POSITION_COLUMNS = "user_id, market_id, outcome, shares, cost_basis, created_at, updated_at"

_GET_POSITION_FOR_UPDATE_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE user_id = :user_id AND market_id = :market_id AND outcome = :outcome
    FOR UPDATE
""")

_UPSERT_POSITION_SQL = text(f"""
    INSERT INTO positions (user_id, market_id, outcome, shares, cost_basis)
    VALUES (:user_id, :market_id, :outcome, :shares, :cost)
    ON CONFLICT (user_id, market_id, outcome) DO UPDATE
        SET shares = positions.shares + EXCLUDED.shares,
            cost_basis = positions.cost_basis + EXCLUDED.cost_basis,
            updated_at = NOW()
    RETURNING {_POSITION_COLUMNS}
""")

_UPDATE_POSITION_SQL = text(f"""
    UPDATE positions
    SET shares = :shares,
        cost_basis = :cost_basis,
        updated_at = NOW()
    WHERE user_id = :user_id AND market_id = :market_id AND outcome = :outcome
    RETURNING {_POSITION_COLUMNS}
""")

_DELETE_POSITION_SQL = text("""
    DELETE FROM positions
    WHERE user_id = :user_id AND market_id = :market_id AND outcome = :outcome
""")

_LIST_MARKET_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE market_id = :market_id AND outcome = :outcome AND shares > 0
    ORDER BY user_id
""")

_LIST_USER_POSITIONS_SQL = text(f"""
    SELECT {_POSITION_COLUMNS}
    FROM positions
    WHERE user_id = :user_id AND shares > 0
    ORDER BY updated_at DESC
""")

_USER_MARKET_SHARES_SQL = text("""
    SELECT COALESCE(SUM(shares), 0) AS total
    FROM positions
    WHERE user_id = :user_id AND market_id = :market_id
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_account(row: object) -> Account:
    return Account(
        user_id=row.user_id,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_ledger(row: object) -> LedgerEntry:
    outcome = row.outcome  # type: ignore[attr-defined]
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        entry_type=LedgerEntryType(row.entry_type),  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        outcome=Outcome(outcome) if outcome else None,
        shares=row.shares,  # type: ignore[attr-defined]
        price=row.price,  # type: ignore[attr-defined]
        fee=row.fee,  # type: ignore[attr-defined]
        external_ref=row.external_ref,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_position(row: object) -> Position:
    return Position(
        user_id=row.user_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        outcome=Outcome(row.outcome),  # type: ignore[attr-defined]
        shares=row.shares,  # type: ignore[attr-defined]
        cost_basis=row.cost_basis,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountRepository:
    """Concrete repository — all balance operations atomic at the SQL level."""

    async def get_account(
        self, db: AsyncSession, user_id: str, currency: str
    ) -> Account | None:
        result = await db.execute(
            _GET_ACCOUNT_SQL, {"user_id": user_id, "currency": currency}
        )
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def credit(
        self, db: AsyncSession, user_id: str, amount: Decimal, currency: str
    ) -> Account:
        result = await db.execute(
            _CREDIT_SQL, {"user_id": user_id, "currency": currency, "amount": amount}
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Account upsert returned no rows — this should never happen")
        return _row_to_account(row)

    async def debit(
        self, db: AsyncSession, user_id: str, amount: Decimal, currency: str
    ) -> Account:
        result = await db.execute(
            _DEBIT_SQL, {"user_id": user_id, "currency": currency, "amount": amount}
        )
        row = result.fetchone()
        if row is None:
            acc_result = await db.execute(
                _GET_ACCOUNT_SQL, {"user_id": user_id, "currency": currency}
            )
            acc_row = acc_result.fetchone()
            available = acc_row.balance if acc_row else ZERO
            raise InsufficientBalanceError(amount, available)
        return _row_to_account(row)

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
    ) -> LedgerEntry | None:
        """Append one entry. Returns None only when `external_ref` already exists."""
        result = await db.execute(
            _INSERT_LEDGER_SQL,
            {
                "user_id": user_id,
                "entry_type": entry_type.value,
                "currency": currency,
                "amount": amount,
                "balance_after": balance_after,
                "market_id": market_id,
                "outcome": outcome.value if outcome else None,
                "shares": shares,
                "price": price,
                "fee": fee,
                "external_ref": external_ref,
                "reference_id": reference_id,
                "description": description,
            },
        )
        row = result.fetchone()
        if row is None:
            if external_ref is None:
                raise InternalError("Ledger insert returned no rows — this should never happen")
            return None
        return _row_to_ledger(row)

    async def get_ledger_entry(
        self, db: AsyncSession, entry_id: int
    ) -> LedgerEntry | None:
        result = await db.execute(_GET_LEDGER_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_ledger(row) if row else None

    async def list_ledger_entries(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        entry_type: str | None,
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_LEDGER_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "entry_type": entry_type,
                "limit": limit,
            },
        )
        return [_row_to_ledger(row) for row in result.fetchall()]

    async def get_position_for_update(
        self, db: AsyncSession, user_id: str, market_id: str, outcome: Outcome
    ) -> Position | None:
        result = await db.execute(
            _GET_POSITION_FOR_UPDATE_SQL,
            {"user_id": user_id, "market_id": market_id, "outcome": outcome.value},
        )
        row = result.fetchone()
        return _row_to_position(row) if row else None

    async def add_to_position(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        outcome: Outcome,
        shares: Decimal,
        cost: Decimal,
    ) -> Position:
        result = await db.execute(
            _UPSERT_POSITION_SQL,
            {
                "user_id": user_id,
                "market_id": market_id,
                "outcome": outcome.value,
                "shares": shares,
                "cost": cost,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Position upsert returned no rows — this should never happen")
        return _row_to_position(row)

    async def reduce_position(
        self, db: AsyncSession, position: Position, shares: Decimal
    ) -> Position | None:
        """Remove `shares` from a locked position. Returns None when it was deleted.

        The cost basis shrinks in proportion to the shares removed.
        """
        remaining = position.shares - shares
        if remaining < ZERO:
            raise InsufficientSharesError(shares, position.shares)
        key = {
            "user_id": position.user_id,
            "market_id": position.market_id,
            "outcome": position.outcome.value,
        }
        if remaining == ZERO:
            await db.execute(_DELETE_POSITION_SQL, key)
            return None

        cost_basis = quantize_amount(position.cost_basis * remaining / position.shares)
        result = await db.execute(
            _UPDATE_POSITION_SQL, {**key, "shares": remaining, "cost_basis": cost_basis}
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Position update returned no rows — this should never happen")
        return _row_to_position(row)

    async def list_market_positions(
        self, db: AsyncSession, market_id: str, outcome: Outcome
    ) -> list[Position]:
        result = await db.execute(
            _LIST_MARKET_POSITIONS_SQL,
            {"market_id": market_id, "outcome": outcome.value},
        )
        return [_row_to_position(row) for row in result.fetchall()]

    async def list_user_positions(
        self, db: AsyncSession, user_id: str
    ) -> list[Position]:
        result = await db.execute(_LIST_USER_POSITIONS_SQL, {"user_id": user_id})
        return [_row_to_position(row) for row in result.fetchall()]

    async def get_user_market_shares(
        self, db: AsyncSession, user_id: str, market_id: str
    ) -> Decimal:
        result = await db.execute(
            _USER_MARKET_SHARES_SQL, {"user_id": user_id, "market_id": market_id}
        )
        row = result.fetchone()
        return row.total if row else ZERO
