"""MarketRepository — concrete implementation of MarketRepositoryProtocol.

All queries use raw text() SQL (no ORM).
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.

Transaction ownership: The CALLER (application service or settlement ledger)
is responsible for committing or rolling back.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.enums import MarketStatus, Outcome
from src.amm_common.errors import InternalError, MarketNotFoundError
from src.amm_market.domain.models import Market

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_MARKET_COLUMNS = """
    id, creator_id, question, outcome_yes_label, outcome_no_label,
    b_param, shares_yes, shares_no, total_volume,
    status, resolved_outcome, resolved_at, dispute_deadline, finalized_at,
    group_id, created_at, updated_at
"""

_INSERT_MARKET_SQL = text(f"""
    INSERT INTO markets
        (id, creator_id, question, outcome_yes_label, outcome_no_label,
         b_param, group_id)
    VALUES
        (:id, :creator_id, :question, :outcome_yes_label, :outcome_no_label,
         :b_param, :group_id)
    RETURNING {_MARKET_COLUMNS}
""")

_GET_MARKET_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
""")

_GET_MARKET_FOR_UPDATE_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
    FOR UPDATE
""")

_FIND_BY_PREFIX_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE left(id, length(:prefix)) = :prefix
    ORDER BY created_at DESC
    LIMIT 1
""")

_LIST_MARKETS_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE
        (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
        AND (CAST(:group_id AS TEXT) IS NULL OR group_id = CAST(:group_id AS TEXT))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_UPDATE_TRADE_STATE_SQL = text("""
    UPDATE markets
    SET shares_yes = :shares_yes,
        shares_no = :shares_no,
        total_volume = :total_volume,
        updated_at = NOW()
    WHERE id = :market_id
""")

_MARK_RESOLVED_SQL = text(f"""
    UPDATE markets
    SET status = 'RESOLVED',
        resolved_outcome = :outcome,
        resolved_at = :resolved_at,
        dispute_deadline = :dispute_deadline,
        updated_at = NOW()
    WHERE id = :market_id
    RETURNING {_MARKET_COLUMNS}
""")

_UPDATE_STATUS_SQL = text("""
    UPDATE markets
    SET status = :status,
        resolved_outcome = COALESCE(CAST(:resolved_outcome AS TEXT), resolved_outcome),
        updated_at = NOW()
    WHERE id = :market_id
""")

_MARK_FINALIZED_SQL = text("""
    UPDATE markets
    SET status = 'FINALIZED',
        finalized_at = :finalized_at,
        updated_at = NOW()
    WHERE id = :market_id AND status = 'RESOLVED'
""")

_LIST_EXPIRED_RESOLVED_SQL = text("""
    SELECT id
    FROM markets
    WHERE status = 'RESOLVED' AND dispute_deadline < :now
    ORDER BY dispute_deadline ASC
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_market(row: object) -> Market:
    resolved = row.resolved_outcome  # type: ignore[attr-defined]
    return Market(
        id=row.id,  # type: ignore[attr-defined]
        creator_id=row.creator_id,  # type: ignore[attr-defined]
        question=row.question,  # type: ignore[attr-defined]
        outcome_yes_label=row.outcome_yes_label,  # type: ignore[attr-defined]
        outcome_no_label=row.outcome_no_label,  # type: ignore[attr-defined]
        b=row.b_param,  # type: ignore[attr-defined]
        shares_yes=row.shares_yes,  # type: ignore[attr-defined]
        shares_no=row.shares_no,  # type: ignore[attr-defined]
        total_volume=row.total_volume,  # type: ignore[attr-defined]
        status=MarketStatus(row.status),  # type: ignore[attr-defined]
        resolved_outcome=Outcome(resolved) if resolved else None,
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
        dispute_deadline=row.dispute_deadline,  # type: ignore[attr-defined]
        finalized_at=row.finalized_at,  # type: ignore[attr-defined]
        group_id=row.group_id,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MarketRepository:
    """Concrete repository — row locks via SELECT ... FOR UPDATE."""

    async def insert_market(self, db: AsyncSession, market: Market) -> Market:
        result = await db.execute(
            _INSERT_MARKET_SQL,
            {
                "id": market.id,
                "creator_id": market.creator_id,
                "question": market.question,
                "outcome_yes_label": market.outcome_yes_label,
                "outcome_no_label": market.outcome_no_label,
                "b_param": market.b,
                "group_id": market.group_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Market insert returned no rows — this should never happen")
        return _row_to_market(row)

    async def get_market_by_id(
        self, db: AsyncSession, market_id: str
    ) -> Market | None:
        result = await db.execute(_GET_MARKET_SQL, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_market(row) if row else None

    async def get_market_for_update(
        self, db: AsyncSession, market_id: str
    ) -> Market | None:
        result = await db.execute(_GET_MARKET_FOR_UPDATE_SQL, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_market(row) if row else None

    async def find_by_prefix(
        self, db: AsyncSession, prefix: str
    ) -> Market | None:
        result = await db.execute(_FIND_BY_PREFIX_SQL, {"prefix": prefix})
        row = result.fetchone()
        return _row_to_market(row) if row else None

    async def list_markets(
        self,
        db: AsyncSession,
        status: MarketStatus | None,
        group_id: str | None,
        limit: int,
    ) -> list[Market]:
        result = await db.execute(
            _LIST_MARKETS_SQL,
            {
                "status": status.value if status else None,
                "group_id": group_id,
                "limit": limit,
            },
        )
        return [_row_to_market(row) for row in result.fetchall()]

    async def update_trade_state(
        self,
        db: AsyncSession,
        market_id: str,
        shares_yes: Decimal,
        shares_no: Decimal,
        total_volume: Decimal,
    ) -> None:
        await db.execute(
            _UPDATE_TRADE_STATE_SQL,
            {
                "market_id": market_id,
                "shares_yes": shares_yes,
                "shares_no": shares_no,
                "total_volume": total_volume,
            },
        )

    async def mark_resolved(
        self,
        db: AsyncSession,
        market_id: str,
        outcome: Outcome,
        resolved_at: datetime,
        dispute_deadline: datetime,
    ) -> Market:
        result = await db.execute(
            _MARK_RESOLVED_SQL,
            {
                "market_id": market_id,
                "outcome": outcome.value,
                "resolved_at": resolved_at,
                "dispute_deadline": dispute_deadline,
            },
        )
        row = result.fetchone()
        if row is None:
            raise MarketNotFoundError(market_id)
        return _row_to_market(row)

    async def update_status(
        self,
        db: AsyncSession,
        market_id: str,
        status: MarketStatus,
        resolved_outcome: Outcome | None = None,
    ) -> None:
        await db.execute(
            _UPDATE_STATUS_SQL,
            {
                "market_id": market_id,
                "status": status.value,
                "resolved_outcome": resolved_outcome.value if resolved_outcome else None,
            },
        )

    async def mark_finalized(
        self, db: AsyncSession, market_id: str, finalized_at: datetime
    ) -> None:
        await db.execute(
            _MARK_FINALIZED_SQL,
            {"market_id": market_id, "finalized_at": finalized_at},
        )

    async def list_expired_resolved(
        self, db: AsyncSession, now: datetime
    ) -> list[str]:
        result = await db.execute(_LIST_EXPIRED_RESOLVED_SQL, {"now": now})
        return [row.id for row in result.fetchall()]
