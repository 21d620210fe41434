"""DisputeRepository — concrete implementation of DisputeRepositoryProtocol.

Raw text() SQL. At most one ACTIVE dispute per market is also enforced by
the partial unique index uq_disputes_one_active; one vote per user per
dispute by the (dispute_id, user_id) primary key.

Transaction ownership: The CALLER (DisputeService) commits or rolls back.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.enums import DisputeStatus, Outcome, VoteChoice
from src.amm_common.errors import DisputeNotFoundError, InternalError
from src.amm_dispute.domain.models import Dispute, DisputeVote

_DISPUTE_COLUMNS = """
    id, market_id, initiator_id, proposed_outcome, evidence, stake_amount,
    status, votes_for, votes_against, created_at, resolved_at
"""

_INSERT_DISPUTE_SQL = text(f"""
    INSERT INTO disputes
        (id, market_id, initiator_id, proposed_outcome, evidence,
         stake_amount, status, votes_for, votes_against, created_at)
    VALUES
        (:id, :market_id, :initiator_id, :proposed_outcome, :evidence,
         :stake_amount, :status, :votes_for, :votes_against, :created_at)
    RETURNING {_DISPUTE_COLUMNS}
""")

_GET_DISPUTE_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS} FROM disputes WHERE id = :dispute_id
""")

_GET_DISPUTE_FOR_UPDATE_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS} FROM disputes WHERE id = :dispute_id FOR UPDATE
""")

_GET_ACTIVE_FOR_MARKET_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS}
    FROM disputes
    WHERE market_id = :market_id AND status = 'ACTIVE'
""")

_FIND_BY_PREFIX_SQL = text(f"""
    SELECT {_DISPUTE_COLUMNS}
    FROM disputes
    WHERE left(id, length(:prefix)) = :prefix
    ORDER BY created_at DESC
    LIMIT 1
""")

_GET_VOTE_SQL = text("""
    SELECT dispute_id, user_id, vote, stake, created_at
    FROM dispute_votes
    WHERE dispute_id = :dispute_id AND user_id = :user_id
""")

_INSERT_VOTE_SQL = text("""
    INSERT INTO dispute_votes (dispute_id, user_id, vote, stake)
    VALUES (:dispute_id, :user_id, :vote, :stake)
    ON CONFLICT (dispute_id, user_id) DO NOTHING
    RETURNING dispute_id
""")

_ADD_VOTES_FOR_SQL = text(f"""
    UPDATE disputes SET votes_for = votes_for + :weight
    WHERE id = :dispute_id
    RETURNING {_DISPUTE_COLUMNS}
""")

_ADD_VOTES_AGAINST_SQL = text(f"""
    UPDATE disputes SET votes_against = votes_against + :weight
    WHERE id = :dispute_id
    RETURNING {_DISPUTE_COLUMNS}
""")

_MARK_RESOLVED_SQL = text(f"""
    UPDATE disputes
    SET status = :status, resolved_at = :resolved_at
    WHERE id = :dispute_id AND status = 'ACTIVE'
    RETURNING {_DISPUTE_COLUMNS}
""")

_LIST_EXPIRED_ACTIVE_SQL = text("""
    SELECT id FROM disputes
    WHERE status = 'ACTIVE' AND created_at < :created_before
    ORDER BY created_at ASC
""")


def _row_to_dispute(row: object) -> Dispute:
    return Dispute(
        id=row.id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        initiator_id=row.initiator_id,  # type: ignore[attr-defined]
        proposed_outcome=Outcome(row.proposed_outcome),  # type: ignore[attr-defined]
        evidence=row.evidence,  # type: ignore[attr-defined]
        stake_amount=row.stake_amount,  # type: ignore[attr-defined]
        status=DisputeStatus(row.status),  # type: ignore[attr-defined]
        votes_for=row.votes_for,  # type: ignore[attr-defined]
        votes_against=row.votes_against,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
    )


class DisputeRepository:
    async def insert_dispute(self, db: AsyncSession, dispute: Dispute) -> Dispute:
        result = await db.execute(
            _INSERT_DISPUTE_SQL,
            {
                "id": dispute.id,
                "market_id": dispute.market_id,
                "initiator_id": dispute.initiator_id,
                "proposed_outcome": dispute.proposed_outcome.value,
                "evidence": dispute.evidence,
                "stake_amount": dispute.stake_amount,
                "status": dispute.status.value,
                "votes_for": dispute.votes_for,
                "votes_against": dispute.votes_against,
                "created_at": dispute.created_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Dispute insert returned no rows — this should never happen")
        return _row_to_dispute(row)

    async def get_dispute(self, db: AsyncSession, dispute_id: str) -> Dispute | None:
        row = (await db.execute(_GET_DISPUTE_SQL, {"dispute_id": dispute_id})).fetchone()
        return _row_to_dispute(row) if row else None

    async def get_dispute_for_update(
        self, db: AsyncSession, dispute_id: str
    ) -> Dispute | None:
        row = (
            await db.execute(_GET_DISPUTE_FOR_UPDATE_SQL, {"dispute_id": dispute_id})
        ).fetchone()
        return _row_to_dispute(row) if row else None

    async def get_active_for_market(
        self, db: AsyncSession, market_id: str
    ) -> Dispute | None:
        row = (
            await db.execute(_GET_ACTIVE_FOR_MARKET_SQL, {"market_id": market_id})
        ).fetchone()
        return _row_to_dispute(row) if row else None

    async def find_by_prefix(self, db: AsyncSession, prefix: str) -> Dispute | None:
        row = (await db.execute(_FIND_BY_PREFIX_SQL, {"prefix": prefix})).fetchone()
        return _row_to_dispute(row) if row else None

    async def get_vote(
        self, db: AsyncSession, dispute_id: str, user_id: str
    ) -> DisputeVote | None:
        row = (
            await db.execute(_GET_VOTE_SQL, {"dispute_id": dispute_id, "user_id": user_id})
        ).fetchone()
        if row is None:
            return None
        return DisputeVote(
            dispute_id=row.dispute_id,
            user_id=row.user_id,
            vote=VoteChoice(row.vote),
            stake=row.stake,
            created_at=row.created_at,
        )

    async def insert_vote(self, db: AsyncSession, vote: DisputeVote) -> bool:
        """Returns False when the user already voted on this dispute."""
        result = await db.execute(
            _INSERT_VOTE_SQL,
            {
                "dispute_id": vote.dispute_id,
                "user_id": vote.user_id,
                "vote": vote.vote.value,
                "stake": vote.stake,
            },
        )
        return result.fetchone() is not None

    async def add_votes(
        self, db: AsyncSession, dispute_id: str, choice: VoteChoice, weight: Decimal
    ) -> Dispute:
        sql = _ADD_VOTES_FOR_SQL if choice is VoteChoice.FOR else _ADD_VOTES_AGAINST_SQL
        row = (await db.execute(sql, {"dispute_id": dispute_id, "weight": weight})).fetchone()
        if row is None:
            raise DisputeNotFoundError(dispute_id)
        return _row_to_dispute(row)

    async def mark_resolved(
        self,
        db: AsyncSession,
        dispute_id: str,
        status: DisputeStatus,
        resolved_at: datetime,
    ) -> Dispute:
        row = (
            await db.execute(
                _MARK_RESOLVED_SQL,
                {"dispute_id": dispute_id, "status": status.value, "resolved_at": resolved_at},
            )
        ).fetchone()
        if row is None:
            raise InternalError(f"Dispute {dispute_id} was not ACTIVE when resolving")
        return _row_to_dispute(row)

    async def list_expired_active(
        self, db: AsyncSession, created_before: datetime
    ) -> list[str]:
        result = await db.execute(_LIST_EXPIRED_ACTIVE_SQL, {"created_before": created_before})
        return [row.id for row in result.fetchall()]
