"""Repository Protocol for disputes and their votes."""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.amm_common.enums import DisputeStatus, VoteChoice
from src.amm_dispute.domain.models import Dispute, DisputeVote


class DisputeRepositoryProtocol(Protocol):
    async def insert_dispute(self, db: AsyncSession, dispute: Dispute) -> Dispute: ...

    async def get_dispute(self, db: AsyncSession, dispute_id: str) -> Dispute | None: ...

    async def get_dispute_for_update(
        self, db: AsyncSession, dispute_id: str
    ) -> Dispute | None: ...

    async def get_active_for_market(
        self, db: AsyncSession, market_id: str
    ) -> Dispute | None: ...

    async def find_by_prefix(self, db: AsyncSession, prefix: str) -> Dispute | None: ...

    async def get_vote(
        self, db: AsyncSession, dispute_id: str, user_id: str
    ) -> DisputeVote | None: ...

    async def insert_vote(self, db: AsyncSession, vote: DisputeVote) -> bool: ...

    async def add_votes(
        self, db: AsyncSession, dispute_id: str, choice: VoteChoice, weight: Decimal
    ) -> Dispute: ...

    async def mark_resolved(
        self,
        db: AsyncSession,
        dispute_id: str,
        status: DisputeStatus,
        resolved_at: datetime,
    ) -> Dispute: ...

    async def list_expired_active(
        self, db: AsyncSession, created_before: datetime
    ) -> list[str]: ...
