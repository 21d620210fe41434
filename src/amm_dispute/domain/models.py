"""Domain models for amm_dispute — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.amm_common.enums import DisputeStatus, Outcome, VoteChoice


@dataclass
class Dispute:
    id: str
    market_id: str
    initiator_id: str
    proposed_outcome: Outcome
    evidence: str
    stake_amount: Decimal
    status: DisputeStatus
    votes_for: Decimal               # stake-weighted, includes the initiator's stake
    votes_against: Decimal
    created_at: datetime
    resolved_at: datetime | None = None

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def passed(self) -> bool:
        """Strict majority; a tie rejects."""
        return self.votes_for > self.votes_against


@dataclass
class DisputeVote:
    dispute_id: str
    user_id: str
    vote: VoteChoice
    stake: Decimal                   # weight snapshotted when the vote was cast
    created_at: datetime | None = None


@dataclass(frozen=True)
class VoteResult:
    dispute_id: str
    user_id: str
    vote: VoteChoice
    weight: Decimal
    votes_for: Decimal
    votes_against: Decimal


@dataclass(frozen=True)
class DisputeOutcome:
    dispute_id: str
    market_id: str
    status: DisputeStatus
    resolved_outcome: Outcome
    votes_for: Decimal
    votes_against: Decimal
    stake_amount: Decimal

    @property
    def passed(self) -> bool:
        return self.status is DisputeStatus.PASSED
