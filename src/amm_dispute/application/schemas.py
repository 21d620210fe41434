"""Pydantic schemas for amm_dispute API."""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.amm_common.enums import DisputeStatus, Outcome, VoteChoice
from src.amm_dispute.domain.models import Dispute, VoteResult


class CreateDisputeRequest(BaseModel):
    proposed_outcome: Outcome
    evidence: str = Field(..., min_length=1, max_length=2000)


class VoteRequest(BaseModel):
    vote: VoteChoice


class DisputeDetail(BaseModel):
    id: str
    short_id: str
    market_id: str
    initiator_id: str
    proposed_outcome: Outcome
    evidence: str
    stake_amount: Decimal
    status: DisputeStatus
    votes_for: Decimal
    votes_against: Decimal
    created_at: str
    resolved_at: str | None

    @classmethod
    def from_domain(cls, d: Dispute) -> "DisputeDetail":
        return cls(
            id=d.id,
            short_id=d.short_id,
            market_id=d.market_id,
            initiator_id=d.initiator_id,
            proposed_outcome=d.proposed_outcome,
            evidence=d.evidence,
            stake_amount=d.stake_amount,
            status=d.status,
            votes_for=d.votes_for,
            votes_against=d.votes_against,
            created_at=d.created_at.isoformat(),
            resolved_at=d.resolved_at.isoformat() if d.resolved_at else None,
        )


class VoteResponse(BaseModel):
    dispute_id: str
    vote: VoteChoice
    weight: Decimal
    votes_for: Decimal
    votes_against: Decimal

    @classmethod
    def from_result(cls, r: VoteResult) -> "VoteResponse":
        return cls(
            dispute_id=r.dispute_id,
            vote=r.vote,
            weight=r.weight,
            votes_for=r.votes_for,
            votes_against=r.votes_against,
        )
