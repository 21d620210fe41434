"""Pydantic schemas for amm_market API requests and responses.

Prices are LMSR instantaneous probabilities in [0, 1]; all amounts are in
the settlement currency. Decimals serialize as strings in JSON mode.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.amm_common.enums import MarketStatus, Outcome
from src.amm_market.domain.models import Market
from src.amm_pricing import lmsr
from src.amm_pricing.models import TradeQuote

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateMarketRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=500)
    outcome_yes_label: str = Field("Yes", min_length=1, max_length=64)
    outcome_no_label: str = Field("No", min_length=1, max_length=64)
    b: Decimal | None = Field(None, gt=0, description="Liquidity parameter; default from settings")
    group_id: str | None = Field(None, max_length=64)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MarketDetail(BaseModel):
    id: str
    short_id: str
    creator_id: str
    question: str
    outcome_yes_label: str
    outcome_no_label: str
    b: Decimal
    shares_yes: Decimal
    shares_no: Decimal
    total_volume: Decimal
    price_yes: Decimal
    price_no: Decimal
    status: MarketStatus
    resolved_outcome: Outcome | None
    resolved_at: str | None
    dispute_deadline: str | None
    finalized_at: str | None
    group_id: str | None
    created_at: str

    @classmethod
    def from_domain(cls, m: Market) -> "MarketDetail":
        p = lmsr.prices(m)
        return cls(
            id=m.id,
            short_id=m.short_id,
            creator_id=m.creator_id,
            question=m.question,
            outcome_yes_label=m.outcome_yes_label,
            outcome_no_label=m.outcome_no_label,
            b=m.b,
            shares_yes=m.shares_yes,
            shares_no=m.shares_no,
            total_volume=m.total_volume,
            price_yes=p.yes,
            price_no=p.no,
            status=m.status,
            resolved_outcome=m.resolved_outcome,
            resolved_at=m.resolved_at.isoformat() if m.resolved_at else None,
            dispute_deadline=m.dispute_deadline.isoformat() if m.dispute_deadline else None,
            finalized_at=m.finalized_at.isoformat() if m.finalized_at else None,
            group_id=m.group_id,
            created_at=m.created_at.isoformat(),
        )


class MarketListResponse(BaseModel):
    items: list[MarketDetail]


class QuoteResponse(BaseModel):
    """Pre-trade preview of a buy; nothing is reserved or debited."""

    market_id: str
    outcome: Outcome
    amount: Decimal
    price_before: Decimal
    shares: Decimal
    cost: Decimal
    fee: Decimal
    new_price: Decimal
    max_loss: Decimal
    valid: bool
    reason: str | None

    @classmethod
    def from_quote(
        cls,
        market: Market,
        outcome: Outcome,
        quote: TradeQuote,
        valid: bool,
        reason: str | None,
    ) -> "QuoteResponse":
        return cls(
            market_id=market.id,
            outcome=outcome,
            amount=quote.total_cost,
            price_before=lmsr.prices(market).of(outcome),
            shares=quote.shares,
            cost=quote.cost,
            fee=quote.fee,
            new_price=quote.new_price,
            max_loss=lmsr.max_loss(market.b),
            valid=valid,
            reason=reason,
        )
