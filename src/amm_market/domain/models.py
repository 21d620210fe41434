"""Domain models for amm_market — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.amm_common.enums import MarketStatus, Outcome


@dataclass
class Market:
    id: str
    creator_id: str
    question: str
    outcome_yes_label: str
    outcome_no_label: str
    b: Decimal                       # LMSR liquidity parameter, fixed at creation
    shares_yes: Decimal
    shares_no: Decimal
    total_volume: Decimal            # gross trade amounts, monotonic
    status: MarketStatus
    resolved_outcome: Outcome | None
    resolved_at: datetime | None
    dispute_deadline: datetime | None
    finalized_at: datetime | None
    group_id: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def short_id(self) -> str:
        return self.id[:8]

    def shares_of(self, outcome: Outcome) -> Decimal:
        return self.shares_yes if outcome is Outcome.YES else self.shares_no

    def label_of(self, outcome: Outcome) -> str:
        return self.outcome_yes_label if outcome is Outcome.YES else self.outcome_no_label
