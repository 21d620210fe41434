"""Value objects for the LMSR pricing engine — pure dataclasses, no I/O."""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Protocol

from src.amm_common.enums import Outcome


class PricedMarket(Protocol):
    """Anything carrying LMSR state: LmsrState, or the Market domain model."""

    b: Decimal
    shares_yes: Decimal
    shares_no: Decimal


@dataclass(frozen=True)
class LmsrState:
    b: Decimal
    shares_yes: Decimal = Decimal("0")
    shares_no: Decimal = Decimal("0")

    def shares_of(self, outcome: Outcome) -> Decimal:
        return self.shares_yes if outcome is Outcome.YES else self.shares_no

    def shifted(self, outcome: Outcome, delta: Decimal) -> "LmsrState":
        """Return a copy with `delta` shares added to `outcome` (negative = removed)."""
        if outcome is Outcome.YES:
            return replace(self, shares_yes=self.shares_yes + delta)
        return replace(self, shares_no=self.shares_no + delta)


@dataclass(frozen=True)
class MarketPrices:
    yes: Decimal
    no: Decimal

    def of(self, outcome: Outcome) -> Decimal:
        return self.yes if outcome is Outcome.YES else self.no


@dataclass(frozen=True)
class TradeQuote:
    shares: Decimal
    cost: Decimal        # buy: curve cost paid; sell: net proceeds after fee
    fee: Decimal
    total_cost: Decimal  # buy: gross amount debited; sell: gross proceeds
    new_price: Decimal   # price of the traded outcome after the trade


class BetViolation(str, Enum):
    BELOW_MINIMUM = "BELOW_MINIMUM"
    ABOVE_MAXIMUM = "ABOVE_MAXIMUM"


@dataclass(frozen=True)
class BetValidation:
    valid: bool
    reason: str | None = None
    violation: BetViolation | None = None
