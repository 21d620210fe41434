"""Results returned by SettlementLedger operations."""

from dataclasses import dataclass
from decimal import Decimal

from src.amm_common.enums import Outcome


@dataclass(frozen=True)
class BuyResult:
    market_id: str
    user_id: str
    outcome: Outcome
    amount: Decimal          # gross, debited
    shares: Decimal
    cost: Decimal            # curve cost of the shares
    fee: Decimal
    new_price: Decimal
    balance: Decimal
    ledger_entry_id: int


@dataclass(frozen=True)
class SellResult:
    market_id: str
    user_id: str
    outcome: Outcome
    shares: Decimal
    gross: Decimal
    fee: Decimal
    proceeds: Decimal        # net, credited
    new_price: Decimal
    balance: Decimal
    ledger_entry_id: int


@dataclass(frozen=True)
class FinalizeResult:
    market_id: str
    outcome: Outcome | None
    already_finalized: bool
    winners_paid: int = 0
    total_paid: Decimal = Decimal("0")
