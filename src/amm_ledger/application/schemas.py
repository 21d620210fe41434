"""Pydantic schemas for trading and resolution endpoints."""

from decimal import Decimal

from pydantic import BaseModel, Field

from src.amm_common.enums import Outcome
from src.amm_ledger.domain.models import BuyResult, SellResult


class BuyRequest(BaseModel):
    outcome: Outcome
    amount: Decimal = Field(..., gt=0, description="Gross amount to spend, fee included")


class SellRequest(BaseModel):
    outcome: Outcome
    shares: Decimal = Field(..., gt=0)


class ResolveRequest(BaseModel):
    outcome: Outcome


class TradeResponse(BaseModel):
    market_id: str
    outcome: Outcome
    side: str                # "BUY" | "SELL"
    shares: Decimal
    amount: Decimal          # debited on buy, credited on sell
    fee: Decimal
    new_price: Decimal
    balance: Decimal
    ledger_entry_id: int

    @classmethod
    def from_buy(cls, r: BuyResult) -> "TradeResponse":
        return cls(
            market_id=r.market_id,
            outcome=r.outcome,
            side="BUY",
            shares=r.shares,
            amount=r.amount,
            fee=r.fee,
            new_price=r.new_price,
            balance=r.balance,
            ledger_entry_id=r.ledger_entry_id,
        )

    @classmethod
    def from_sell(cls, r: SellResult) -> "TradeResponse":
        return cls(
            market_id=r.market_id,
            outcome=r.outcome,
            side="SELL",
            shares=r.shares,
            amount=r.proceeds,
            fee=r.fee,
            new_price=r.new_price,
            balance=r.balance,
            ledger_entry_id=r.ledger_entry_id,
        )
