"""Pydantic schemas and cursor utilities for amm_account API."""

import base64
import json
from decimal import Decimal

from pydantic import BaseModel, Field

from src.amm_account.domain.models import LedgerEntry
from src.amm_common.decimals import amount_to_display
from src.amm_common.enums import Currency, LedgerEntryType, MarketStatus, Outcome

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_id: int) -> str:
    """Encode a BIGINT primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return int(payload["id"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Request schemas (custody collaborator)
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0)
    currency: Currency = Currency.USDC
    tx_ref: str = Field(..., min_length=1, max_length=128, description="On-chain tx hash")


class WithdrawalRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0)
    currency: Currency = Currency.USDC
    destination: str | None = Field(None, max_length=128)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    currency: str
    balance: Decimal
    balance_display: str

    @classmethod
    def build(cls, user_id: str, currency: str, balance: Decimal) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            currency=currency,
            balance=balance,
            balance_display=amount_to_display(balance, currency),
        )


class DepositResponse(BaseModel):
    user_id: str
    currency: str
    amount: Decimal
    credited: bool           # False when tx_ref was already processed
    balance: Decimal
    ledger_entry_id: int | None


class WithdrawalResponse(BaseModel):
    withdrawal_id: int       # ledger entry id of the WITHDRAW debit
    user_id: str
    currency: str
    amount: Decimal
    balance: Decimal


class RevertResponse(BaseModel):
    withdrawal_id: int
    reverted: bool           # False when the revert was already applied
    balance: Decimal


class PositionItem(BaseModel):
    market_id: str
    short_id: str
    question: str
    market_status: MarketStatus
    outcome: Outcome
    outcome_label: str
    shares: Decimal
    cost_basis: Decimal
    current_price: Decimal
    current_value: Decimal


class PortfolioResponse(BaseModel):
    user_id: str
    currency: str
    balance: Decimal
    positions: list[PositionItem]
    positions_value: Decimal
    total_value: Decimal


class LedgerEntryItem(BaseModel):
    id: int
    entry_type: LedgerEntryType
    currency: str
    amount: Decimal
    amount_display: str
    balance_after: Decimal
    market_id: str | None
    outcome: Outcome | None
    shares: Decimal | None
    price: Decimal | None
    fee: Decimal | None
    reference_id: str | None
    description: str | None
    created_at: str  # ISO8601 string

    @classmethod
    def from_domain(cls, e: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=e.id,
            entry_type=e.entry_type,
            currency=e.currency,
            amount=e.amount,
            amount_display=amount_to_display(e.amount, e.currency),
            balance_after=e.balance_after,
            market_id=e.market_id,
            outcome=e.outcome,
            shares=e.shares,
            price=e.price,
            fee=e.fee,
            reference_id=e.reference_id,
            description=e.description,
            created_at=e.created_at.isoformat() if e.created_at else "",
        )


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
