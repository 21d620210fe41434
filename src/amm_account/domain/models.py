"""Domain models for amm_account — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.amm_common.enums import LedgerEntryType, Outcome


@dataclass
class Account:
    user_id: str
    currency: str
    balance: Decimal
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Position:
    user_id: str
    market_id: str
    outcome: Outcome
    shares: Decimal
    cost_basis: Decimal          # gross amount paid for the shares still held
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL
    user_id: str
    entry_type: LedgerEntryType
    currency: str
    amount: Decimal                  # signed: positive=credit negative=debit
    balance_after: Decimal
    market_id: str | None = None
    outcome: Outcome | None = None
    shares: Decimal | None = None
    price: Decimal | None = None
    fee: Decimal | None = None
    external_ref: str | None = None  # idempotency key (tx hash, revert key)
    reference_id: str | None = None  # dispute id / withdrawal entry id
    description: str | None = None
    created_at: datetime | None = None
