"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def other(self) -> "Outcome":
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class MarketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"
    DISPUTED = "DISPUTED"
    FINALIZED = "FINALIZED"


class Currency(str, Enum):
    USDC = "USDC"
    SOL = "SOL"


class LedgerEntryType(str, Enum):
    # Trading
    BUY = "BUY"
    SELL = "SELL"
    # Custody
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    WITHDRAW_REVERT = "WITHDRAW_REVERT"
    # Disputes
    DISPUTE_STAKE = "DISPUTE_STAKE"
    DISPUTE_REFUND = "DISPUTE_REFUND"
    DISPUTE_FORFEIT = "DISPUTE_FORFEIT"
    # Settlement
    PAYOUT = "PAYOUT"


class DisputeStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PASSED = "PASSED"
    REJECTED = "REJECTED"


class VoteChoice(str, Enum):
    FOR = "FOR"
    AGAINST = "AGAINST"
