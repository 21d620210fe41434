"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Account
  3xxx: Market
  4xxx: Trade
  5xxx: Position
  6xxx: Dispute
  9xxx: System

Every business error is recoverable by the caller; services roll back the
transaction before the error propagates.
"""

from decimal import Decimal


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Token is invalid or expired", 401)


class ForbiddenError(AppError):
    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(1002, detail, 403)


# --- 2xxx: Account ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: Decimal, available: Decimal) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required}, available {available}",
            422,
        )


class AccountNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Account not found for user {user_id}", 404)


class WithdrawalNotFoundError(AppError):
    def __init__(self, withdrawal_id: int) -> None:
        super().__init__(2003, f"Withdrawal not found: {withdrawal_id}", 404)


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketNotActiveError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3002, f"Market is not active: {market_id}", 422)


class MarketNotResolvedError(AppError):
    def __init__(self, market_id: str, status: str) -> None:
        super().__init__(3003, f"Market {market_id} is not resolved (status={status})", 422)


class AlreadyFinalizedError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3004, f"Market already finalized: {market_id}", 409)


class DisputeWindowOpenError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3005, f"Dispute window has not passed for market {market_id}", 422)


class NotMarketCreatorError(AppError):
    def __init__(self) -> None:
        super().__init__(3006, "Only the market creator can resolve this market", 403)


class InvalidLiquidityError(AppError):
    def __init__(self, b: Decimal, minimum: Decimal) -> None:
        super().__init__(3007, f"Liquidity parameter {b} is below the minimum {minimum}", 422)


# --- 4xxx: Trade ---

class BetBelowMinimumError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(4001, reason, 422)


class BetAboveMaximumError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(4002, reason, 422)


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4003, f"Invalid amount: {detail}", 422)


# --- 5xxx: Position ---

class InsufficientSharesError(AppError):
    def __init__(self, required: Decimal, held: Decimal) -> None:
        super().__init__(
            5001,
            f"Insufficient shares: required {required}, held {held}",
            422,
        )


# --- 6xxx: Dispute ---

class DisputeNotFoundError(AppError):
    def __init__(self, dispute_id: str) -> None:
        super().__init__(6001, f"Dispute not found: {dispute_id}", 404)


class DisputeWindowClosedError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(6002, f"Dispute window has closed for market {market_id}", 422)


class DisputeAlreadyActiveError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(6003, f"Active dispute already exists for market {market_id}", 409)


class AlreadyVotedError(AppError):
    def __init__(self, dispute_id: str) -> None:
        super().__init__(6004, f"Already voted on dispute {dispute_id}", 409)


class NoVotingStakeError(AppError):
    def __init__(self) -> None:
        super().__init__(6005, "Must hold shares in the market to vote", 422)


class DisputeNotActiveError(AppError):
    def __init__(self, dispute_id: str) -> None:
        super().__init__(6006, f"Dispute is not active: {dispute_id}", 422)


class SameOutcomeDisputeError(AppError):
    def __init__(self) -> None:
        super().__init__(6007, "Proposed outcome must differ from the resolved outcome", 422)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
