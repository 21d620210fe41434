"""Decimal arithmetic utilities for the settlement currency and shares.

All prices, amounts, shares and balances use decimal.Decimal. No float.
Balances move in whole micro-units (USDC has 6 decimals); share quantities
keep 18 decimal places, matching the NUMERIC(38, 18) columns.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Context, Decimal

LMSR_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

AMOUNT_QUANTUM = Decimal("0.000001")
SHARES_QUANTUM = Decimal("0.000000000000000001")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce to Decimal; floats go through str() to avoid binary artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_amount(value: Decimal, rounding: str = ROUND_DOWN) -> Decimal:
    """Round a currency amount to 6 dp. Credits round down (platform never loses)."""
    return value.quantize(AMOUNT_QUANTUM, rounding=rounding)


def quantize_amount_up(value: Decimal) -> Decimal:
    """Round a required amount (stake, fee) up to 6 dp."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_UP)


def quantize_shares(value: Decimal) -> Decimal:
    """Round a share quantity to the 18 dp the database stores."""
    return value.quantize(SHARES_QUANTUM, rounding=ROUND_DOWN)


def percent(value: Decimal) -> Decimal:
    """Convert a percentage (2 -> 0.02)."""
    return value / HUNDRED


def amount_to_display(amount: Decimal, currency: str = "USDC") -> str:
    """Format an amount for display: Decimal('1234.5') -> '1,234.50 USDC'."""
    return f"{amount:,.2f} {currency}"
