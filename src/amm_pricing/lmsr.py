"""LMSR (Logarithmic Market Scoring Rule) pricing engine — pure math, no state.

Cost function for a binary market with liquidity parameter b:

    C(q) = b * ln(e^(q_yes/b) + e^(q_no/b))

Every computation runs in a 28-digit, ROUND_HALF_UP decimal context.
The cost function is evaluated in log-sum-exp form,

    C(q) = m + b * ln(e^((q_yes-m)/b) + e^((q_no-m)/b)),   m = max(q_yes, q_no)

so large share imbalances neither overflow nor cancel.

Nothing here mutates the market passed in; the settlement ledger applies
the returned quote to the stored market row.
"""

from decimal import Decimal, localcontext

from src.amm_common.decimals import LMSR_CONTEXT, ONE, ZERO, percent, to_decimal
from src.amm_common.enums import Outcome
from src.amm_pricing.models import (
    BetValidation,
    BetViolation,
    LmsrState,
    MarketPrices,
    PricedMarket,
    TradeQuote,
)

DEFAULT_TOLERANCE = Decimal("0.0001")
MAX_ITERATIONS = 100
UPPER_BOUND_FACTOR = 10
MAX_BRACKET_DOUBLINGS = 64

_LN_2 = Decimal(2).ln(LMSR_CONTEXT)


def _state(market: PricedMarket) -> LmsrState:
    return LmsrState(
        b=to_decimal(market.b),
        shares_yes=to_decimal(market.shares_yes),
        shares_no=to_decimal(market.shares_no),
    )


def cost_function(market: PricedMarket) -> Decimal:
    """C(q) = b * ln(e^(q_yes/b) + e^(q_no/b))."""
    s = _state(market)
    with localcontext(LMSR_CONTEXT):
        m = max(s.shares_yes, s.shares_no)
        total = ((s.shares_yes - m) / s.b).exp() + ((s.shares_no - m) / s.b).exp()
        return m + s.b * total.ln()


def prices(market: PricedMarket) -> MarketPrices:
    """Instantaneous prices; p_no is derived as 1 - p_yes so they sum to exactly 1."""
    s = _state(market)
    with localcontext(LMSR_CONTEXT):
        m = max(s.shares_yes, s.shares_no)
        exp_yes = ((s.shares_yes - m) / s.b).exp()
        exp_no = ((s.shares_no - m) / s.b).exp()
        p_yes = exp_yes / (exp_yes + exp_no)
        return MarketPrices(yes=p_yes, no=ONE - p_yes)


def cost_to_buy(market: PricedMarket, outcome: Outcome, shares: Decimal) -> Decimal:
    """C(after) - C(before). Negative `shares` models a sell and yields a negative cost."""
    s = _state(market)
    after = s.shifted(outcome, to_decimal(shares))
    with localcontext(LMSR_CONTEXT):
        return cost_function(after) - cost_function(s)


def shares_to_buy(
    market: PricedMarket,
    outcome: Outcome,
    amount: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> Decimal:
    """Inverse of cost_to_buy: shares whose cost is within `tolerance` of `amount`.

    Bisection over [0, 10 * amount]. When the outcome trades below 0.1 the
    initial upper bound cannot buy `amount` worth of shares, so it is doubled
    (a bounded number of times) until it brackets the answer. Always
    terminates; after `max_iterations` the last midpoint is returned.
    """
    s = _state(market)
    amount = to_decimal(amount)
    if amount <= ZERO:
        return ZERO

    with localcontext(LMSR_CONTEXT):
        low = ZERO
        high = amount * UPPER_BOUND_FACTOR
        for _ in range(MAX_BRACKET_DOUBLINGS):
            if cost_to_buy(s, outcome, high) >= amount:
                break
            low = high
            high = high * 2

        mid = low
        for _ in range(max_iterations):
            mid = (low + high) / 2
            cost = cost_to_buy(s, outcome, mid)
            if abs(cost - amount) < tolerance:
                return mid
            if cost < amount:
                low = mid
            else:
                high = mid
        return mid


def amount_to_sell(market: PricedMarket, outcome: Outcome, shares: Decimal) -> Decimal:
    """Gross proceeds of selling `shares`: the negated cost of buying -shares."""
    return -cost_to_buy(market, outcome, -to_decimal(shares))


def execute_buy(
    market: PricedMarket,
    outcome: Outcome,
    gross_amount: Decimal,
    fee_rate: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> TradeQuote:
    """Quote a buy of `gross_amount`; the fee is taken off the top before pricing."""
    s = _state(market)
    gross_amount = to_decimal(gross_amount)
    with localcontext(LMSR_CONTEXT):
        fee = gross_amount * fee_rate
        net = gross_amount * (ONE - fee_rate)
        shares = shares_to_buy(s, outcome, net, tolerance)
        cost = cost_to_buy(s, outcome, shares)
        new_price = prices(s.shifted(outcome, shares)).of(outcome)
    return TradeQuote(
        shares=shares,
        cost=cost,
        fee=fee,
        total_cost=gross_amount,
        new_price=new_price,
    )


def execute_sell(
    market: PricedMarket,
    outcome: Outcome,
    shares: Decimal,
    fee_rate: Decimal,
) -> TradeQuote:
    """Quote a sell of `shares`; the fee is taken from the gross proceeds."""
    s = _state(market)
    shares = to_decimal(shares)
    with localcontext(LMSR_CONTEXT):
        gross = amount_to_sell(s, outcome, shares)
        fee = gross * fee_rate
        net = gross - fee
        new_price = prices(s.shifted(outcome, -shares)).of(outcome)
    return TradeQuote(
        shares=shares,
        cost=net,
        fee=fee,
        total_cost=gross,
        new_price=new_price,
    )


def max_loss(b: Decimal) -> Decimal:
    """Subsidizer's worst-case loss for a binary market: b * ln(2)."""
    with localcontext(LMSR_CONTEXT):
        return to_decimal(b) * _LN_2


def validate_bet(
    market: PricedMarket,
    amount: Decimal,
    min_bet: Decimal,
    max_bet_percent: Decimal,
    currency: str = "USDC",
) -> BetValidation:
    amount = to_decimal(amount)
    if amount < min_bet:
        return BetValidation(
            valid=False,
            reason=f"Minimum bet is {min_bet} {currency}",
            violation=BetViolation.BELOW_MINIMUM,
        )

    max_bet = to_decimal(market.b) * percent(max_bet_percent)
    if amount > max_bet:
        return BetValidation(
            valid=False,
            reason=f"Maximum bet is {max_bet:.2f} {currency}",
            violation=BetViolation.ABOVE_MAXIMUM,
        )

    return BetValidation(valid=True)
