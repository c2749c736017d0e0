"""
Token Pricing Engine with Bonding Curves

This module implements the pricing side of a token launch: pure functions that
map a curve shape and the sale progress to a spot price, and the conversions
between funds and tokens used to quote buys and sells against a bonding market.

Bonding Curve Types Supported:
- Linear: Price increases linearly from the base price to the max price
- Sigmoid: Smoothstep S-curve (3x^2 - 2x^3), slow start, rapid middle, slow end
- Steep: Quadratic growth, rewarding the earliest buyers

Fixed-Point Arithmetic:
- Prices are funds units per whole token, scaled by PRECISION (10^18)
- Progress is tokens_sold * PRECISION / total_supply, so it lies in [0, PRECISION]
- Every division floors; every subtraction is checked before it happens
- All values are Python integers, so nothing can wrap

Conversion Process:
1. Buy: spend funds at the current spot price (first-order approximation)
2. Sell: receive funds at the price of the midpoint of the sold range
3. calculate_curve_integral gives the exact area under the Linear curve and a
   midpoint approximation for the other shapes

Buys and sells deliberately use different approximations, so for Sigmoid and
Steep curves a buy followed by an equally sized sell does not return the exact
input net of fees.
"""
from typing import Tuple

from mcp_launchpad.config import BPS_DENOMINATOR, PRECISION
from mcp_launchpad.schemas import CurveType, MarketState
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Launched tokens carry 18 decimals
TOKEN_UNIT = 10**18


def _price_range(base_price: int, max_price: int) -> int:
    return max_price - base_price if max_price > base_price else 0


def calculate_price(curve_type: CurveType, tokens_sold: int, total_supply: int, base_price: int, max_price: int) -> int:
    """
    Calculates the spot price for the given sale progress.

    Args:
        curve_type: Shape of the bonding curve.
        tokens_sold: Tokens already sold through the curve.
        total_supply: Tokens available to the curve.
        base_price: Price at zero progress (10^18 fixed point).
        max_price: Price at full progress (10^18 fixed point).

    Returns:
        The price of one whole token in funds units. ``base_price`` when the
        supply is zero.

    Raises:
        InvalidCurveType: If the curve type is unknown.
    """
    if total_supply == 0:
        return base_price

    progress = tokens_sold * PRECISION // total_supply
    price_range = _price_range(base_price, max_price)

    curve_type = CurveType(curve_type)
    if curve_type == CurveType.linear:
        return base_price + progress * price_range // PRECISION
    if curve_type == CurveType.sigmoid:
        three_scaled = 3 * PRECISION
        two_progress = 2 * progress
        factor = three_scaled - two_progress if three_scaled > two_progress else 0
        # Single floor over the exact product keeps the curve non-decreasing
        sigmoid_progress = progress * progress * factor // (PRECISION * PRECISION)
        return base_price + sigmoid_progress * price_range // PRECISION
    # Steep
    steep_progress = progress * progress // PRECISION
    return base_price + steep_progress * price_range // PRECISION


def calculate_tokens_for_funds(
    curve_type: CurveType, funds_in: int, tokens_sold: int, total_supply: int, base_price: int, max_price: int
) -> int:
    """
    Estimates the tokens bought with ``funds_in`` at the current spot price.

    The result is capped at the remaining supply. Returns 0 when there are no
    funds, no supply, or the spot price is zero.
    """
    if funds_in == 0 or total_supply == 0:
        return 0

    current_price = calculate_price(curve_type, tokens_sold, total_supply, base_price, max_price)
    if current_price == 0:
        return 0

    tokens = funds_in * TOKEN_UNIT // current_price
    remaining = total_supply - tokens_sold if total_supply > tokens_sold else 0
    return min(tokens, remaining)


def calculate_funds_for_tokens(
    curve_type: CurveType, tokens_out: int, tokens_sold: int, total_supply: int, base_price: int, max_price: int
) -> int:
    """
    Estimates the gross funds returned for selling ``tokens_out`` back to the curve.

    Uses the price at the midpoint between ``tokens_sold - tokens_out`` (floored
    at zero) and ``tokens_sold``. Returns 0 when nothing is sold or nothing has
    been sold yet.
    """
    if tokens_out == 0 or tokens_sold == 0:
        return 0

    sell_from = tokens_sold - tokens_out if tokens_sold > tokens_out else 0
    avg_sold = (tokens_sold + sell_from) // 2
    avg_price = calculate_price(curve_type, avg_sold, total_supply, base_price, max_price)
    return tokens_out * avg_price // TOKEN_UNIT


def calculate_curve_integral(
    curve_type: CurveType, from_tokens: int, to_tokens: int, total_supply: int, base_price: int, max_price: int
) -> int:
    """
    Calculates the funds needed to move the sale from ``from_tokens`` to ``to_tokens``.

    Linear curves use the closed form
    ``base * (b - a) + range * (b - a) * (a + b) / (2 * supply)``, scaled down by
    10^18. Other shapes fall back to the midpoint rule.
    """
    if from_tokens >= to_tokens or total_supply == 0:
        return 0

    token_diff = to_tokens - from_tokens
    if CurveType(curve_type) == CurveType.linear:
        price_range = _price_range(base_price, max_price)
        base_cost = base_price * token_diff
        range_cost = price_range * token_diff * (from_tokens + to_tokens) // (2 * total_supply)
        return (base_cost + range_cost) // TOKEN_UNIT

    mid_tokens = (from_tokens + to_tokens) // 2
    mid_price = calculate_price(curve_type, mid_tokens, total_supply, base_price, max_price)
    return mid_price * token_diff // TOKEN_UNIT


def split_fees(amount: int, platform_fee_bps: int, creator_fee_bps: int) -> Tuple[int, int, int]:
    """
    Splits ``amount`` into the platform fee, the creator fee and the remainder.

    Each fee is floored independently, so any rounding dust stays in the net amount.

    Returns:
        (platform_fee, creator_fee, net)
    """
    platform_fee = amount * platform_fee_bps // BPS_DENOMINATOR
    creator_fee = amount * creator_fee_bps // BPS_DENOMINATOR
    return platform_fee, creator_fee, amount - platform_fee - creator_fee


def _after_combined_fee(amount: int, state: MarketState) -> int:
    fee = amount * (state.platform_fee_bps + state.creator_fee_bps) // BPS_DENOMINATOR
    return amount - fee


def quote_buy(state: MarketState, funds_in: int) -> int:
    """Tokens a buy of ``funds_in`` would yield from the market's current state."""
    funds_after_fee = _after_combined_fee(funds_in, state)
    tokens = calculate_tokens_for_funds(
        state.curve_type, funds_after_fee, state.tokens_sold, state.total_supply, state.base_price, state.max_price
    )
    logger.debug(f"Buy quote for {state.token}: {funds_in} funds -> {tokens} tokens")
    return tokens


def quote_sell(state: MarketState, tokens_in: int) -> int:
    """Net funds a sell of ``tokens_in`` would return from the market's current state."""
    gross = calculate_funds_for_tokens(
        state.curve_type, tokens_in, state.tokens_sold, state.total_supply, state.base_price, state.max_price
    )
    funds = _after_combined_fee(gross, state)
    logger.debug(f"Sell quote for {state.token}: {tokens_in} tokens -> {funds} funds")
    return funds
