"""
Token Launchpad Server - MCP Server Implementation

This module exposes the launchpad as MCP tools: creating launches, trading
against bonding curves, refunds and graduation, and trading or providing
liquidity through the AMM router once a token has graduated.

Key Features:
- Launches created from JSON configurations (saved back to the config directory)
- Buy/sell quotes and execution against each launch's bonding curve
- Refund claims after a failed sale and permissionless graduation
- Multi-hop quotes and swaps across AMM pools, liquidity provisioning
- Rate limiting per client id

Error Handling:
- Every tool returns a human-readable string
- Launchpad failures are reported as "Error <code>: <message>", where the code
  identifies the exact condition
- Every state-changing tool runs inside atomic(), so a failed call leaves the
  launchpad untouched
"""

import json
import time
from typing import Callable, List

from pydantic import Field, ValidationError as PydanticValidationError

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_launchpad import config
from mcp_launchpad import rate_limiter
from mcp_launchpad.errors import LaunchpadError, RateLimitExceededError, ValidationError
from mcp_launchpad.launchpad import Launchpad
from mcp_launchpad.ledger import resolve
from mcp_launchpad.schemas import LaunchConfigModel
from mcp_launchpad.storage import atomic

logger = get_logger(__name__)

# Constants
MAX_ID_LENGTH = 100
MAX_CONFIG_JSON_LENGTH = 10_000
MAX_PATH_LENGTH = 5

# --- Server Setup ---
mcp = FastMCP(name="Token Launchpad Server")

launchpad = Launchpad(config_dir=config.LAUNCH_CONFIG_DIR)


def validate_identifier(name: str, value: str) -> None:
    if not value or not isinstance(value, str):
        raise ValidationError(f"{name} must be a non-empty string")
    if len(value) > MAX_ID_LENGTH:
        raise ValidationError(f"{name} is too long")


def validate_amount(name: str, value: int, allow_zero: bool = False) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'non-negative' if allow_zero else 'positive'}")


def validate_path(path: List[str]) -> None:
    if not isinstance(path, list) or len(path) > MAX_PATH_LENGTH:
        raise ValidationError(f"Path must be a list of at most {MAX_PATH_LENGTH} tokens")
    for token in path:
        validate_identifier("Path token", token)


def format_error(error: LaunchpadError) -> str:
    return f"Error {error.code}: {error.args[0]}"


def log_operation_error(operation: str, error: Exception, client_id: str, duration: float) -> None:
    """Log operation error with structured information."""
    logger.warning(f"{operation} failed: {error}, client_id: {client_id}, duration: {duration:.3f}s")


def execute(operation: str, client_id: str, action: Callable[[], str]) -> str:
    """Runs a state-changing tool body under rate limiting, atomic() and error reporting."""
    start_time = time.time()
    try:
        validate_identifier("Client ID", client_id)
        if not rate_limiter.check_rate_limit(client_id):
            raise RateLimitExceededError(f"Rate limit exceeded for client: {client_id}")
        with atomic(*launchpad.participants()):
            result = action()
        logger.info(f"{operation} completed for {client_id} in {time.time() - start_time:.3f}s")
        return result
    except RateLimitExceededError as e:
        # Already logged in rate_limiter
        return str(e)
    except LaunchpadError as e:
        log_operation_error(operation, e, client_id, time.time() - start_time)
        return format_error(e)
    except (ValidationError, PydanticValidationError) as e:
        log_operation_error(operation, e, client_id, time.time() - start_time)
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error in {operation}: {e}")
        return "An unexpected server error occurred"


# --- Launch tools ---

@mcp.tool()
async def get_launch_info(context: Context, launch_id: str = Field(..., description="The launch ID.")) -> str:
    """Get the registry entry, market state, price and progress of a launch."""
    try:
        validate_identifier("Launch ID", launch_id)
        record = launchpad.get_launch(launch_id)
        market = launchpad.market(launch_id)
        state = market.state
        raised, threshold, progress_bps = market.get_progress()
        promo_budget, promo_released, next_milestone = market.get_promo_status()
        info = {
            "launch": record.model_dump(mode="json"),
            "market": state.model_dump(mode="json", exclude={"contributed", "locked"}),
            "price": market.get_price(),
            "progress": {"funds_raised": raised, "graduation_threshold": threshold, "progress_bps": progress_bps},
            "promo": {"budget": promo_budget, "released": promo_released, "next_milestone": next_milestone},
        }
        return json.dumps(info, indent=2)
    except LaunchpadError as e:
        logger.warning(f"Launch info unavailable for {launch_id}: {e}")
        return format_error(e)
    except ValidationError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error getting launch info for {launch_id}: {e}")
        return "An unexpected error occurred while retrieving launch information."


@mcp.tool()
async def create_launch(
    context: Context,
    config_json: str = Field(..., description="The launch configuration as a JSON string."),
    creator: str = Field(..., description="Account creating the launch."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Creates a new launch (token and bonding curve market) from a JSON configuration."""

    def action() -> str:
        validate_identifier("Creator", creator)
        if not config_json or not isinstance(config_json, str):
            raise ValidationError("Configuration JSON must be a non-empty string")
        if len(config_json) > MAX_CONFIG_JSON_LENGTH:
            raise ValidationError("Configuration JSON is too large (max 10KB)")
        try:
            config_data = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON format provided: {e}") from e

        launch_config = LaunchConfigModel.model_validate(config_data)
        launch_config.launch.creator = creator
        record = launchpad.create_launch(launch_config, creator=creator)
        if launchpad.config_dir is not None and not launchpad.save_launch_config(launch_config):
            logger.warning(f"Launch '{record.launch_id}' created but its configuration was not saved")
        return f"Launch '{record.launch_id}' created: token {record.token}, market {record.market}."

    return execute("create_launch", client_id, action)


@mcp.tool()
async def get_quote(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    amount: int = Field(..., description="Funds to spend (buy) or tokens to sell, in base units."),
    sell: bool = Field(False, description="Set to True to quote a sell, False to quote a buy."),
) -> str:
    """Quotes a buy or sell against a launch's bonding curve, fees included."""
    try:
        validate_identifier("Launch ID", launch_id)
        validate_amount("Amount", amount)
        market = launchpad.market(launch_id)
        if sell:
            return f"Selling {amount} tokens of '{launch_id}' returns {market.get_quote_sell(amount)} funds."
        return f"Spending {amount} funds on '{launch_id}' buys {market.get_quote_buy(amount)} tokens."
    except LaunchpadError as e:
        return format_error(e)
    except ValidationError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error quoting {launch_id}: {e}")
        return "An unexpected error occurred while quoting."


@mcp.tool()
async def buy_tokens(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    funds_in: int = Field(..., description="Funds to spend, fees included, in base units."),
    buyer: str = Field(..., description="Account paying and receiving the tokens."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Buys tokens from a launch's bonding curve."""

    def action() -> str:
        validate_identifier("Launch ID", launch_id)
        validate_identifier("Buyer", buyer)
        validate_amount("Funds", funds_in)
        tokens = launchpad.market(launch_id).buy(buyer, funds_in)
        symbol = launchpad.get_launch(launch_id).symbol
        return f"Successfully purchased {tokens} {symbol} base units for {funds_in} funds."

    return execute("buy_tokens", client_id, action)


@mcp.tool()
async def sell_tokens(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    tokens_in: int = Field(..., description="Tokens to sell back to the curve, in base units."),
    seller: str = Field(..., description="Account selling the tokens."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Sells tokens back to a launch's bonding curve."""

    def action() -> str:
        validate_identifier("Launch ID", launch_id)
        validate_identifier("Seller", seller)
        validate_amount("Tokens", tokens_in)
        funds = launchpad.market(launch_id).sell(seller, tokens_in)
        symbol = launchpad.get_launch(launch_id).symbol
        return f"Successfully sold {tokens_in} {symbol} base units for {funds} funds."

    return execute("sell_tokens", client_id, action)


@mcp.tool()
async def claim_refund(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    caller: str = Field(..., description="Account claiming its refund."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Refunds the caller's contribution once a sale missed its deadline."""

    def action() -> str:
        validate_identifier("Launch ID", launch_id)
        validate_identifier("Caller", caller)
        amount = launchpad.market(launch_id).claim_refund(caller)
        return f"Refunded {amount} funds to {caller}."

    return execute("claim_refund", client_id, action)


@mcp.tool()
async def graduate_launch(
    context: Context,
    launch_id: str = Field(..., description="The launch ID."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Graduates a launch that met its threshold and creates its AMM pool."""

    def action() -> str:
        validate_identifier("Launch ID", launch_id)
        launchpad.market(launch_id).graduate()
        record = launchpad.get_launch(launch_id)
        return f"Launch '{launch_id}' graduated. Pool {record.pair} is ready for liquidity."

    return execute("graduate_launch", client_id, action)


# --- AMM tools ---

@mcp.tool()
async def get_amounts_out(
    context: Context,
    amount_in: int = Field(..., description="Input amount in base units."),
    path: List[str] = Field(..., description="Token addresses from input to output."),
) -> str:
    """Quotes a multi-hop swap, returning the amount at every step of the path."""
    try:
        validate_amount("Amount in", amount_in)
        validate_path(path)
        amounts = launchpad.router.get_amounts_out(amount_in, path)
        return json.dumps({"path": path, "amounts": amounts})
    except LaunchpadError as e:
        return format_error(e)
    except ValidationError as e:
        return f"Error: {e}"
    except Exception as e:
        logger.exception(f"Unexpected error quoting path {path}: {e}")
        return "An unexpected error occurred while quoting."


@mcp.tool()
async def swap_exact_tokens(
    context: Context,
    sender: str = Field(..., description="Account paying the input token."),
    amount_in: int = Field(..., description="Exact input amount in base units."),
    amount_out_min: int = Field(..., description="Minimum acceptable output amount."),
    path: List[str] = Field(..., description="Token addresses from input to output."),
    to: str = Field(..., description="Recipient of the output token."),
    deadline: int = Field(..., description="Unix time after which the swap fails."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Swaps an exact input amount along a path of AMM pools."""

    def action() -> str:
        validate_identifier("Sender", sender)
        validate_identifier("Recipient", to)
        validate_amount("Amount in", amount_in)
        validate_amount("Minimum out", amount_out_min, allow_zero=True)
        validate_path(path)
        router = launchpad.router
        if len(path) >= 2:
            resolve(launchpad.ledgers, path[0]).approve(sender, router.address, amount_in)
        amounts = router.swap_exact_tokens_for_tokens(sender, amount_in, amount_out_min, path, to, deadline)
        return f"Swapped {amounts[0]} {path[0]} for {amounts[-1]} {path[-1]} (amounts: {amounts})."

    return execute("swap_exact_tokens", client_id, action)


@mcp.tool()
async def add_liquidity(
    context: Context,
    sender: str = Field(..., description="Account providing both tokens and receiving LP units."),
    token_a: str = Field(..., description="First token address."),
    token_b: str = Field(..., description="Second token address."),
    amount_a_desired: int = Field(..., description="Preferred amount of token A."),
    amount_b_desired: int = Field(..., description="Preferred amount of token B."),
    amount_a_min: int = Field(0, description="Minimum amount of token A to deposit."),
    amount_b_min: int = Field(0, description="Minimum amount of token B to deposit."),
    deadline: int = Field(..., description="Unix time after which the deposit fails."),
    client_id: str = Field(..., description="The calling client's identifier."),
) -> str:
    """Adds liquidity to an existing pool at its current ratio."""

    def action() -> str:
        validate_identifier("Sender", sender)
        validate_identifier("Token A", token_a)
        validate_identifier("Token B", token_b)
        validate_amount("Amount A", amount_a_desired)
        validate_amount("Amount B", amount_b_desired)
        validate_amount("Minimum A", amount_a_min, allow_zero=True)
        validate_amount("Minimum B", amount_b_min, allow_zero=True)
        router = launchpad.router
        for token, amount in ((token_a, amount_a_desired), (token_b, amount_b_desired)):
            resolve(launchpad.ledgers, token).approve(sender, router.address, amount)
        amount_a, amount_b, liquidity = router.add_liquidity(
            sender, token_a, token_b, amount_a_desired, amount_b_desired, amount_a_min, amount_b_min, sender, deadline
        )
        return f"Deposited {amount_a} {token_a} and {amount_b} {token_b} for {liquidity} LP units."

    return execute("add_liquidity", client_id, action)


# --- Initial Load ---
launchpad.load_launch_configs()


# --- Main Execution ---
def main() -> None:
    startup_start = time.time()
    logger.info("Starting Token Launchpad MCP Server...")
    startup_duration = time.time() - startup_start
    logger.info(f"Server startup completed in {startup_duration:.3f}s, loaded {launchpad.launch_count()} launch(es).")

    try:
        # FastMCP.run drives its own event loop
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    finally:
        logger.info("Token Launchpad MCP Server stopped.")


if __name__ == "__main__":
    main()
