import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Import custom errors
from mcp_launchpad.errors import ConfigurationError

"""
Configuration Management for the Token Launchpad

This module handles configuration loading and validation for the launchpad
library and its MCP server. Settings come from environment variables (a local
.env file is honoured) with defaults matching the platform's launch policy.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module

Environment Variables:
    PLATFORM_WALLET: Account that receives platform fees
    SUPERADMIN: Account allowed to change launch defaults
    FUNDS_TOKEN: Address of the wrapped-native token markets are paid in
    DEFAULT_PLATFORM_FEE_BPS: Platform fee charged on buys/sells (0-1000 bps)
    DEFAULT_CREATOR_FEE_BPS: Creator fee charged on buys/sells (0-10000 bps)
    DEFAULT_GRADUATION_THRESHOLD: Funds needed before a market can graduate
    DEFAULT_DEADLINE_DAYS: Sale duration before refunds open
    DEFAULT_BASE_PRICE: Curve start price (10^18 fixed point per token)
    DEFAULT_MAX_PRICE: Curve end price (10^18 fixed point per token)
    DEFAULT_TOTAL_SUPPLY: Tokens sold through the curve (18 decimals)
    RATE_LIMIT_PER_MINUTE: Tool calls allowed per client per minute
    LAUNCH_CONFIG_DIR: Directory holding launch JSON configs
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

# Hard ceiling for the platform fee, mirrored by Launchpad.update_defaults
MAX_PLATFORM_FEE_BPS = 1000
BPS_DENOMINATOR = 10_000
PRECISION = 10**18
SECONDS_PER_DAY = 86_400


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


try:
    # --- Accounts ---
    PLATFORM_WALLET = _get_env_str("PLATFORM_WALLET", "platform-wallet", required=True)
    SUPERADMIN = _get_env_str("SUPERADMIN", "launchpad-admin", required=True)
    FUNDS_TOKEN = _get_env_str("FUNDS_TOKEN", "wcspr", required=True)

    # --- Launch Defaults ---
    DEFAULT_PLATFORM_FEE_BPS = _get_env_int("DEFAULT_PLATFORM_FEE_BPS", 100, min_val=0, max_val=MAX_PLATFORM_FEE_BPS)
    DEFAULT_CREATOR_FEE_BPS = _get_env_int("DEFAULT_CREATOR_FEE_BPS", 0, min_val=0, max_val=BPS_DENOMINATOR)
    DEFAULT_GRADUATION_THRESHOLD = _get_env_int("DEFAULT_GRADUATION_THRESHOLD", 50_000 * 10**9, min_val=1)
    DEFAULT_DEADLINE_DAYS = _get_env_int("DEFAULT_DEADLINE_DAYS", 30, min_val=1, max_val=365)

    # --- Default Curve Configuration ---
    DEFAULT_BASE_PRICE = _get_env_int("DEFAULT_BASE_PRICE", 10**9, min_val=0)
    DEFAULT_MAX_PRICE = _get_env_int("DEFAULT_MAX_PRICE", 100 * 10**9, min_val=0)
    DEFAULT_TOTAL_SUPPLY = _get_env_int("DEFAULT_TOTAL_SUPPLY", 1_000_000 * 10**18, min_val=1)

    # --- Rate Limiting ---
    RATE_LIMIT_PER_MINUTE = _get_env_int("RATE_LIMIT_PER_MINUTE", 10, min_val=1, max_val=1000)

    # --- Directories ---
    LAUNCH_CONFIG_DIR = _get_env_str("LAUNCH_CONFIG_DIR", "launch_configs")

    if DEFAULT_BASE_PRICE > DEFAULT_MAX_PRICE:
        raise ConfigurationError("DEFAULT_BASE_PRICE must not exceed DEFAULT_MAX_PRICE")

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
