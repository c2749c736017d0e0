"""
Custom Exception Classes for the Token Launchpad

This module defines the exception taxonomy shared by the bonding-curve markets,
the AMM pools, the router, the pair factory and the launchpad registry.

Every launchpad failure derives from LaunchpadError and carries a class-level
numeric ``code`` that is distinct per condition, so that callers (and the MCP
server) can surface a single stable number that maps to a human-readable reason.

Code Ranges:
- 1xx: Bonding market state, authorization, economic and timing errors
- 2xx: AMM pool errors
- 3xx: Router errors
- 4xx: Pair factory and launchpad registry errors
- 5xx: Token ledger errors

Propagation:
    An error aborts the whole operation. Components snapshot their state before
    mutating it and restore the snapshot when an error escapes, so no partial
    commit is ever observable.

Ambient errors (configuration, rate limiting, input validation) keep plain
Exception subclasses since they never travel through the trading core.
"""


class LaunchpadError(Exception):
    """Base class for every trading-core failure."""

    code = 0

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.code}): {self.args[0]}"


# --- Bonding market errors (1xx) ---

class AlreadyInitialized(LaunchpadError):
    """Raised when a market or registry entry is initialized twice."""
    code = 101


class NotInitialized(LaunchpadError):
    """Raised when a market is used before it has been created."""
    code = 102


class Unauthorized(LaunchpadError):
    """Raised when the caller is not allowed to perform the operation."""
    code = 103


class InsufficientPayment(LaunchpadError):
    """Raised when the payment does not cover the requested operation."""
    code = 104


class InsufficientTokens(LaunchpadError):
    """Raised when more tokens are sold back than the curve has sold."""
    code = 105


class InsufficientLiquidity(LaunchpadError):
    """Raised when the curve or pool cannot cover the requested amount."""
    code = 106


class CurveNotActive(LaunchpadError):
    """Raised when a market operation requires the Active status."""
    code = 107


class CurveAlreadyGraduated(LaunchpadError):
    """Raised when an operation is attempted on a graduated market."""
    code = 108


class GraduationThresholdNotMet(LaunchpadError):
    """Raised when graduation is attempted before the funding threshold is met."""
    code = 109


class RefundNotAvailable(LaunchpadError):
    """Raised when a refund is requested from a graduated market."""
    code = 110


class DeadlineNotReached(LaunchpadError):
    """Raised when a refund is requested before the sale deadline."""
    code = 111


class NoRefundAvailable(LaunchpadError):
    """Raised when the caller has no refundable contribution."""
    code = 112


class InvalidCurveType(LaunchpadError):
    """Raised for an unknown bonding curve identifier."""
    code = 113


class InvalidAmount(LaunchpadError):
    """Raised for zero or otherwise unusable amounts."""
    code = 114


class MilestoneNotUnlocked(LaunchpadError):
    """Raised when no promo milestone payout is newly claimable."""
    code = 116


class NoFeesToWithdraw(LaunchpadError):
    """Raised when the creator has no accumulated fees to withdraw."""
    code = 117


class LockedReentrancy(LaunchpadError):
    """Raised when a guarded entry point is re-entered mid-operation."""
    code = 120


# --- AMM pool errors (2xx) ---

class InsufficientInputAmount(LaunchpadError):
    """Raised when a swap receives no input on either side."""
    code = 201


class InsufficientOutputAmount(LaunchpadError):
    """Raised when a swap requests no output or the output is below the minimum."""
    code = 202


class InsufficientLiquidityMinted(LaunchpadError):
    """Raised when a deposit would mint zero LP units."""
    code = 203


class InsufficientLiquidityBurned(LaunchpadError):
    """Raised when a withdrawal would return zero of either token."""
    code = 204


class InvalidRecipient(LaunchpadError):
    """Raised when a pool is asked to pay one of its own tokens."""
    code = 205


class KInvariantViolation(LaunchpadError):
    """Raised when a swap breaks the fee-adjusted constant-product bound."""
    code = 206


# --- Router errors (3xx) ---

class Expired(LaunchpadError):
    """Raised when a router call is submitted after its deadline."""
    code = 301


class InsufficientAAmount(LaunchpadError):
    """Raised when the matched amount of token A falls below the caller minimum."""
    code = 302


class InsufficientBAmount(LaunchpadError):
    """Raised when the matched amount of token B falls below the caller minimum."""
    code = 303


class ExcessiveInputAmount(LaunchpadError):
    """Raised when the required input exceeds the caller's maximum."""
    code = 304


class InvalidPath(LaunchpadError):
    """Raised when a swap path has fewer than two tokens."""
    code = 305


class PairNotFound(LaunchpadError):
    """Raised when no pool exists for a pair on the path."""
    code = 306


# --- Factory / launchpad errors (4xx) ---

class IdenticalAddresses(LaunchpadError):
    """Raised when a pair is requested for a token with itself."""
    code = 401


class PairExists(LaunchpadError):
    """Raised when a pool already exists for the pair."""
    code = 402


class IndexOutOfBounds(LaunchpadError):
    """Raised when a pair index is past the end of the registry."""
    code = 403


class LaunchNotFound(LaunchpadError):
    """Raised when a launch id is unknown."""
    code = 404


class InvalidFee(LaunchpadError):
    """Raised when a fee setting is outside the allowed range."""
    code = 405


class InvalidThreshold(LaunchpadError):
    """Raised when a graduation threshold setting is not positive."""
    code = 406


class InvalidDeadline(LaunchpadError):
    """Raised when a deadline setting is not positive."""
    code = 407


# --- Ledger errors (5xx) ---

class InsufficientBalance(LaunchpadError):
    """Raised when an account balance cannot cover a debit."""
    code = 501


class InsufficientAllowance(LaunchpadError):
    """Raised when a spender's allowance cannot cover a transfer."""
    code = 502


# --- Ambient errors ---

class RateLimitExceededError(Exception):
    """Raised when the rate limit is exceeded for tool requests."""


class ConfigurationError(Exception):
    """Raised when there are configuration-related errors."""


class ValidationError(Exception):
    """Raised when input validation fails."""
