"""
Pydantic Data Models and Validation Schemas

This module defines the data models of the launchpad using Pydantic: the
configuration schemas used to create launches from JSON, and the state records
that each component persists through the injected state store.

Key Components:
- CurveType Enum: Supported bonding curve shapes (with their numeric ids)
- MarketStatus Enum: Lifecycle states of a bonding-curve sale
- TokenConfig / LaunchConfig / LaunchConfigModel: Launch configuration schema
- MarketState: Persisted state of one bonding-curve market
- PoolState: Persisted state of one constant-product pool and its LP token
- FactoryState: Pool registry of the pair factory
- LaunchRecord: Registry entry tying a launch to its token, market and pair
- LaunchpadState: Superadmin and launch defaults of the launchpad

All amounts are plain Python integers. Prices are fixed point with 18 decimals.
"""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from mcp_launchpad.config import BPS_DENOMINATOR
from mcp_launchpad.errors import InvalidCurveType

# LP units minted to the burn address on the first deposit
MINIMUM_LIQUIDITY = 1000
BURN_ADDRESS = "0" * 64


class CurveType(str, Enum):
    linear = "linear"
    sigmoid = "sigmoid"
    steep = "steep"

    @property
    def curve_id(self) -> int:
        return _CURVE_IDS[self]

    @classmethod
    def from_id(cls, value: int) -> "CurveType":
        """Maps the numeric curve identifier (0, 1, 2) to a CurveType."""
        for curve, curve_id in _CURVE_IDS.items():
            if curve_id == value:
                return curve
        raise InvalidCurveType(f"Unknown curve type id: {value}")


_CURVE_IDS = {CurveType.linear: 0, CurveType.sigmoid: 1, CurveType.steep: 2}


class MarketStatus(str, Enum):
    active = "active"
    graduated = "graduated"
    refunding = "refunding"


class TokenConfig(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    symbol: str = Field(min_length=1, max_length=6)
    decimals: int = Field(default=18, ge=0, le=18)
    description: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None


class LaunchConfig(BaseModel):
    launch_id: str = Field(min_length=1, max_length=100)
    creator: Optional[str] = None
    curve_type: CurveType = CurveType.linear
    # Unset values fall back to the launchpad defaults
    total_supply: Optional[int] = Field(default=None, gt=0)
    base_price: Optional[int] = Field(default=None, ge=0)
    max_price: Optional[int] = Field(default=None, ge=0)
    graduation_threshold: Optional[int] = Field(default=None, gt=0)
    platform_fee_bps: Optional[int] = Field(default=None, ge=0, le=BPS_DENOMINATOR)
    creator_fee_bps: int = Field(default=0, ge=0, le=BPS_DENOMINATOR)
    deadline_days: Optional[int] = Field(default=None, gt=0)
    promo_budget: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_prices(self) -> "LaunchConfig":
        if self.base_price is not None and self.max_price is not None and self.base_price > self.max_price:
            raise ValueError("base_price must not exceed max_price")
        return self


class LaunchConfigModel(BaseModel):
    token: TokenConfig
    launch: LaunchConfig


class MarketState(BaseModel):
    """State of one bonding-curve sale."""

    token: str
    creator: str
    platform_wallet: str
    funds_token: str

    curve_type: CurveType
    total_supply: int = Field(gt=0)
    base_price: int = Field(ge=0)
    max_price: int = Field(ge=0)
    platform_fee_bps: int = Field(ge=0, le=BPS_DENOMINATOR)
    creator_fee_bps: int = Field(ge=0, le=BPS_DENOMINATOR)
    graduation_threshold: int = Field(ge=0)
    deadline: int = Field(ge=0)
    promo_budget: int = Field(default=0, ge=0)

    tokens_sold: int = Field(default=0, ge=0)
    funds_raised: int = Field(default=0, ge=0)
    accumulated_creator_fees: int = Field(default=0, ge=0)
    contributed: Dict[str, int] = Field(default_factory=dict)
    promo_released: int = Field(default=0, ge=0)
    status: MarketStatus = MarketStatus.active
    locked: bool = False

    @model_validator(mode="after")
    def _check_bounds(self) -> "MarketState":
        if self.base_price > self.max_price:
            raise ValueError("base_price must not exceed max_price")
        if self.platform_fee_bps + self.creator_fee_bps > BPS_DENOMINATOR:
            raise ValueError("combined fees must not exceed 10000 bps")
        if self.tokens_sold > self.total_supply:
            raise ValueError("tokens_sold must not exceed total_supply")
        if self.promo_released > self.promo_budget:
            raise ValueError("promo_released must not exceed promo_budget")
        return self

    @property
    def remaining_supply(self) -> int:
        return self.total_supply - self.tokens_sold


class PoolState(BaseModel):
    """Reserves and LP ledger of one constant-product pair."""

    token0: str
    token1: str
    reserve0: int = 0
    reserve1: int = 0
    lp_name: str = "Launchpad LP"
    lp_symbol: str = "LP"
    lp_decimals: int = 18
    lp_total_supply: int = 0
    lp_balances: Dict[str, int] = Field(default_factory=dict)
    lp_allowances: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    locked: bool = False

    @model_validator(mode="after")
    def _check_order(self) -> "PoolState":
        if not self.token0 < self.token1:
            raise ValueError("pool tokens must be stored in sorted order")
        return self


class FactoryState(BaseModel):
    fee_to: Optional[str] = None
    fee_to_setter: str
    # "token0|token1" -> pool address
    pairs: Dict[str, str] = Field(default_factory=dict)
    all_pairs: List[str] = Field(default_factory=list)


class LaunchRecord(BaseModel):
    launch_id: str
    token: str
    market: str
    creator: str
    symbol: str
    pair: Optional[str] = None
    created_at: int = 0


class LaunchpadState(BaseModel):
    superadmin: str
    default_graduation_threshold: int = Field(gt=0)
    default_platform_fee_bps: int = Field(ge=0, le=BPS_DENOMINATOR)
    default_deadline_days: int = Field(gt=0)
    launches: List[str] = Field(default_factory=list)
