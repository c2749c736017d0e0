"""
Bonding Curve Market

This module implements the sale side of a token launch. A BondingMarket sells
a freshly launched token along a bonding curve, collects funds (a wrapped-native
token) in its own account, and either graduates once enough has been raised or
opens refunds when the deadline passes first.

Lifecycle:
- active: buys and sells move along the curve
- graduated: terminal, trading moves to an AMM pool
- refunding: entered at the first refund claim after the deadline; buyers
  withdraw their net contributions until nothing is left

Fee Handling:
- Every buy and sell splits the amount into a platform fee (paid out to the
  platform wallet immediately), a creator fee (accumulated in the market until
  the creator withdraws it) and the net amount that moves along the curve

Safety:
- buy, sell, claim_refund and graduate hold the market lock for their whole
  duration; a nested call into any of them fails with LockedReentrancy
- State is committed before any call into a token ledger, except for sell,
  which burns the seller's tokens before touching its own books
- Each operation runs inside atomic(), so a failure leaves no trace

Time comes from an injected clock so deadlines can be tested deterministically.
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Tuple

from mcp_launchpad import pricing
from mcp_launchpad.config import BPS_DENOMINATOR
from mcp_launchpad.errors import (
    AlreadyInitialized,
    CurveAlreadyGraduated,
    CurveNotActive,
    DeadlineNotReached,
    GraduationThresholdNotMet,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientTokens,
    InvalidAmount,
    LockedReentrancy,
    MilestoneNotUnlocked,
    NoFeesToWithdraw,
    NoRefundAvailable,
    NotInitialized,
    RefundNotAvailable,
    Unauthorized,
)
from mcp_launchpad.ledger import Address, Ledger
from mcp_launchpad.schemas import MarketState, MarketStatus
from mcp_launchpad.storage import StateStore, atomic, load
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Promo budget unlocks in quarters of the graduation threshold
PROMO_MILESTONES = (25, 50, 75, 100)


@dataclass(frozen=True)
class GraduationEvent:
    market: Address
    token: Address
    funds_token: Address
    funds_raised: int
    tokens_sold: int


GraduationListener = Callable[[GraduationEvent], None]


def _progress_pct(state: MarketState) -> int:
    if state.graduation_threshold == 0:
        return 0
    return min(state.funds_raised * 100 // state.graduation_threshold, 100)


class BondingMarket:
    """Sale state machine for one launched token.

    The market's address is its account on both the token ledger (it must be a
    minter there) and the funds ledger (where raised funds, creator fees and the
    promo budget are held).
    """

    def __init__(
        self,
        address: Address,
        store: StateStore,
        token: Ledger,
        funds: Ledger,
        clock: Callable[[], float] = time.time,
    ):
        self.address = address
        self.key = f"market:{address}"
        self._store = store
        self._token = token
        self._funds = funds
        self._clock = clock
        self._listeners: List[GraduationListener] = []

    @classmethod
    def create(
        cls,
        address: Address,
        store: StateStore,
        token: Ledger,
        funds: Ledger,
        state: MarketState,
        clock: Callable[[], float] = time.time,
    ) -> "BondingMarket":
        """Persists the initial state of a new market and returns a handle to it."""
        market = cls(address, store, token, funds, clock=clock)
        if market.key in store:
            raise AlreadyInitialized(f"Market {address} already exists")
        store.put(market.key, state)
        logger.info(
            f"Created {state.curve_type.value} market {address} for token {state.token} "
            f"(supply={state.total_supply}, threshold={state.graduation_threshold}, deadline={state.deadline})"
        )
        return market

    # --- State plumbing ---

    @property
    def state(self) -> MarketState:
        state = load(self._store, self.key, MarketState)
        if state is None:
            raise NotInitialized(f"Market {self.address} has not been created")
        return state

    def _save(self, state: MarketState) -> None:
        self._store.put(self.key, state)

    def _participants(self):
        return self._store, self._token, self._funds

    def _now(self) -> int:
        return int(self._clock())

    def add_listener(self, listener: GraduationListener) -> None:
        """Registers a callback invoked after the market graduates."""
        self._listeners.append(listener)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        state = self.state
        if state.locked:
            raise LockedReentrancy(f"Market {self.address} is already executing an operation")
        state.locked = True
        self._save(state)
        try:
            yield
        finally:
            state = self.state
            state.locked = False
            self._save(state)

    @staticmethod
    def _require_active(state: MarketState) -> None:
        if state.status == MarketStatus.graduated:
            raise CurveAlreadyGraduated()
        if state.status != MarketStatus.active:
            raise CurveNotActive(f"Market is {state.status.value}")

    def _require_creator(self, state: MarketState, caller: Address) -> None:
        if caller != state.creator:
            raise Unauthorized(f"{caller} is not the creator of market {self.address}")

    # --- Trading ---

    def buy(self, buyer: Address, funds_in: int) -> int:
        """
        Buys tokens from the curve with ``funds_in`` of the funds token.

        Args:
            buyer: Account paying the funds and receiving the tokens.
            funds_in: Gross amount paid, fees included.

        Returns:
            The number of tokens minted to the buyer.

        Raises:
            InvalidAmount: If ``funds_in`` is zero or buys no tokens.
            InsufficientPayment: If the buyer does not hold ``funds_in``.
            InsufficientLiquidity: If the purchase exceeds the remaining supply.
            CurveNotActive / CurveAlreadyGraduated: If the sale is over.
            LockedReentrancy: If called from inside another guarded operation.
        """
        with atomic(*self._participants()), self._lock():
            state = self.state
            self._require_active(state)
            if funds_in <= 0:
                raise InvalidAmount("Purchase amount must be positive")
            if self._funds.balance_of(buyer) < funds_in:
                raise InsufficientPayment(f"{buyer} cannot pay {funds_in}")

            platform_fee, creator_fee, net = pricing.split_fees(
                funds_in, state.platform_fee_bps, state.creator_fee_bps
            )
            tokens = pricing.calculate_tokens_for_funds(
                state.curve_type, net, state.tokens_sold, state.total_supply, state.base_price, state.max_price
            )
            if tokens == 0:
                raise InvalidAmount("Purchase amount too small to buy any tokens")
            if tokens > state.remaining_supply:
                raise InsufficientLiquidity(f"Only {state.remaining_supply} tokens remain")

            state.tokens_sold += tokens
            state.funds_raised += net
            state.accumulated_creator_fees += creator_fee
            state.contributed[buyer] = state.contributed.get(buyer, 0) + net
            self._save(state)

            self._funds.transfer(buyer, self.address, funds_in)
            if platform_fee:
                self._funds.transfer(self.address, state.platform_wallet, platform_fee)
            self._token.mint(self.address, buyer, tokens)

        logger.info(f"{buyer} bought {tokens} tokens from {self.address} for {funds_in} (net {net})")
        if state.funds_raised >= state.graduation_threshold:
            logger.info(f"Market {self.address} reached its graduation threshold")
        return tokens

    def sell(self, seller: Address, tokens_in: int) -> int:
        """
        Sells ``tokens_in`` back to the curve.

        The seller's tokens are burned before the market updates its own books.
        Raised funds drop by the gross sale value, which they must cover. The
        seller's refundable contribution drops by the same amount, floored at zero.

        Returns:
            The net funds paid to the seller.
        """
        with atomic(*self._participants()), self._lock():
            state = self.state
            self._require_active(state)
            if tokens_in <= 0:
                raise InvalidAmount("Sell amount must be positive")
            if tokens_in > state.tokens_sold:
                raise InsufficientTokens(f"Only {state.tokens_sold} tokens have been sold")

            gross = pricing.calculate_funds_for_tokens(
                state.curve_type, tokens_in, state.tokens_sold, state.total_supply, state.base_price, state.max_price
            )
            platform_fee, creator_fee, net_return = pricing.split_fees(
                gross, state.platform_fee_bps, state.creator_fee_bps
            )
            # Fees leave the market too, so the whole gross value must be covered by raised funds
            if gross > state.funds_raised:
                raise InsufficientLiquidity(f"Market raised {state.funds_raised}, sale is worth {gross}")

            self._token.burn(self.address, seller, tokens_in)

            state = self.state
            state.tokens_sold -= tokens_in
            state.funds_raised -= gross
            state.accumulated_creator_fees += creator_fee
            contributed = state.contributed.get(seller, 0)
            state.contributed[seller] = contributed - gross if contributed > gross else 0
            self._save(state)

            if net_return:
                self._funds.transfer(self.address, seller, net_return)
            if platform_fee:
                self._funds.transfer(self.address, state.platform_wallet, platform_fee)

        logger.info(f"{seller} sold {tokens_in} tokens to {self.address} for {net_return}")
        return net_return

    def claim_refund(self, caller: Address) -> int:
        """
        Refunds the caller's net contribution once the sale has failed.

        The first claim after the deadline moves an active market into refunding.
        A market that met its threshold should graduate instead and pays no refunds.

        Raises:
            RefundNotAvailable: If the market graduated or met its threshold.
            DeadlineNotReached: If the deadline has not passed yet.
            NoRefundAvailable: If the caller has nothing left to claim.
        """
        with atomic(*self._participants()), self._lock():
            state = self.state
            if state.status == MarketStatus.graduated:
                raise RefundNotAvailable("Market has graduated")
            now = self._now()
            if now < state.deadline:
                raise DeadlineNotReached(f"Refunds open at {state.deadline}, now {now}")
            if state.status == MarketStatus.active:
                if state.funds_raised >= state.graduation_threshold:
                    raise RefundNotAvailable("Graduation threshold met")
                state.status = MarketStatus.refunding
                logger.info(f"Market {self.address} entered refunding")

            amount = state.contributed.get(caller, 0)
            if amount == 0:
                raise NoRefundAvailable(f"{caller} has no refundable contribution")
            state.contributed[caller] = 0
            self._save(state)

            self._funds.transfer(self.address, caller, amount)

        logger.info(f"Refunded {amount} to {caller} from {self.address}")
        return amount

    def graduate(self) -> bool:
        """
        Closes the sale once the graduation threshold is met.

        Registered listeners receive a GraduationEvent after the new status is
        committed; pool creation and liquidity seeding happen there.
        """
        with atomic(*self._participants()):
            with self._lock():
                state = self.state
                self._require_active(state)
                if state.funds_raised < state.graduation_threshold:
                    raise GraduationThresholdNotMet(
                        f"Raised {state.funds_raised} of {state.graduation_threshold}"
                    )
                state.status = MarketStatus.graduated
                self._save(state)

            logger.info(f"Market {self.address} graduated with {state.funds_raised} raised")
            event = GraduationEvent(
                market=self.address,
                token=state.token,
                funds_token=state.funds_token,
                funds_raised=state.funds_raised,
                tokens_sold=state.tokens_sold,
            )
            for listener in self._listeners:
                listener(event)
        return True

    # --- Creator payouts ---

    def withdraw_fees(self, caller: Address) -> int:
        """Pays the accumulated creator fees to the creator."""
        with atomic(*self._participants()):
            state = self.state
            self._require_creator(state, caller)
            amount = state.accumulated_creator_fees
            if amount == 0:
                raise NoFeesToWithdraw()
            state.accumulated_creator_fees = 0
            self._save(state)
            self._funds.transfer(self.address, caller, amount)

        logger.info(f"Creator {caller} withdrew {amount} in fees from {self.address}")
        return amount

    def claim_promo_milestone(self, caller: Address) -> int:
        """Releases the part of the promo budget unlocked by the current progress."""
        with atomic(*self._participants()):
            state = self.state
            self._require_creator(state, caller)
            progress = _progress_pct(state)
            tier = 0
            for milestone in PROMO_MILESTONES:
                if progress >= milestone:
                    tier = milestone
            entitled = state.promo_budget * tier // 100
            claimable = entitled - state.promo_released if entitled > state.promo_released else 0
            if claimable == 0:
                raise MilestoneNotUnlocked(f"Progress {progress}% unlocks nothing new")
            state.promo_released += claimable
            self._save(state)
            self._funds.transfer(self.address, caller, claimable)

        logger.info(f"Creator {caller} claimed {claimable} promo budget at {tier}% milestone")
        return claimable

    # --- Views ---

    def get_price(self) -> int:
        state = self.state
        return pricing.calculate_price(
            state.curve_type, state.tokens_sold, state.total_supply, state.base_price, state.max_price
        )

    def get_progress(self) -> Tuple[int, int, int]:
        """Returns (funds_raised, graduation_threshold, progress in bps capped at 10000)."""
        state = self.state
        if state.graduation_threshold == 0:
            progress_bps = 0
        else:
            progress_bps = min(state.funds_raised * BPS_DENOMINATOR // state.graduation_threshold, BPS_DENOMINATOR)
        return state.funds_raised, state.graduation_threshold, progress_bps

    def get_promo_status(self) -> Tuple[int, int, int]:
        """Returns (promo_budget, promo_released, next milestone percentage)."""
        state = self.state
        progress = _progress_pct(state)
        next_milestone = next((m for m in PROMO_MILESTONES if progress < m), PROMO_MILESTONES[-1])
        return state.promo_budget, state.promo_released, next_milestone

    def get_quote_buy(self, funds_in: int) -> int:
        return pricing.quote_buy(self.state, funds_in)

    def get_quote_sell(self, tokens_in: int) -> int:
        return pricing.quote_sell(self.state, tokens_in)
