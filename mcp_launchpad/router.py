"""
AMM Router

Stateless front end to the pools registered in a PairFactory.

Pure math:
- quote: proportional amount used to match liquidity deposits (no fee)
- get_amount_out / get_amount_in: single-hop trade sizing with the 0.3% fee;
  get_amount_in rounds up so the pool never receives less than it needs

Orchestration:
- get_amounts_out / get_amounts_in fold the single-hop math along a path
- swaps pull the input once into the first pool and then have every pool pay
  the next pool in the path directly, with the last pool paying the recipient
- add_liquidity / remove_liquidity move tokens (or LP units) into the pool and
  call mint / burn

The router moves tokens with transfer_from, so senders must approve the router
address on the relevant ledgers first. Every state-changing call takes a
deadline and runs inside atomic().
"""
import time
from typing import Callable, Dict, List, Sequence, Tuple

from mcp_launchpad.errors import (
    ExcessiveInputAmount,
    Expired,
    InsufficientAAmount,
    InsufficientBAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidPath,
    PairNotFound,
)
from mcp_launchpad.factory import PairFactory
from mcp_launchpad.ledger import Address, Ledger, resolve
from mcp_launchpad.pool import AmmPool
from mcp_launchpad.storage import StateStore, atomic
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

ROUTER_ADDRESS = "router"


def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    if amount_a == 0 or reserve_a == 0:
        return 0
    return amount_a * reserve_b // reserve_a


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Maximum output for ``amount_in`` after the 0.3% fee."""
    if amount_in == 0 or reserve_in == 0 or reserve_out == 0:
        return 0
    amount_in_with_fee = amount_in * 997
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * 1000 + amount_in_with_fee
    return numerator // denominator


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """Minimum input that buys ``amount_out``, rounded in the pool's favour.

    Raises:
        InsufficientLiquidity: If ``amount_out`` is not below ``reserve_out``.
    """
    if amount_out == 0 or reserve_in == 0 or reserve_out == 0:
        return 0
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(f"Cannot take {amount_out} out of a reserve of {reserve_out}")
    numerator = reserve_in * amount_out * 1000
    denominator = (reserve_out - amount_out) * 997
    return numerator // denominator + 1


class Router:
    def __init__(
        self,
        factory: PairFactory,
        store: StateStore,
        ledgers: Dict[Address, Ledger],
        clock: Callable[[], float] = time.time,
        address: Address = ROUTER_ADDRESS,
    ):
        self.address = address
        self._factory = factory
        self._store = store
        self._ledgers = ledgers
        self._clock = clock

    def _participants(self):
        return (self._store, *self._ledgers.values())

    def _ensure(self, deadline: int) -> None:
        now = int(self._clock())
        if now > deadline:
            raise Expired(f"Deadline {deadline} passed at {now}")

    def _pool(self, token_a: Address, token_b: Address) -> AmmPool:
        pool = self._factory.get_pool(token_a, token_b)
        if pool is None:
            raise PairNotFound(f"No pool for {token_a}/{token_b}")
        return pool

    def get_reserves(self, token_a: Address, token_b: Address) -> Tuple[int, int]:
        """Reserves of the pair, ordered as (token_a, token_b)."""
        pool = self._pool(token_a, token_b)
        reserve0, reserve1 = pool.get_reserves()
        return (reserve0, reserve1) if token_a == pool.token0 else (reserve1, reserve0)

    # --- Quotes ---

    def get_amounts_out(self, amount_in: int, path: Sequence[Address]) -> List[int]:
        if len(path) < 2:
            raise InvalidPath("Path needs at least two tokens")
        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            reserve_in, reserve_out = self.get_reserves(token_in, token_out)
            amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out))
        return amounts

    def get_amounts_in(self, amount_out: int, path: Sequence[Address]) -> List[int]:
        if len(path) < 2:
            raise InvalidPath("Path needs at least two tokens")
        amounts = [amount_out]
        for token_in, token_out in reversed(list(zip(path, path[1:]))):
            reserve_in, reserve_out = self.get_reserves(token_in, token_out)
            amounts.insert(0, get_amount_in(amounts[0], reserve_in, reserve_out))
        return amounts

    # --- Liquidity ---

    def _liquidity_amounts(
        self,
        token_a: Address,
        token_b: Address,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
    ) -> Tuple[int, int]:
        reserve_a, reserve_b = self.get_reserves(token_a, token_b)
        if reserve_a == 0 and reserve_b == 0:
            return amount_a_desired, amount_b_desired

        amount_b_optimal = quote(amount_a_desired, reserve_a, reserve_b)
        if amount_b_optimal <= amount_b_desired:
            if amount_b_optimal < amount_b_min:
                raise InsufficientBAmount(f"Matched {amount_b_optimal}, minimum {amount_b_min}")
            return amount_a_desired, amount_b_optimal

        amount_a_optimal = quote(amount_b_desired, reserve_b, reserve_a)
        if amount_a_optimal > amount_a_desired or amount_a_optimal < amount_a_min:
            raise InsufficientAAmount(f"Matched {amount_a_optimal}, minimum {amount_a_min}")
        return amount_a_optimal, amount_b_desired

    def add_liquidity(
        self,
        sender: Address,
        token_a: Address,
        token_b: Address,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        to: Address,
        deadline: int,
    ) -> Tuple[int, int, int]:
        """
        Deposits both tokens at the pool's current ratio and mints LP units to ``to``.

        Returns:
            (amount_a, amount_b, liquidity)
        """
        self._ensure(deadline)
        with atomic(*self._participants()):
            pool = self._pool(token_a, token_b)
            amount_a, amount_b = self._liquidity_amounts(
                token_a, token_b, amount_a_desired, amount_b_desired, amount_a_min, amount_b_min
            )
            resolve(self._ledgers, token_a).transfer_from(self.address, sender, pool.address, amount_a)
            resolve(self._ledgers, token_b).transfer_from(self.address, sender, pool.address, amount_b)
            liquidity = pool.mint(to)

        logger.info(f"{sender} added liquidity ({amount_a}, {amount_b}) to {pool.address}, {liquidity} LP to {to}")
        return amount_a, amount_b, liquidity

    def remove_liquidity(
        self,
        sender: Address,
        token_a: Address,
        token_b: Address,
        liquidity: int,
        amount_a_min: int,
        amount_b_min: int,
        to: Address,
        deadline: int,
    ) -> Tuple[int, int]:
        """Burns ``liquidity`` LP units of ``sender`` and pays both tokens to ``to``."""
        self._ensure(deadline)
        with atomic(*self._participants()):
            pool = self._pool(token_a, token_b)
            pool.transfer_from(self.address, sender, pool.address, liquidity)
            amount0, amount1 = pool.burn(to)
            amount_a, amount_b = (amount0, amount1) if token_a == pool.token0 else (amount1, amount0)
            if amount_a < amount_a_min:
                raise InsufficientAAmount(f"Received {amount_a}, minimum {amount_a_min}")
            if amount_b < amount_b_min:
                raise InsufficientBAmount(f"Received {amount_b}, minimum {amount_b_min}")

        logger.info(f"{sender} removed {liquidity} LP from {pool.address} for ({amount_a}, {amount_b})")
        return amount_a, amount_b

    # --- Swaps ---

    def _swap(self, amounts: List[int], path: Sequence[Address], to: Address) -> None:
        hops = list(zip(path, path[1:]))
        for i, (token_in, token_out) in enumerate(hops):
            pool = self._pool(token_in, token_out)
            amount_out = amounts[i + 1]
            if token_in == pool.token0:
                amount0_out, amount1_out = 0, amount_out
            else:
                amount0_out, amount1_out = amount_out, 0
            if i < len(hops) - 1:
                recipient = self._pool(token_out, path[i + 2]).address
            else:
                recipient = to
            pool.swap(amount0_out, amount1_out, recipient)

    def swap_exact_tokens_for_tokens(
        self,
        sender: Address,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[Address],
        to: Address,
        deadline: int,
    ) -> List[int]:
        """Sells exactly ``amount_in`` along ``path``; fails if the output is below ``amount_out_min``."""
        self._ensure(deadline)
        with atomic(*self._participants()):
            amounts = self.get_amounts_out(amount_in, path)
            if amounts[-1] < amount_out_min:
                raise InsufficientOutputAmount(f"Output {amounts[-1]} below minimum {amount_out_min}")
            first_pool = self._pool(path[0], path[1])
            resolve(self._ledgers, path[0]).transfer_from(self.address, sender, first_pool.address, amounts[0])
            self._swap(amounts, path, to)

        logger.info(f"{sender} swapped {amounts[0]} {path[0]} for {amounts[-1]} {path[-1]} via {len(path) - 1} hop(s)")
        return amounts

    def swap_tokens_for_exact_tokens(
        self,
        sender: Address,
        amount_out: int,
        amount_in_max: int,
        path: Sequence[Address],
        to: Address,
        deadline: int,
    ) -> List[int]:
        """Buys exactly ``amount_out`` along ``path``; fails if the input exceeds ``amount_in_max``."""
        self._ensure(deadline)
        with atomic(*self._participants()):
            amounts = self.get_amounts_in(amount_out, path)
            if amounts[0] > amount_in_max:
                raise ExcessiveInputAmount(f"Input {amounts[0]} above maximum {amount_in_max}")
            first_pool = self._pool(path[0], path[1])
            resolve(self._ledgers, path[0]).transfer_from(self.address, sender, first_pool.address, amounts[0])
            self._swap(amounts, path, to)

        logger.info(f"{sender} swapped {amounts[0]} {path[0]} for {amounts[-1]} {path[-1]} via {len(path) - 1} hop(s)")
        return amounts
