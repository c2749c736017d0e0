"""
Pair Factory

Registry of AMM pools keyed by unordered token pair. The factory creates each
pool in the shared state store and hands out AmmPool handles bound to the
token ledgers it was given.
"""
from typing import Dict, List, Optional

from mcp_launchpad.errors import IndexOutOfBounds, PairExists, Unauthorized
from mcp_launchpad.ledger import Address, Ledger, resolve
from mcp_launchpad.pool import AmmPool, sort_tokens
from mcp_launchpad.schemas import FactoryState
from mcp_launchpad.storage import StateStore, load
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

FACTORY_KEY = "factory"


def _pair_key(token0: Address, token1: Address) -> str:
    return f"{token0}|{token1}"


def pair_address(token0: Address, token1: Address) -> Address:
    return f"pair-{token0}-{token1}"


class PairFactory:
    def __init__(self, store: StateStore, ledgers: Dict[Address, Ledger], fee_to_setter: Address):
        self._store = store
        self._ledgers = ledgers
        if FACTORY_KEY not in store:
            store.put(FACTORY_KEY, FactoryState(fee_to_setter=fee_to_setter))

    @property
    def state(self) -> FactoryState:
        return load(self._store, FACTORY_KEY, FactoryState)

    def create_pair(self, token_a: Address, token_b: Address) -> AmmPool:
        """Creates the pool for a new pair.

        Raises:
            IdenticalAddresses: If both tokens are the same.
            PairExists: If the pair already has a pool.
            NotInitialized: If either token has no registered ledger.
        """
        token0, token1 = sort_tokens(token_a, token_b)
        state = self.state
        key = _pair_key(token0, token1)
        if key in state.pairs:
            raise PairExists(f"Pair {token0}/{token1} already exists at {state.pairs[key]}")

        address = pair_address(token0, token1)
        pool = AmmPool.create(address, self._store, resolve(self._ledgers, token0), resolve(self._ledgers, token1))
        state = self.state
        state.pairs[key] = address
        state.all_pairs.append(address)
        self._store.put(FACTORY_KEY, state)
        logger.info(f"Registered pair #{len(state.all_pairs) - 1} {token0}/{token1} at {address}")
        return pool

    def get_pair(self, token_a: Address, token_b: Address) -> Optional[Address]:
        """Pool address for the pair in either order, or None."""
        if token_a == token_b:
            return None
        token0, token1 = sort_tokens(token_a, token_b)
        return self.state.pairs.get(_pair_key(token0, token1))

    def get_pool(self, token_a: Address, token_b: Address) -> Optional[AmmPool]:
        address = self.get_pair(token_a, token_b)
        if address is None:
            return None
        token0, token1 = sort_tokens(token_a, token_b)
        return AmmPool(address, self._store, resolve(self._ledgers, token0), resolve(self._ledgers, token1))

    def all_pairs(self, index: int) -> Address:
        pairs = self.state.all_pairs
        if index < 0 or index >= len(pairs):
            raise IndexOutOfBounds(f"Pair index {index} out of range (length {len(pairs)})")
        return pairs[index]

    def all_pairs_length(self) -> int:
        return len(self.state.all_pairs)

    def list_pairs(self) -> List[Address]:
        return list(self.state.all_pairs)

    @property
    def fee_to(self) -> Optional[Address]:
        return self.state.fee_to

    def set_fee_to(self, caller: Address, fee_to: Optional[Address]) -> None:
        state = self.state
        if caller != state.fee_to_setter:
            raise Unauthorized(f"{caller} cannot set the protocol fee recipient")
        state.fee_to = fee_to
        self._store.put(FACTORY_KEY, state)

    def set_fee_to_setter(self, caller: Address, fee_to_setter: Address) -> None:
        state = self.state
        if caller != state.fee_to_setter:
            raise Unauthorized(f"{caller} cannot hand over the fee setter role")
        state.fee_to_setter = fee_to_setter
        self._store.put(FACTORY_KEY, state)
