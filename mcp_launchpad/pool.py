"""
Constant-Product AMM Pool

One AmmPool exists per unordered token pair; its tokens are kept in sorted order
(token0 < token1). The pool holds its reserves as balances of its own address on
the two token ledgers and issues LP units that represent a pro-rata claim on them.

Settlement model:
- Callers (normally the router) move tokens into the pool first, then call
  mint/swap; the pool infers what it received from its actual balances
- burn pays out against LP units that were transferred to the pool beforehand
- swap pays the requested outputs optimistically, then checks the 0.3%
  fee-adjusted constant-product bound against the resulting balances

The first deposit permanently locks MINIMUM_LIQUIDITY LP units at the burn
address, so the LP supply can never return to zero.
"""
from contextlib import contextmanager
from typing import Iterator, Tuple

from mcp_launchpad.errors import (
    AlreadyInitialized,
    IdenticalAddresses,
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientInputAmount,
    InsufficientLiquidity,
    InsufficientLiquidityBurned,
    InsufficientLiquidityMinted,
    InsufficientOutputAmount,
    InvalidAmount,
    InvalidRecipient,
    KInvariantViolation,
    LockedReentrancy,
    NotInitialized,
)
from mcp_launchpad.ledger import Address, Ledger
from mcp_launchpad.schemas import BURN_ADDRESS, MINIMUM_LIQUIDITY, PoolState
from mcp_launchpad.storage import StateStore, atomic, load
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Swap fee of 0.3%, expressed per mille
FEE_DENOMINATOR = 1000
FEE_NUMERATOR = 3


def sqrt(y: int) -> int:
    """Integer square root by Newton's method (floor)."""
    if y > 3:
        z = y
        x = y // 2 + 1
        while x < z:
            z = x
            x = (y // x + x) // 2
        return z
    if y != 0:
        return 1
    return 0


def sort_tokens(token_a: Address, token_b: Address) -> Tuple[Address, Address]:
    if token_a == token_b:
        raise IdenticalAddresses(f"Cannot pair {token_a} with itself")
    return (token_a, token_b) if token_a < token_b else (token_b, token_a)


class AmmPool:
    def __init__(self, address: Address, store: StateStore, ledger0: Ledger, ledger1: Ledger):
        if not ledger0.address < ledger1.address:
            raise ValueError("Pool ledgers must be passed in sorted token order")
        self.address = address
        self.key = f"pool:{address}"
        self._store = store
        self._ledger0 = ledger0
        self._ledger1 = ledger1

    @classmethod
    def create(cls, address: Address, store: StateStore, ledger_a: Ledger, ledger_b: Ledger) -> "AmmPool":
        """Persists an empty pool for the pair and returns a handle to it."""
        token0, _ = sort_tokens(ledger_a.address, ledger_b.address)
        ledger0, ledger1 = (ledger_a, ledger_b) if ledger_a.address == token0 else (ledger_b, ledger_a)
        pool = cls(address, store, ledger0, ledger1)
        if pool.key in store:
            raise AlreadyInitialized(f"Pool {address} already exists")
        store.put(
            pool.key,
            PoolState(
                token0=ledger0.address,
                token1=ledger1.address,
                lp_name=f"{ledger0.symbol}-{ledger1.symbol} LP",
                lp_symbol=f"{ledger0.symbol}{ledger1.symbol}-LP",
            ),
        )
        logger.info(f"Created pool {address} for {ledger0.symbol}/{ledger1.symbol}")
        return pool

    @property
    def token0(self) -> Address:
        return self._ledger0.address

    @property
    def token1(self) -> Address:
        return self._ledger1.address

    @property
    def state(self) -> PoolState:
        state = load(self._store, self.key, PoolState)
        if state is None:
            raise NotInitialized(f"Pool {self.address} has not been created")
        return state

    def _save(self, state: PoolState) -> None:
        self._store.put(self.key, state)

    def _participants(self):
        return self._store, self._ledger0, self._ledger1

    def _balances(self) -> Tuple[int, int]:
        return self._ledger0.balance_of(self.address), self._ledger1.balance_of(self.address)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        state = self.state
        if state.locked:
            raise LockedReentrancy(f"Pool {self.address} is already executing an operation")
        state.locked = True
        self._save(state)
        try:
            yield
        finally:
            state = self.state
            state.locked = False
            self._save(state)

    def get_reserves(self) -> Tuple[int, int]:
        state = self.state
        return state.reserve0, state.reserve1

    # --- Liquidity ---

    def mint(self, to: Address) -> int:
        """
        Mints LP units for the tokens deposited since the last reserve update.

        Deposits beyond the current reserve ratio are not refunded; the excess
        accrues to existing LP holders.

        Returns:
            The LP units minted to ``to``.
        """
        with atomic(*self._participants()), self._lock():
            state = self.state
            balance0, balance1 = self._balances()
            amount0 = balance0 - state.reserve0 if balance0 > state.reserve0 else 0
            amount1 = balance1 - state.reserve1 if balance1 > state.reserve1 else 0

            if state.lp_total_supply == 0:
                root = sqrt(amount0 * amount1)
                liquidity = root - MINIMUM_LIQUIDITY if root > MINIMUM_LIQUIDITY else 0
                if liquidity == 0:
                    raise InsufficientLiquidityMinted(f"Initial deposit must exceed {MINIMUM_LIQUIDITY} LP units")
                self._mint_lp(state, BURN_ADDRESS, MINIMUM_LIQUIDITY)
            else:
                liquidity = min(
                    amount0 * state.lp_total_supply // state.reserve0,
                    amount1 * state.lp_total_supply // state.reserve1,
                )
                if liquidity == 0:
                    raise InsufficientLiquidityMinted()

            self._mint_lp(state, to, liquidity)
            state.reserve0, state.reserve1 = balance0, balance1
            self._save(state)

        logger.info(f"Pool {self.address}: minted {liquidity} LP to {to} for ({amount0}, {amount1})")
        return liquidity

    def burn(self, to: Address) -> Tuple[int, int]:
        """Redeems the LP units held by the pool itself and pays both tokens to ``to``."""
        with atomic(*self._participants()), self._lock():
            state = self.state
            balance0, balance1 = self._balances()
            liquidity = state.lp_balances.get(self.address, 0)
            if state.lp_total_supply == 0:
                raise InsufficientLiquidityBurned("Pool has no liquidity")

            amount0 = liquidity * balance0 // state.lp_total_supply
            amount1 = liquidity * balance1 // state.lp_total_supply
            if amount0 == 0 or amount1 == 0:
                raise InsufficientLiquidityBurned(f"Burning {liquidity} LP returns ({amount0}, {amount1})")

            self._burn_lp(state, self.address, liquidity)
            self._save(state)

            self._ledger0.transfer(self.address, to, amount0)
            self._ledger1.transfer(self.address, to, amount1)

            state = self.state
            state.reserve0, state.reserve1 = self._balances()
            self._save(state)

        logger.info(f"Pool {self.address}: burned {liquidity} LP, paid ({amount0}, {amount1}) to {to}")
        return amount0, amount1

    # --- Trading ---

    def swap(self, amount0_out: int, amount1_out: int, to: Address) -> None:
        """
        Pays out the requested amounts, then requires enough input to have arrived.

        Inputs are inferred from the balances after the optimistic payout, which
        lets one entry point serve both directions.

        Raises:
            InsufficientOutputAmount: If both outputs are zero.
            InsufficientLiquidity: If an output is not below its reserve.
            InvalidRecipient: If ``to`` is one of the pool's tokens.
            InsufficientInputAmount: If nothing was paid in.
            KInvariantViolation: If the fee-adjusted product decreased.
        """
        if amount0_out < 0 or amount1_out < 0:
            raise InvalidAmount("Swap outputs must be non-negative")
        with atomic(*self._participants()), self._lock():
            if amount0_out == 0 and amount1_out == 0:
                raise InsufficientOutputAmount()
            state = self.state
            reserve0, reserve1 = state.reserve0, state.reserve1
            if amount0_out >= reserve0 or amount1_out >= reserve1:
                raise InsufficientLiquidity(f"Pool reserves are ({reserve0}, {reserve1})")
            if to in (self.token0, self.token1):
                raise InvalidRecipient(f"Cannot pay out to token {to}")

            if amount0_out:
                self._ledger0.transfer(self.address, to, amount0_out)
            if amount1_out:
                self._ledger1.transfer(self.address, to, amount1_out)

            balance0, balance1 = self._balances()
            remaining0 = reserve0 - amount0_out
            remaining1 = reserve1 - amount1_out
            amount0_in = balance0 - remaining0 if balance0 > remaining0 else 0
            amount1_in = balance1 - remaining1 if balance1 > remaining1 else 0
            if amount0_in == 0 and amount1_in == 0:
                raise InsufficientInputAmount()

            balance0_adjusted = balance0 * FEE_DENOMINATOR - amount0_in * FEE_NUMERATOR
            balance1_adjusted = balance1 * FEE_DENOMINATOR - amount1_in * FEE_NUMERATOR
            if balance0_adjusted * balance1_adjusted < reserve0 * reserve1 * FEE_DENOMINATOR**2:
                raise KInvariantViolation()

            state = self.state
            state.reserve0, state.reserve1 = balance0, balance1
            self._save(state)

        logger.debug(
            f"Pool {self.address}: swap in ({amount0_in}, {amount1_in}) out ({amount0_out}, {amount1_out}) to {to}"
        )

    def sync(self) -> None:
        """Absorbs tokens sent directly to the pool into its reserves."""
        state = self.state
        state.reserve0, state.reserve1 = self._balances()
        self._save(state)

    def skim(self, to: Address) -> Tuple[int, int]:
        """Sends balances above the stored reserves to ``to``."""
        with atomic(*self._participants()):
            state = self.state
            balance0, balance1 = self._balances()
            excess0 = balance0 - state.reserve0 if balance0 > state.reserve0 else 0
            excess1 = balance1 - state.reserve1 if balance1 > state.reserve1 else 0
            if excess0:
                self._ledger0.transfer(self.address, to, excess0)
            if excess1:
                self._ledger1.transfer(self.address, to, excess1)
        return excess0, excess1

    # --- LP token ---

    @staticmethod
    def _mint_lp(state: PoolState, to: Address, amount: int) -> None:
        state.lp_balances[to] = state.lp_balances.get(to, 0) + amount
        state.lp_total_supply += amount

    @staticmethod
    def _burn_lp(state: PoolState, owner: Address, amount: int) -> None:
        balance = state.lp_balances.get(owner, 0)
        if balance < amount:
            raise InsufficientBalance(f"{owner} holds {balance} LP, needs {amount}")
        state.lp_balances[owner] = balance - amount
        state.lp_total_supply -= amount

    def metadata(self) -> Tuple[str, str, int]:
        """Returns the LP token's (name, symbol, decimals)."""
        state = self.state
        return state.lp_name, state.lp_symbol, state.lp_decimals

    def total_supply(self) -> int:
        return self.state.lp_total_supply

    def balance_of(self, owner: Address) -> int:
        return self.state.lp_balances.get(owner, 0)

    def allowance(self, owner: Address, spender: Address) -> int:
        return self.state.lp_allowances.get(owner, {}).get(spender, 0)

    def transfer(self, owner: Address, recipient: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("LP transfer amount must be non-negative")
        state = self.state
        self._transfer_lp(state, owner, recipient, amount)
        self._save(state)

    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("LP transfer amount must be non-negative")
        state = self.state
        if spender != owner:
            allowed = state.lp_allowances.get(owner, {}).get(spender, 0)
            if allowed < amount:
                raise InsufficientAllowance(f"{spender} may spend {allowed} LP of {owner}, needs {amount}")
            state.lp_allowances.setdefault(owner, {})[spender] = allowed - amount
        self._transfer_lp(state, owner, recipient, amount)
        self._save(state)

    def approve(self, owner: Address, spender: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("LP allowance must be non-negative")
        state = self.state
        state.lp_allowances.setdefault(owner, {})[spender] = amount
        self._save(state)

    @staticmethod
    def _transfer_lp(state: PoolState, owner: Address, recipient: Address, amount: int) -> None:
        balance = state.lp_balances.get(owner, 0)
        if balance < amount:
            raise InsufficientBalance(f"{owner} holds {balance} LP, needs {amount}")
        state.lp_balances[owner] = balance - amount
        state.lp_balances[recipient] = state.lp_balances.get(recipient, 0) + amount
