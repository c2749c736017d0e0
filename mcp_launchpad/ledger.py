"""
Token Ledger Collaborator

Markets, pools and the router never keep token balances of their own: every
balance and allowance lives in a token ledger, and each component acts on it
through its own account (its address). ``Ledger`` is the interface they consume;
``InMemoryLedger`` is the plain balance-arithmetic implementation used for
launched tokens, the wrapped-native funds token and in tests.

Every call either completes or raises a LaunchpadError; there are no partial
transfers.
"""
from typing import Dict, Iterable, Optional, Protocol, Set, Tuple

from mcp_launchpad.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    NotInitialized,
    Unauthorized,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

Address = str


class Ledger(Protocol):
    address: Address
    symbol: str

    def balance_of(self, owner: Address) -> int: ...

    def transfer(self, owner: Address, recipient: Address, amount: int) -> None: ...

    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> None: ...

    def approve(self, owner: Address, spender: Address, amount: int) -> None: ...

    def allowance(self, owner: Address, spender: Address) -> int: ...

    def mint(self, caller: Address, to: Address, amount: int) -> None: ...

    def burn(self, caller: Address, owner: Address, amount: int) -> None: ...

    def snapshot(self): ...

    def restore(self, snapshot) -> None: ...


class InMemoryLedger:
    """Balance table for one token.

    Args:
        address: Token address other components refer to it by.
        symbol: Ticker used in log lines and tool output.
        minters: Accounts allowed to mint and burn. ``None`` leaves supply changes
            unrestricted, which is what tests and the funds token use.
    """

    def __init__(
        self,
        address: Address,
        symbol: str,
        name: str = "",
        decimals: int = 18,
        minters: Optional[Iterable[Address]] = None,
    ):
        self.address = address
        self.symbol = symbol
        self.name = name or symbol
        self.decimals = decimals
        self.minters: Optional[Set[Address]] = set(minters) if minters is not None else None
        self._balances: Dict[Address, int] = {}
        # (owner, spender) -> remaining allowance
        self._allowances: Dict[Tuple[Address, Address], int] = {}
        self._total_supply = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, owner: Address) -> int:
        return self._balances.get(owner, 0)

    def allowance(self, owner: Address, spender: Address) -> int:
        return self._allowances.get((owner, spender), 0)

    def _debit(self, owner: Address, amount: int) -> None:
        balance = self.balance_of(owner)
        if balance < amount:
            raise InsufficientBalance(f"{owner} holds {balance} {self.symbol}, needs {amount}")
        if balance == amount:
            self._balances.pop(owner, None)
        else:
            self._balances[owner] = balance - amount

    def _credit(self, owner: Address, amount: int) -> None:
        if amount:
            self._balances[owner] = self.balance_of(owner) + amount

    def transfer(self, owner: Address, recipient: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Transfer amount must be non-negative: {amount}")
        self._debit(owner, amount)
        self._credit(recipient, amount)
        logger.debug(f"{self.symbol}: transfer {amount} {owner} -> {recipient}")

    def transfer_from(self, spender: Address, owner: Address, recipient: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Transfer amount must be non-negative: {amount}")
        if spender != owner:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                raise InsufficientAllowance(f"{spender} may spend {allowed} {self.symbol} of {owner}, needs {amount}")
            self._allowances[(owner, spender)] = allowed - amount
        self.transfer(owner, recipient, amount)

    def approve(self, owner: Address, spender: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Allowance must be non-negative: {amount}")
        self._allowances[(owner, spender)] = amount

    def _check_minter(self, caller: Address) -> None:
        if self.minters is not None and caller not in self.minters:
            raise Unauthorized(f"{caller} cannot change the supply of {self.symbol}")

    def mint(self, caller: Address, to: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Mint amount must be non-negative: {amount}")
        self._check_minter(caller)
        self._credit(to, amount)
        self._total_supply += amount
        logger.debug(f"{self.symbol}: minted {amount} to {to}")

    def burn(self, caller: Address, owner: Address, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Burn amount must be non-negative: {amount}")
        self._check_minter(caller)
        self._debit(owner, amount)
        self._total_supply -= amount
        logger.debug(f"{self.symbol}: burned {amount} from {owner}")

    def snapshot(self):
        return dict(self._balances), dict(self._allowances), self._total_supply

    def restore(self, snapshot) -> None:
        balances, allowances, total_supply = snapshot
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self._total_supply = total_supply


def resolve(ledgers: Dict[Address, Ledger], token: Address) -> Ledger:
    """Looks up the ledger of ``token``."""
    try:
        return ledgers[token]
    except KeyError:
        raise NotInitialized(f"No ledger registered for token {token}") from None
