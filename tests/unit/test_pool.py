import pytest
import hypothesis.strategies as st
from hypothesis import given, settings

from mcp_launchpad import errors
from mcp_launchpad.ledger import InMemoryLedger
from mcp_launchpad.pool import AmmPool, sort_tokens, sqrt
from mcp_launchpad.router import get_amount_out
from mcp_launchpad.schemas import BURN_ADDRESS, MINIMUM_LIQUIDITY
from mcp_launchpad.storage import InMemoryStore

POOL = "pool-ab"


class HookedLedger(InMemoryLedger):
    """Ledger that runs a callback whenever tokens are paid to ``hook_target``."""

    hook_target = None
    hook = None

    def transfer(self, owner, recipient, amount):
        super().transfer(owner, recipient, amount)
        if self.hook is not None and recipient == self.hook_target:
            self.hook()


def make_pool(reserve0: int = 0, reserve1: int = 0, ledger_cls=InMemoryLedger):
    token_a = ledger_cls("token-a", "AAA")
    token_b = ledger_cls("token-b", "BBB")
    pool = AmmPool.create(POOL, InMemoryStore(), token_a, token_b)
    if reserve0 or reserve1:
        token_a.mint("faucet", POOL, reserve0)
        token_b.mint("faucet", POOL, reserve1)
        pool.mint("provider")
    return pool, token_a, token_b


def test_sqrt():
    assert [sqrt(n) for n in (0, 1, 2, 3, 4, 15, 16, 17)] == [0, 1, 1, 1, 2, 3, 4, 4]
    assert sqrt(10_000 * 10_000) == 10_000
    assert sqrt(10**36 + 1) == 10**18


def test_sort_tokens():
    assert sort_tokens("b", "a") == ("a", "b")
    with pytest.raises(errors.IdenticalAddresses):
        sort_tokens("a", "a")


def test_create_orders_tokens():
    token_a = InMemoryLedger("token-a", "AAA")
    token_b = InMemoryLedger("token-b", "BBB")
    pool = AmmPool.create(POOL, InMemoryStore(), token_b, token_a)
    assert (pool.token0, pool.token1) == ("token-a", "token-b")
    assert pool.metadata() == ("AAA-BBB LP", "AAABBB-LP", 18)


def test_first_deposit_locks_minimum_liquidity():
    pool, token_a, token_b = make_pool()
    token_a.mint("faucet", POOL, 10_000)
    token_b.mint("faucet", POOL, 10_000)

    assert pool.mint("provider") == 9000
    assert pool.total_supply() == 10_000
    assert pool.balance_of(BURN_ADDRESS) == MINIMUM_LIQUIDITY
    assert pool.balance_of("provider") == 9000
    assert pool.get_reserves() == (10_000, 10_000)
    assert pool.state.locked is False


def test_first_deposit_too_small():
    pool, token_a, token_b = make_pool()
    token_a.mint("faucet", POOL, 1000)
    token_b.mint("faucet", POOL, 1000)
    with pytest.raises(errors.InsufficientLiquidityMinted):
        pool.mint("provider")
    assert pool.total_supply() == 0
    assert pool.state.locked is False


def test_later_deposit_uses_smaller_ratio():
    pool, token_a, token_b = make_pool(10_000, 10_000)
    token_a.mint("faucet", POOL, 1000)
    token_b.mint("faucet", POOL, 2000)
    assert pool.mint("second") == 1000
    assert pool.get_reserves() == (11_000, 12_000)


def test_deposit_with_nothing_new_fails():
    pool, _, _ = make_pool(10_000, 10_000)
    with pytest.raises(errors.InsufficientLiquidityMinted):
        pool.mint("provider")


def test_burn_returns_pro_rata_share():
    pool, token_a, token_b = make_pool(10_000, 10_000)
    pool.transfer("provider", POOL, 9000)

    assert pool.burn("provider") == (9000, 9000)
    assert pool.total_supply() == MINIMUM_LIQUIDITY
    assert pool.get_reserves() == (1000, 1000)
    assert token_a.balance_of("provider") == 9000
    assert token_b.balance_of("provider") == 9000


def test_burn_without_lp_units_fails():
    pool, _, _ = make_pool(10_000, 10_000)
    with pytest.raises(errors.InsufficientLiquidityBurned):
        pool.burn("provider")


def test_swap_exact_quote():
    pool, token_a, token_b = make_pool(10_000, 10_000)
    token_a.mint("faucet", "trader", 1000)
    token_a.transfer("trader", POOL, 1000)
    amount_out = get_amount_out(1000, 10_000, 10_000)
    assert amount_out == 906

    pool.swap(0, amount_out, "trader")

    assert token_b.balance_of("trader") == 906
    assert pool.get_reserves() == (11_000, 9094)


def test_swap_above_quote_violates_k():
    pool, token_a, token_b = make_pool(10_000, 10_000)
    token_a.mint("faucet", POOL, 1000)
    with pytest.raises(errors.KInvariantViolation):
        pool.swap(0, 907, "trader")
    assert token_b.balance_of("trader") == 0
    assert pool.get_reserves() == (10_000, 10_000)


def test_swap_argument_checks():
    pool, token_a, _ = make_pool(10_000, 10_000)
    with pytest.raises(errors.InsufficientOutputAmount):
        pool.swap(0, 0, "trader")
    with pytest.raises(errors.InsufficientLiquidity):
        pool.swap(10_000, 0, "trader")
    with pytest.raises(errors.InsufficientInputAmount):
        pool.swap(0, 10, "trader")
    token_a.mint("faucet", POOL, 100)
    with pytest.raises(errors.InvalidRecipient):
        pool.swap(0, 10, "token-b")
    assert pool.state.locked is False


def test_reentrant_swap_is_rejected():
    pool, token_a, token_b = make_pool(10_000, 10_000, ledger_cls=HookedLedger)
    token_b.hook_target = "attacker"
    token_b.hook = lambda: pool.swap(0, 1, "attacker")
    token_a.mint("faucet", POOL, 1000)

    with pytest.raises(errors.LockedReentrancy):
        pool.swap(0, 900, "attacker")

    assert pool.state.locked is False
    assert pool.get_reserves() == (10_000, 10_000)
    assert token_b.balance_of("attacker") == 0


def test_sync_and_skim():
    pool, token_a, token_b = make_pool(10_000, 10_000)
    token_a.mint("faucet", POOL, 500)
    assert pool.skim("collector") == (500, 0)
    assert token_a.balance_of("collector") == 500

    token_b.mint("faucet", POOL, 300)
    pool.sync()
    assert pool.get_reserves() == (10_000, 10_300)
    assert pool.skim("collector") == (0, 0)


def test_lp_allowances():
    pool, _, _ = make_pool(10_000, 10_000)
    with pytest.raises(errors.InsufficientAllowance):
        pool.transfer_from("router", "provider", POOL, 100)
    pool.approve("provider", "router", 150)
    pool.transfer_from("router", "provider", POOL, 100)
    assert pool.allowance("provider", "router") == 50
    assert pool.balance_of(POOL) == 100
    with pytest.raises(errors.InsufficientBalance):
        pool.transfer("provider", "other", 10_000)
    with pytest.raises(errors.InvalidAmount):
        pool.approve("provider", "router", -1)


@settings(max_examples=300, deadline=None)
@given(
    reserve0=st.integers(min_value=1001, max_value=10**15),
    reserve1=st.integers(min_value=1001, max_value=10**15),
    amount_in=st.integers(min_value=0, max_value=10**15),
    extra_out=st.integers(min_value=0, max_value=3),
    zero_for_one=st.booleans(),
)
def test_swap_never_decreases_product(reserve0, reserve1, amount_in, extra_out, zero_for_one):
    pool, token_a, token_b = make_pool(reserve0, reserve1)
    if zero_for_one:
        reserve_in, reserve_out, ledger_in = reserve0, reserve1, token_a
    else:
        reserve_in, reserve_out, ledger_in = reserve1, reserve0, token_b
    quoted = get_amount_out(amount_in, reserve_in, reserve_out)
    amount_out = quoted + extra_out
    if amount_in:
        ledger_in.mint("faucet", POOL, amount_in)
    outputs = (0, amount_out) if zero_for_one else (amount_out, 0)

    try:
        pool.swap(*outputs, "trader")
    except errors.LaunchpadError:
        assert extra_out > 0 or quoted == 0
        assert pool.get_reserves() == (reserve0, reserve1)
    else:
        new0, new1 = pool.get_reserves()
        in0, in1 = (amount_in, 0) if zero_for_one else (0, amount_in)
        assert (new0 * 1000 - in0 * 3) * (new1 * 1000 - in1 * 3) >= reserve0 * reserve1 * 1000**2
        assert new0 * new1 >= reserve0 * reserve1
    assert pool.state.locked is False
