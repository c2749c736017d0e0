import pytest

from mcp_launchpad import errors, pricing
from mcp_launchpad.ledger import InMemoryLedger
from mcp_launchpad.market import BondingMarket, GraduationEvent
from mcp_launchpad.schemas import CurveType, MarketState, MarketStatus
from mcp_launchpad.storage import InMemoryStore

START = 1_700_000_000
DAY = 86_400
MARKET = "market-test"
UNIT = 10**9


class Clock:
    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now


class ReentrantToken(InMemoryLedger):
    """Token whose mint hook tries to buy again from the market minting it."""

    market = None

    def mint(self, caller, to, amount):
        self.market.buy(to, UNIT)
        super().mint(caller, to, amount)


def market_state(**overrides) -> MarketState:
    values = dict(
        token="token-test",
        creator="creator",
        platform_wallet="platform",
        funds_token="wcspr",
        curve_type=CurveType.linear,
        total_supply=1_000_000 * 10**18,
        base_price=UNIT,
        max_price=10 * UNIT,
        platform_fee_bps=100,
        creator_fee_bps=0,
        graduation_threshold=50_000 * UNIT,
        deadline=START + 30 * DAY,
    )
    values.update(overrides)
    return MarketState(**values)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def funds():
    ledger = InMemoryLedger("wcspr", "WCSPR", decimals=9)
    ledger.mint("faucet", "alice", 100_000 * UNIT)
    ledger.mint("faucet", "bob", 100_000 * UNIT)
    return ledger


@pytest.fixture
def token():
    return InMemoryLedger("token-test", "TEST", minters={MARKET})


@pytest.fixture
def make_market(token, funds, clock):
    def _make(**overrides) -> BondingMarket:
        store = InMemoryStore()
        return BondingMarket.create(MARKET, store, token, funds, market_state(**overrides), clock=clock)

    return _make


def test_create_twice_fails(make_market, token, funds):
    market = make_market()
    with pytest.raises(errors.AlreadyInitialized):
        BondingMarket.create(MARKET, market._store, token, funds, market_state())


def test_buy_scenario_matches_closed_form(make_market, token, funds):
    market = make_market()
    expected = pricing.calculate_tokens_for_funds(CurveType.linear, 4950 * UNIT, 0, 1_000_000 * 10**18, UNIT, 10 * UNIT)

    tokens = market.buy("alice", 5000 * UNIT)

    assert tokens == expected == 4950 * 10**18
    state = market.state
    assert state.funds_raised == 4950 * UNIT
    assert state.tokens_sold == tokens
    assert state.contributed["alice"] == 4950 * UNIT
    assert state.locked is False
    assert token.balance_of("alice") == tokens
    assert funds.balance_of("platform") == 50 * UNIT
    assert funds.balance_of(MARKET) == 4950 * UNIT
    assert funds.balance_of("alice") == 95_000 * UNIT


def test_quote_buy_matches_buy(make_market):
    market = make_market()
    quoted = market.get_quote_buy(5000 * UNIT)
    assert market.buy("alice", 5000 * UNIT) == quoted


def test_buy_rejects_zero_and_unfunded(make_market, funds):
    market = make_market()
    with pytest.raises(errors.InvalidAmount):
        market.buy("alice", 0)
    with pytest.raises(errors.InsufficientPayment):
        market.buy("carol", UNIT)
    assert market.state.locked is False
    assert market.state.tokens_sold == 0


def test_buy_capped_at_remaining_supply(make_market, token):
    market = make_market(total_supply=10 * 10**18)
    tokens = market.buy("alice", 1000 * UNIT)
    assert tokens == 10 * 10**18
    assert market.state.remaining_supply == 0


def test_sell_burns_then_pays_net(make_market, token, funds):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    state = market.state
    tokens_in = 1000 * 10**18
    gross = pricing.calculate_funds_for_tokens(
        state.curve_type, tokens_in, state.tokens_sold, state.total_supply, state.base_price, state.max_price
    )
    platform_fee, _, net = pricing.split_fees(gross, 100, 0)
    quoted = market.get_quote_sell(tokens_in)

    paid = market.sell("alice", tokens_in)

    assert paid == net == quoted
    state = market.state
    assert state.tokens_sold == 3950 * 10**18
    assert state.funds_raised == 4950 * UNIT - gross
    assert state.contributed["alice"] == 4950 * UNIT - gross
    assert token.balance_of("alice") == 3950 * 10**18
    assert token.total_supply == 3950 * 10**18
    assert funds.balance_of("alice") == 95_000 * UNIT + net
    assert funds.balance_of("platform") == 50 * UNIT + platform_fee


def test_sell_more_than_sold(make_market):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    with pytest.raises(errors.InsufficientTokens):
        market.sell("alice", 5000 * 10**18)
    with pytest.raises(errors.InvalidAmount):
        market.sell("alice", 0)


def test_failed_sell_rolls_back(make_market, token, funds):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    before = market.state

    # bob holds no tokens, so the burn fails
    with pytest.raises(errors.InsufficientBalance):
        market.sell("bob", 10**18)

    assert market.state == before
    assert funds.balance_of("bob") == 100_000 * UNIT


def test_sell_needs_raised_funds(make_market):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    state = market.state
    state.funds_raised = 1
    market._store.put(market.key, state)
    with pytest.raises(errors.InsufficientLiquidity):
        market.sell("alice", 1000 * 10**18)


def test_sell_worth_more_than_raised_is_refused(make_market, token, funds):
    market = make_market(promo_budget=1000 * UNIT)
    funds.mint("faucet", MARKET, 1000 * UNIT)
    tokens = market.buy("alice", 1000 * UNIT)
    assert tokens == 990 * 10**18

    # Selling everything back prices at the midpoint, above the spot price paid
    state = market.state
    gross = pricing.calculate_funds_for_tokens(
        state.curve_type, tokens, state.tokens_sold, state.total_supply, state.base_price, state.max_price
    )
    assert gross > state.funds_raised
    with pytest.raises(errors.InsufficientLiquidity):
        market.sell("alice", tokens)

    assert market.state == state
    assert token.balance_of("alice") == tokens
    assert funds.balance_of(MARKET) == 990 * UNIT + 1000 * UNIT

    # A partial sell is covered, and the promo escrow stays whole
    market.sell("alice", tokens // 2)
    assert funds.balance_of(MARKET) == market.state.funds_raised + 1000 * UNIT
    with pytest.raises(errors.InsufficientLiquidity):
        market.sell("alice", tokens - tokens // 2)
    assert funds.balance_of(MARKET) == market.state.funds_raised + 1000 * UNIT


@pytest.mark.parametrize("curve_type", [CurveType.sigmoid, CurveType.steep])
def test_non_linear_curve_trading(make_market, funds, curve_type):
    market = make_market(curve_type=curve_type)

    first = market.buy("alice", 5000 * UNIT)
    assert first == 4950 * 10**18
    price = market.get_price()
    assert price > UNIT

    # Buys price at the spot price of the current progress
    second = market.buy("bob", 5000 * UNIT)
    assert second == 4950 * UNIT * 10**18 // price
    assert second < first

    # Sells price at the midpoint of the range being sold
    state = market.state
    gross = pricing.calculate_funds_for_tokens(
        curve_type, first, state.tokens_sold, state.total_supply, state.base_price, state.max_price
    )
    _, _, net = pricing.split_fees(gross, 100, 0)
    assert market.get_quote_sell(first) == net
    assert market.sell("alice", first) == net

    state = market.state
    assert state.tokens_sold == second
    assert state.funds_raised == 2 * 4950 * UNIT - gross
    assert funds.balance_of(MARKET) == state.funds_raised


def test_reentrant_buy_is_rejected(funds, clock):
    token = ReentrantToken("token-test", "TEST", minters={MARKET})
    market = BondingMarket.create(MARKET, InMemoryStore(), token, funds, market_state(), clock=clock)
    token.market = market

    with pytest.raises(errors.LockedReentrancy):
        market.buy("alice", 5000 * UNIT)

    state = market.state
    assert state.locked is False
    assert state.tokens_sold == 0
    assert funds.balance_of("alice") == 100_000 * UNIT
    assert funds.balance_of(MARKET) == 0


def test_graduation(make_market):
    market = make_market(graduation_threshold=1000 * UNIT)
    events = []
    market.add_listener(events.append)

    with pytest.raises(errors.GraduationThresholdNotMet):
        market.graduate()

    market.buy("alice", 5000 * UNIT)
    assert market.graduate() is True
    assert market.state.status == MarketStatus.graduated
    assert market.state.locked is False
    assert events == [
        GraduationEvent(
            market=MARKET,
            token="token-test",
            funds_token="wcspr",
            funds_raised=4950 * UNIT,
            tokens_sold=4950 * 10**18,
        )
    ]

    with pytest.raises(errors.CurveAlreadyGraduated):
        market.buy("bob", UNIT)
    with pytest.raises(errors.CurveAlreadyGraduated):
        market.sell("alice", 10**18)
    with pytest.raises(errors.CurveAlreadyGraduated):
        market.graduate()
    with pytest.raises(errors.RefundNotAvailable):
        market.claim_refund("alice")


def test_failing_listener_rolls_back_graduation(make_market):
    market = make_market(graduation_threshold=1000 * UNIT)
    market.buy("alice", 5000 * UNIT)

    def listener(event):
        raise errors.PairExists("pool already registered")

    market.add_listener(listener)
    with pytest.raises(errors.PairExists):
        market.graduate()
    assert market.state.status == MarketStatus.active
    assert market.state.locked is False


def test_refund_after_deadline(make_market, funds, clock):
    market = make_market()
    market.buy("alice", 5000 * UNIT)

    with pytest.raises(errors.DeadlineNotReached):
        market.claim_refund("alice")

    clock.now = START + 31 * DAY
    assert market.claim_refund("alice") == 4950 * UNIT
    assert market.state.status == MarketStatus.refunding
    assert funds.balance_of("alice") == 95_000 * UNIT + 4950 * UNIT

    # A second claim moves nothing
    with pytest.raises(errors.NoRefundAvailable):
        market.claim_refund("alice")
    assert funds.balance_of("alice") == 99_950 * UNIT
    assert funds.balance_of(MARKET) == 0

    with pytest.raises(errors.CurveNotActive):
        market.buy("bob", UNIT)


def test_refunds_for_several_buyers(make_market, funds, clock):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    market.buy("bob", 3000 * UNIT)

    clock.now = START + 31 * DAY
    assert market.claim_refund("alice") == 4950 * UNIT
    assert market.state.status == MarketStatus.refunding

    # Later claims go through the market that is already refunding
    assert market.claim_refund("bob") == 2970 * UNIT
    state = market.state
    assert state.status == MarketStatus.refunding
    assert state.contributed == {"alice": 0, "bob": 0}
    assert state.locked is False
    assert funds.balance_of("bob") == 100_000 * UNIT - 30 * UNIT
    assert funds.balance_of(MARKET) == 0

    with pytest.raises(errors.NoRefundAvailable):
        market.claim_refund("bob")


def test_refund_without_contribution(make_market, clock):
    market = make_market()
    market.buy("alice", 5000 * UNIT)
    clock.now = START + 31 * DAY
    with pytest.raises(errors.NoRefundAvailable):
        market.claim_refund("bob")
    # The failed claim leaves the market untouched
    assert market.state.status == MarketStatus.active


def test_no_refund_once_threshold_met(make_market, clock):
    market = make_market(graduation_threshold=1000 * UNIT)
    market.buy("alice", 5000 * UNIT)
    clock.now = START + 31 * DAY
    with pytest.raises(errors.RefundNotAvailable):
        market.claim_refund("alice")


def test_creator_fees(make_market, funds):
    market = make_market(creator_fee_bps=200)
    market.buy("alice", 5000 * UNIT)
    assert market.state.accumulated_creator_fees == 100 * UNIT
    assert market.state.funds_raised == 4850 * UNIT

    with pytest.raises(errors.Unauthorized):
        market.withdraw_fees("alice")
    assert market.withdraw_fees("creator") == 100 * UNIT
    assert funds.balance_of("creator") == 100 * UNIT
    with pytest.raises(errors.NoFeesToWithdraw):
        market.withdraw_fees("creator")


def test_promo_milestones(make_market, funds):
    market = make_market(graduation_threshold=10_000 * UNIT, promo_budget=1000 * UNIT)
    funds.mint("faucet", MARKET, 1000 * UNIT)

    with pytest.raises(errors.MilestoneNotUnlocked):
        market.claim_promo_milestone("creator")

    market.buy("alice", 5000 * UNIT)
    assert market.get_progress() == (4950 * UNIT, 10_000 * UNIT, 4950)
    assert market.claim_promo_milestone("creator") == 250 * UNIT
    assert market.get_promo_status() == (1000 * UNIT, 250 * UNIT, 50)

    with pytest.raises(errors.MilestoneNotUnlocked):
        market.claim_promo_milestone("creator")
    with pytest.raises(errors.Unauthorized):
        market.claim_promo_milestone("alice")

    market.buy("bob", 6000 * UNIT)
    assert market.get_progress()[2] == 10_000
    assert market.claim_promo_milestone("creator") == 750 * UNIT
    assert funds.balance_of("creator") == 1000 * UNIT


def test_price_moves_with_sales(make_market):
    market = make_market()
    assert market.get_price() == UNIT
    market.buy("alice", 50_000 * UNIT)
    assert market.get_price() > UNIT
