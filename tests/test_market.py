import pytest

from conftest import Recorder, buy
from src.ledger import EventBus
from src.ledger.events import EventType
from src.ledger.state import MarketSnapshot
from src.market import (
    AdminCap,
    ArithmeticOverflow,
    CannotSellLastShare,
    FirstShareRestricted,
    InMemoryPaymentMedium,
    InsufficientLiquidity,
    InsufficientPayment,
    InsufficientShares,
    LedgerWriteError,
    Market,
    TradeDirection,
    Unauthorized,
)
from src.market.capability import key_fingerprint
from src.market.pricing import price


def _seed(market: Market, payments: InMemoryPaymentMedium) -> None:
    """alice mints her first share, bob buys 100 more."""
    buy(market, payments, "alice", "alice", 1)
    buy(market, payments, "alice", "bob", 100)


def test_subject_buys_own_first_share_for_free(market: Market, payments: InMemoryPaymentMedium) -> None:
    record = buy(market, payments, "alice", "alice", 1)
    assert record.base_price == 0
    assert record.value == 0
    assert record.supply == 1
    assert record.direction == TradeDirection.BUY
    assert market.get_current_supply("alice") == 1
    assert market.get_balance("alice", "alice") == 1


def test_second_buyer_pays_curve_price(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    assert market.get_buy_price("alice", 2) == 3
    record = buy(market, payments, "alice", "bob", 2, budget=3)
    assert record.base_price == 3
    assert record.protocol_fee == 0
    assert record.subject_fee == 0
    assert record.value == 3
    assert record.supply == 3
    assert payments.balance_of("bob") == 0


def test_only_subject_can_mint_first_share(market: Market, payments: InMemoryPaymentMedium) -> None:
    payments.fund("bob", 10)
    handle = payments.issue("bob", 10)
    with pytest.raises(FirstShareRestricted):
        market.buy_shares("alice", 1, handle, "bob")
    assert payments.value(handle) == 10
    assert market.get_current_supply("alice") == 0
    assert market.subjects() == []


def test_buy_routes_fees_and_base(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    assert market.get_current_supply("alice") == 101
    assert market.pool_balance == 5050
    assert market.protocol_fee_balance == 252
    assert payments.balance_of("alice") == 252
    assert payments.custody == market.pool_balance + market.protocol_fee_balance


def test_buy_returns_excess_payment(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    record = buy(market, payments, "alice", "bob", 100, budget=6000)
    assert record.value == 5554
    assert payments.balance_of("bob") == 6000 - 5554


def test_underpayment_is_rejected_without_change(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    payments.fund("bob", 5553)
    handle = payments.issue("bob", 5553)
    with pytest.raises(InsufficientPayment) as exc_info:
        market.buy_shares("alice", 100, handle, "bob")
    assert exc_info.value.required == 5554
    assert exc_info.value.provided == 5553
    assert payments.value(handle) == 5553
    assert market.get_current_supply("alice") == 1
    assert market.pool_balance == 0


def test_sell_pays_seller_subject_and_protocol(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    assert market.get_sell_price("alice", 50) == 3775
    assert market.get_sell_price_after_fee("alice", 50) == 3399
    record = market.sell_shares("alice", 50, "bob")
    assert record.direction == TradeDirection.SELL
    assert record.base_price == 3775
    assert record.protocol_fee == 188
    assert record.subject_fee == 188
    assert record.value == 3399
    assert record.supply == 51
    assert payments.balance_of("bob") == 3399
    assert payments.balance_of("alice") == 252 + 188
    assert market.pool_balance == 5050 - 3775
    assert market.protocol_fee_balance == 252 + 188
    assert market.get_balance("alice", "bob") == 50


def test_cannot_sell_last_share(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    with pytest.raises(CannotSellLastShare):
        market.sell_shares("alice", 1, "alice")
    buy(market, payments, "alice", "bob", 2)
    with pytest.raises(CannotSellLastShare):
        market.sell_shares("alice", 3, "bob")
    assert market.get_current_supply("alice") == 3


def test_sell_unknown_subject(market: Market) -> None:
    with pytest.raises(InsufficientShares) as exc_info:
        market.sell_shares("nobody", 1, "bob")
    assert exc_info.value.available == 0


def test_sell_more_than_held(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    buy(market, payments, "alice", "bob", 2)
    with pytest.raises(InsufficientShares) as exc_info:
        market.sell_shares("alice", 1, "carol")
    assert exc_info.value.holder == "carol"
    assert market.get_current_supply("alice") == 3


def test_sell_without_liquidity(payments: InMemoryPaymentMedium) -> None:
    snapshot = MarketSnapshot(
        admin="admin",
        admin_key_hash=key_fingerprint("operator-secret"),
        protocol_fee_destination="treasury",
        supplies={"alice": 3},
        balances={"alice": {"alice": 1, "bob": 2}},
        pool_balance=0,
    )
    market = Market.from_snapshot(snapshot, payments)
    with pytest.raises(InsufficientLiquidity) as exc_info:
        market.sell_shares("alice", 1, "bob")
    assert exc_info.value.required == 2
    assert market.get_balance("alice", "bob") == 2


def test_overflowing_buy_is_rejected(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    payments.fund("bob", 10)
    handle = payments.issue("bob", 10)
    with pytest.raises(ArithmeticOverflow):
        market.buy_shares("alice", 2**33, handle, "bob")
    assert market.get_current_supply("alice") == 1
    assert payments.value(handle) == 10


def test_zero_quantity_is_rejected(market: Market, payments: InMemoryPaymentMedium) -> None:
    payments.fund("alice", 1)
    handle = payments.issue("alice", 1)
    with pytest.raises(ValueError):
        market.buy_shares("alice", 0, handle, "alice")
    with pytest.raises(ValueError):
        market.sell_shares("alice", 0, "alice")


def test_admin_withdraws_protocol_fees(
    market: Market,
    admin_cap: AdminCap,
    payments: InMemoryPaymentMedium,
) -> None:
    _seed(market, payments)
    market.sell_shares("alice", 50, "bob")
    accrued = market.protocol_fee_balance
    assert accrued == 440
    assert market.withdraw_protocol_fees(admin_cap) == 440
    assert market.protocol_fee_balance == 0
    assert payments.balance_of("treasury") == 440
    assert market.withdraw_protocol_fees(admin_cap) == 0


def test_foreign_capability_is_unauthorized(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    forged = AdminCap(holder="mallory")
    with pytest.raises(Unauthorized):
        market.withdraw_protocol_fees(forged)
    with pytest.raises(Unauthorized):
        market.update_protocol_fee_destination(forged, "mallory")
    assert market.protocol_fee_balance == 252
    assert market.protocol_fee_destination == "treasury"


def test_transferred_capability_keeps_working(
    market: Market,
    admin_cap: AdminCap,
    payments: InMemoryPaymentMedium,
) -> None:
    _seed(market, payments)
    admin_cap.transfer("new-admin")
    market.update_protocol_fee_destination(admin_cap, "vault")
    market.withdraw_protocol_fees(admin_cap)
    assert payments.balance_of("vault") == 252


def test_add_liquidity_is_open_to_anyone(market: Market, payments: InMemoryPaymentMedium) -> None:
    payments.fund("donor", 500)
    assert market.add_liquidity(payments.issue("donor", 500), provider="donor") == 500
    assert market.pool_balance == 500
    assert payments.custody == 500


def test_reads_are_idempotent(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    first = (
        market.get_buy_price("alice", 7),
        market.get_buy_price_after_fee("alice", 7),
        market.get_sell_price("alice", 7),
        market.get_sell_price_after_fee("alice", 7),
    )
    second = (
        market.get_buy_price("alice", 7),
        market.get_buy_price_after_fee("alice", 7),
        market.get_sell_price("alice", 7),
        market.get_sell_price_after_fee("alice", 7),
    )
    assert first == second
    assert market.get_current_supply("alice") == 101


def test_quotes_match_executed_trades(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    quoted_buy = market.get_buy_price_after_fee("alice", 10)
    assert buy(market, payments, "alice", "carol", 10).value == quoted_buy
    quoted_sell = market.get_sell_price_after_fee("alice", 4)
    assert market.sell_shares("alice", 4, "carol").value == quoted_sell


def test_sell_price_beyond_supply(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    with pytest.raises(InsufficientShares):
        market.get_sell_price("alice", 2)


def test_round_trip_loses_exactly_the_fees(market: Market, payments: InMemoryPaymentMedium) -> None:
    _seed(market, payments)
    bought = buy(market, payments, "alice", "carol", 40)
    sold = market.sell_shares("alice", 40, "carol")
    assert bought.base_price == sold.base_price
    loss = bought.value - sold.value
    assert loss == bought.protocol_fee + bought.subject_fee + sold.protocol_fee + sold.subject_fee


def test_conservation_across_a_trading_session(market: Market, payments: InMemoryPaymentMedium) -> None:
    buy(market, payments, "alice", "alice", 1)
    buy(market, payments, "dave", "dave", 1)
    for trader, qty in [("bob", 5), ("carol", 12), ("erin", 3)]:
        buy(market, payments, "alice", trader, qty)
        buy(market, payments, "dave", trader, qty + 1)
    total_value = payments.total_value()
    market.sell_shares("alice", 4, "bob")
    market.sell_shares("dave", 10, "carol")
    market.sell_shares("alice", 3, "erin")
    assert payments.total_value() == total_value
    assert market.is_conserved()
    for subject in ("alice", "dave"):
        holders = market.get_holders(subject)
        assert sum(holders.values()) == market.get_current_supply(subject)
    # Without donations the pool holds exactly the curve value of outstanding shares.
    expected_pool = price(0, market.get_current_supply("alice")) + price(
        0, market.get_current_supply("dave")
    )
    assert market.pool_balance == expected_pool
    assert payments.custody == market.pool_balance + market.protocol_fee_balance


def test_events_follow_commits(
    market: Market,
    admin_cap: AdminCap,
    payments: InMemoryPaymentMedium,
    recorder: Recorder,
) -> None:
    _seed(market, payments)
    with pytest.raises(CannotSellLastShare):
        market.sell_shares("alice", 101, "bob")
    market.update_protocol_fee_destination(admin_cap, "vault")
    market.withdraw_protocol_fees(admin_cap)
    types = [event.event_type for event in recorder.events]
    assert types == [
        EventType.MARKET_CREATED,
        EventType.SHARES_TRADED,
        EventType.SHARES_TRADED,
        EventType.FEE_DESTINATION_UPDATED,
        EventType.PROTOCOL_FEES_WITHDRAWN,
    ]
    trade = recorder.events[2].payload
    assert trade["trader"] == "bob"
    assert trade["base_price"] == 5050
    assert trade["supply"] == 101
    assert recorder.events[-1].payload == {"amount": 252, "destination": "vault"}


def test_failing_delivery_does_not_undo_trade(payments: InMemoryPaymentMedium) -> None:
    class BrokenSink(EventBus):
        def deliver(self, event):
            raise RuntimeError("subscribers offline")

    market, _ = Market.create("admin", payments, sink=BrokenSink())
    record = buy(market, payments, "alice", "alice", 1)
    assert record.supply == 1
    assert market.get_current_supply("alice") == 1


def test_fee_destination_defaults_to_admin(payments: InMemoryPaymentMedium) -> None:
    market, cap = Market.create("admin", payments)
    assert market.protocol_fee_destination == "admin"
    assert cap.holder == "admin"


def test_unrecorded_operation_leaves_market_untouched(payments: InMemoryPaymentMedium) -> None:
    class FlakyLedgerBus(EventBus):
        def __init__(self) -> None:
            super().__init__()
            self.offline = False

        def record(self, event_type, payload, metadata=None):
            if self.offline:
                raise OSError("disk full")
            return super().record(event_type, payload, metadata)

    bus = FlakyLedgerBus()
    market, cap = Market.create("admin", payments, protocol_fee_destination="treasury", sink=bus)
    _seed(market, payments)
    custody = payments.custody
    bus.offline = True

    payments.fund("carol", 1000)
    handle = payments.issue("carol", 1000)
    with pytest.raises(LedgerWriteError) as exc_info:
        market.buy_shares("alice", 3, handle, "carol")
    assert exc_info.value.event_type == "SharesTraded"
    assert payments.value(handle) == 1000
    with pytest.raises(LedgerWriteError):
        market.sell_shares("alice", 10, "bob")
    with pytest.raises(LedgerWriteError):
        market.add_liquidity(handle)
    with pytest.raises(LedgerWriteError):
        market.withdraw_protocol_fees(cap)
    with pytest.raises(LedgerWriteError):
        market.update_protocol_fee_destination(cap, "vault")

    assert market.get_current_supply("alice") == 101
    assert market.get_balance("alice", "bob") == 100
    assert market.pool_balance == 5050
    assert market.protocol_fee_balance == 252
    assert market.protocol_fee_destination == "treasury"
    assert payments.custody == custody
    assert payments.value(handle) == 1000


def test_capability_secret_stays_out_of_repr(admin_cap: AdminCap) -> None:
    assert admin_cap.secret not in repr(admin_cap)
    assert admin_cap.fingerprint == key_fingerprint(admin_cap.secret)
    assert admin_cap.fingerprint != admin_cap.secret
