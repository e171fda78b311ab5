import pytest

from hlmaker.config import MarketMakerConfig, QuoteLevel
from hlmaker.orders import (
    INF_BPS,
    DesiredOrder,
    OrderPlan,
    RestingOrder,
    bps_diff,
    desired_orders,
    reconcile_orders,
    record_resting,
    truncate_float,
)


def make_config(**overrides):
    values = dict(
        symbol="ETH",
        daily_return_bps=10,
        notional_per_side=1000.0,
        daily_pnl_stop_loss=500.0,
        trailing_take_profit=0.5,
        trailing_stop_loss=0.5,
        hedge_only_mode=False,
        force_quote_refresh_interval=1000,
        max_long_usd=10_000.0,
        max_short_usd=10_000.0,
    )
    values.update(overrides)
    return MarketMakerConfig(**values)


@pytest.mark.parametrize("value", [1.239, 2000.5555, 0.000123, 98765.4321])
@pytest.mark.parametrize("decimals", [0, 2, 4])
def test_truncate_float_cuts_down_within_one_unit(value, decimals):
    result = truncate_float(value, decimals, False)
    assert result <= value
    assert value - result < 10**-decimals + 1e-12


def test_truncate_float_round_up_adds_one_unit():
    down = truncate_float(1.239, 2, False)
    up = truncate_float(1.239, 2, True)
    assert up == pytest.approx(down + 0.01)


def test_truncate_float_negative_is_zero():
    assert truncate_float(-5.5, 3, False) == 0.0


def test_bps_diff_equal_prices():
    assert bps_diff(100.0, 100.0) == 0


def test_bps_diff_zero_base_is_infinite():
    assert bps_diff(0.0, 5.0) == INF_BPS


def test_bps_diff_grows_with_distance():
    assert bps_diff(100.0, 100.01) <= bps_diff(100.0, 100.5) <= bps_diff(100.0, 110.0)
    assert bps_diff(100.0, 99.0) == bps_diff(100.0, 101.0)


def test_desired_orders_straddle_mid():
    orders = desired_orders(make_config(), 2000.0, 0.0, 2, 6)
    assert [o.is_bid for o in orders] == [True, False]
    bid, ask = orders
    assert bid.price < 2000.0 < ask.price
    assert bid.size * bid.price <= 1000.0
    assert ask.size * ask.price <= 1000.0
    assert truncate_float(bid.size, 6, False) == bid.size


def test_desired_orders_one_pair_per_level_widening():
    levels = [
        QuoteLevel(level=1, spread_multiplier=1.0, size_multiplier=1.0),
        QuoteLevel(level=2, spread_multiplier=2.0, size_multiplier=2.0),
    ]
    orders = desired_orders(make_config(quote_levels=levels), 2000.0, 0.0, 2, 6)
    assert len(orders) == 4
    bid1, ask1, bid2, ask2 = orders
    assert bid2.price < bid1.price
    assert ask2.price > ask1.price
    assert bid2.size > bid1.size


def test_desired_orders_no_bids_at_max_long():
    config = make_config(max_long_usd=2000.0)
    orders = desired_orders(config, 2000.0, 1.0, 2, 6)
    assert all(not o.is_bid for o in orders)
    assert len(orders) == 1


def test_desired_orders_no_asks_at_max_short():
    config = make_config(max_short_usd=2000.0)
    orders = desired_orders(config, 2000.0, -1.0, 2, 6)
    assert all(o.is_bid for o in orders)
    assert len(orders) == 1


def test_desired_orders_rejects_non_positive_mid():
    with pytest.raises(ValueError):
        desired_orders(make_config(), 0.0, 0.0, 2, 6)


def test_desired_order_request_is_post_only():
    request = DesiredOrder(is_bid=True, price=10.5, size=2.0).request("ETH")
    assert request["order_type"] == {"limit": {"tif": "Alo"}}
    assert request["is_buy"] is True
    assert request["limit_px"] == 10.5
    assert request["reduce_only"] is False


def test_reconcile_places_everything_when_book_empty():
    desired = [DesiredOrder(True, 99.0, 1.0), DesiredOrder(False, 101.0, 1.0)]
    plan = reconcile_orders(desired, {})
    assert plan.to_cancel == []
    assert plan.to_place == desired


def test_reconcile_keeps_matching_orders():
    desired = [DesiredOrder(True, 99.0, 1.0), DesiredOrder(False, 101.0, 1.0)]
    active = {
        7: RestingOrder(oid=7, size=1.0, price=99.0, is_bid=True),
        8: RestingOrder(oid=8, size=1.0, price=101.0, is_bid=False),
    }
    plan = reconcile_orders(desired, active)
    assert plan.is_empty


def test_reconcile_keeps_order_within_two_bps():
    desired = [DesiredOrder(True, 100.01, 1.0)]
    active = {7: RestingOrder(oid=7, size=1.0, price=100.0, is_bid=True)}
    assert reconcile_orders(desired, active).is_empty


def test_reconcile_replaces_moved_price_and_changed_size():
    desired = [DesiredOrder(True, 90.0, 1.0), DesiredOrder(False, 101.0, 3.0)]
    active = {
        7: RestingOrder(oid=7, size=1.0, price=99.0, is_bid=True),
        8: RestingOrder(oid=8, size=1.0, price=101.0, is_bid=False),
    }
    plan = reconcile_orders(desired, active)
    assert plan.to_cancel == [7, 8]
    assert plan.to_place == desired


def test_reconcile_cancels_unwanted_side():
    desired = [DesiredOrder(True, 99.0, 1.0)]
    active = {
        7: RestingOrder(oid=7, size=1.0, price=99.0, is_bid=True),
        8: RestingOrder(oid=8, size=1.0, price=101.0, is_bid=False),
    }
    plan = reconcile_orders(desired, active)
    assert plan == OrderPlan(to_cancel=[8], to_place=[])


def test_record_resting_tracks_only_resting_statuses():
    active = {}
    placed = [DesiredOrder(True, 99.0, 1.0), DesiredOrder(False, 101.0, 2.0)]
    recorded = record_resting(active, placed, [None, 42, 43])
    assert recorded == [RestingOrder(oid=42, size=2.0, price=101.0, is_bid=False)]
    assert active == {42: recorded[0]}


def test_record_then_reconcile_is_stable():
    desired = [DesiredOrder(True, 99.0, 1.0), DesiredOrder(False, 101.0, 1.0)]
    active = {}
    plan = reconcile_orders(desired, active)
    record_resting(active, plan.to_place, [1, 2])
    assert reconcile_orders(desired, active).is_empty