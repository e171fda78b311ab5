"""Quote construction and reconciliation of desired quotes against resting orders."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from hlmaker.config import EPSILON, MarketMakerConfig

logger = logging.getLogger(__name__)

INF_BPS = 10_001
MAX_BPS_CHANGE = 2
POST_ONLY_TIF = "Alo"

_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF
_U16_MAX = 0xFFFF


def truncate_float(value: float, decimals: int, round_up: bool) -> float:
    """Cut ``value`` down to ``decimals`` places, optionally bumping one unit up.

    Negative and NaN inputs truncate to zero, as the exchange sizes are unsigned.
    """
    scale = float(10**decimals)
    scaled = value * scale
    if math.isnan(scaled) or scaled <= 0.0:
        units = 0
    elif math.isinf(scaled) or scaled >= _U64_MAX:
        units = _U64_MAX
    else:
        units = int(scaled)
    if round_up:
        units += 1
    return units / scale


def bps_diff(x: float, y: float) -> int:
    """Absolute difference of ``y`` from ``x`` in whole basis points."""
    if abs(x) < EPSILON:
        return INF_BPS
    diff = abs((y - x) / x) * 10_000.0
    if math.isnan(diff):
        return 0
    if math.isinf(diff) or diff >= _U16_MAX:
        return _U16_MAX
    return int(diff)


@dataclass(frozen=True)
class RestingOrder:
    """An order known to rest on the book."""

    oid: int
    size: float
    price: float
    is_bid: bool

    @property
    def side(self) -> str:
        return "bid" if self.is_bid else "ask"


@dataclass(frozen=True)
class DesiredOrder:
    """A quote the market maker wants on the book."""

    is_bid: bool
    price: float
    size: float

    @property
    def side(self) -> str:
        return "bid" if self.is_bid else "ask"

    def request(self, asset: str) -> dict[str, Any]:
        """Post-only limit order request for the exchange."""
        return {
            "asset": asset,
            "is_buy": self.is_bid,
            "reduce_only": False,
            "limit_px": self.price,
            "sz": self.size,
            "cloid": None,
            "order_type": {"limit": {"tif": POST_ONLY_TIF}},
        }


@dataclass
class OrderPlan:
    """Orders to cancel, then orders to place, to move the book to the desired quotes."""

    to_cancel: list[int] = field(default_factory=list)
    to_place: list[DesiredOrder] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_cancel and not self.to_place


def _size_for(notional: float, price: float) -> float:
    if price <= 0.0:
        return 0.0
    return notional / price


def desired_orders(
    config: MarketMakerConfig,
    mid_price: float,
    position_size: float,
    price_decimals: int,
    size_decimals: int,
) -> list[DesiredOrder]:
    """Bid and ask quotes for every configured level, respecting position limits."""
    if not mid_price > 0.0:
        raise ValueError(f"mid price must be positive, got {mid_price!r}")

    max_long = config.max_long_usd / mid_price
    max_short = config.max_short_usd / mid_price
    base_half_spread = mid_price * config.daily_return_bps / 10_000.0

    orders: list[DesiredOrder] = []
    for level in config.quote_levels:
        spread = base_half_spread * level.spread_multiplier
        bid_price = truncate_float(mid_price - spread, price_decimals, False)
        ask_price = truncate_float(mid_price + spread, price_decimals, False)

        notional = config.notional_per_side * level.size_multiplier
        raw_bid = 0.0 if position_size >= max_long else _size_for(notional, bid_price)
        raw_ask = 0.0 if position_size <= -max_short else _size_for(notional, ask_price)

        bid_size = truncate_float(raw_bid, size_decimals, False)
        ask_size = truncate_float(raw_ask, size_decimals, False)

        logger.info(
            "Level %s: Bid: %s @ %s, Ask: %s @ %s (spread multiplier: %s, size multiplier: %s)",
            level.level,
            bid_size,
            bid_price,
            ask_size,
            ask_price,
            level.spread_multiplier,
            level.size_multiplier,
        )

        if bid_size > EPSILON:
            orders.append(DesiredOrder(is_bid=True, price=bid_price, size=bid_size))
        if ask_size > EPSILON:
            orders.append(DesiredOrder(is_bid=False, price=ask_price, size=ask_size))
    return orders


def reconcile_orders(
    desired: Sequence[DesiredOrder],
    active: Mapping[int, RestingOrder],
) -> OrderPlan:
    """Decide which resting orders to cancel and which quotes to place.

    A resting order on the same side is kept while its price is within two basis
    points and its size unchanged; otherwise it is cancelled and replaced.
    Resting orders on a side with no desired quote are cancelled.
    """
    plan = OrderPlan()
    cancelled: set[int] = set()

    def cancel(oid: int) -> None:
        if oid not in cancelled:
            cancelled.add(oid)
            plan.to_cancel.append(oid)

    for want in desired:
        existing = next((o for o in active.values() if o.is_bid == want.is_bid), None)
        if existing is None:
            plan.to_place.append(want)
            logger.info("Will place new %s order: %s@%s", want.side, want.size, want.price)
            continue

        price_changed = bps_diff(existing.price, want.price) > MAX_BPS_CHANGE
        size_changed = abs(existing.size - want.size) > EPSILON
        if price_changed or size_changed:
            cancel(existing.oid)
            plan.to_place.append(want)
            logger.info(
                "Will cancel and replace %s order: id=%s, from %s@%s to %s@%s",
                want.side,
                existing.oid,
                existing.size,
                existing.price,
                want.size,
                want.price,
            )
        else:
            logger.info(
                "Keeping existing %s order: id=%s, %s@%s",
                want.side,
                existing.oid,
                existing.size,
                existing.price,
            )

    wanted_sides = {want.is_bid for want in desired}
    for oid, order in active.items():
        if order.is_bid not in wanted_sides:
            cancel(oid)
            logger.info(
                "Will cancel %s order: id=%s, %s@%s", order.side, order.oid, order.size, order.price
            )
    return plan


def record_resting(
    active: MutableMapping[int, RestingOrder],
    placed: Sequence[DesiredOrder],
    resting_oids: Iterable[int | None],
) -> list[RestingOrder]:
    """Track orders the exchange reports as resting.

    ``resting_oids`` holds one entry per exchange status, in the order the
    requests were sent: the order id when it rests, None for any other status.
    """
    recorded: list[RestingOrder] = []
    for index, oid in enumerate(resting_oids):
        if oid is None:
            logger.warning("Order %d did not rest on the book", index)
            continue
        if index >= len(placed):
            logger.warning("Received order response with no matching details: oid=%s", oid)
            continue
        want = placed[index]
        order = RestingOrder(oid=oid, size=want.size, price=want.price, is_bid=want.is_bid)
        active[oid] = order
        recorded.append(order)
        logger.info(
            "Placed %s order: id=%s, size=%s, price=%s, tif=%s",
            order.side,
            oid,
            order.size,
            order.price,
            POST_ONLY_TIF,
        )
    return recorded