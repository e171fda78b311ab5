"""Position records, aggregated summaries and the service that publishes them."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

logger = logging.getLogger(__name__)

POSITION_HISTORY_STREAM = "position_history"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _number(data: Mapping[str, Any], key: str) -> float:
    try:
        value = data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field `{key}` must be a number, got {value!r}")
    return float(value)


def _parse_or_zero(text: str | None) -> float:
    """Parse a decimal string as the exchange sends it; anything unparsable is 0.0."""
    if text is None:
        return 0.0
    try:
        return float(text)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class Position:
    """Current position in one symbol."""

    symbol: str
    size: float = 0.0
    entry_price: float = 0.0
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    notional_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "size": self.size,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "notional_usd": self.notional_usd,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Position:
        """Build a position from a decoded JSON object, raising ValueError on bad input."""
        if not isinstance(data, Mapping):
            raise ValueError(f"position must be an object, got {data!r}")
        symbol = data.get("symbol")
        if not isinstance(symbol, str):
            raise ValueError(f"field `symbol` must be a string, got {symbol!r}")
        return cls(
            symbol=symbol,
            size=_number(data, "size"),
            entry_price=_number(data, "entry_price"),
            current_price=_number(data, "current_price"),
            unrealized_pnl=_number(data, "unrealized_pnl"),
            notional_usd=_number(data, "notional_usd"),
        )


@dataclass(frozen=True)
class AssetPosition:
    """One entry of the exchange's user-state ``assetPositions`` list."""

    coin: str
    szi: str
    entry_px: str | None
    unrealized_pnl: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AssetPosition:
        """Accept either the wrapped ``{"position": {...}}`` form or the inner object."""
        inner = data.get("position", data)
        if not isinstance(inner, Mapping) or "coin" not in inner:
            raise ValueError(f"not an asset position: {data!r}")
        return cls(
            coin=str(inner["coin"]),
            szi=str(inner.get("szi", "")),
            entry_px=inner.get("entryPx"),
            unrealized_pnl=str(inner.get("unrealizedPnl", "")),
        )

    @property
    def size(self) -> float:
        return _parse_or_zero(self.szi)

    @property
    def entry_price(self) -> float:
        return _parse_or_zero(self.entry_px)

    @property
    def pnl(self) -> float:
        return _parse_or_zero(self.unrealized_pnl)


@dataclass
class PositionSummary:
    """Snapshot of all positions with aggregated exposure."""

    timestamp: int
    positions: list[Position] = field(default_factory=list)
    total_pnl: float = 0.0
    total_long_exposure: float = 0.0
    total_short_exposure: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "positions": [p.to_dict() for p in self.positions],
            "total_pnl": self.total_pnl,
            "total_long_exposure": self.total_long_exposure,
            "total_short_exposure": self.total_short_exposure,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


def summarize_positions(
    positions: Mapping[str, Position] | Iterable[Position],
    timestamp: int | None = None,
) -> PositionSummary | None:
    """Aggregate positions into a summary, or None when there are none."""
    items = list(positions.values() if isinstance(positions, Mapping) else positions)
    if not items:
        return None
    long_exposure = sum(p.notional_usd for p in items if p.size > 0.0)
    short_exposure = sum(p.notional_usd for p in items if p.size < 0.0)
    return PositionSummary(
        timestamp=_now_ms() if timestamp is None else timestamp,
        positions=items,
        total_pnl=sum(p.unrealized_pnl for p in items),
        total_long_exposure=long_exposure,
        total_short_exposure=short_exposure,
    )


class PositionManager:
    """Periodically publishes position summaries to a Redis channel and stream."""

    def __init__(
        self,
        redis_client: Any,
        positions: MutableMapping[str, Position],
        update_interval: float | timedelta,
        update_channel: str,
    ) -> None:
        self.redis_client = redis_client
        self.positions = positions
        if isinstance(update_interval, timedelta):
            update_interval = update_interval.total_seconds()
        self.update_interval = float(update_interval)
        self.update_channel = update_channel

    async def start(self) -> None:
        """Publish updates forever, logging failures and carrying on."""
        logger.info("Starting Position Manager")
        logger.info(
            "Publishing position updates every %ss to channel: %s",
            self.update_interval,
            self.update_channel,
        )
        while True:
            try:
                await self.publish_position_updates()
            except Exception as exc:  # noqa: BLE001 - the loop must survive Redis errors
                logger.error("Failed to publish position updates: %s", exc)
            await asyncio.sleep(self.update_interval)

    async def publish_position_updates(self) -> PositionSummary | None:
        """Publish one summary; returns it, or None when there are no positions."""
        summary = summarize_positions(dict(self.positions))
        if summary is None:
            return None
        payload = summary.to_json()
        await self.redis_client.publish(self.update_channel, payload)
        await self.redis_client.xadd(POSITION_HISTORY_STREAM, {"data": payload})
        logger.debug("Published position update with %d positions", len(summary.positions))
        return summary

    async def update_position(
        self,
        symbol: str,
        size: float,
        entry_price: float,
        current_price: float,
    ) -> Position:
        """Record a position, deriving its PnL and notional value."""
        position = Position(
            symbol=symbol,
            size=size,
            entry_price=entry_price,
            current_price=current_price,
            unrealized_pnl=(current_price - entry_price) * size,
            notional_usd=abs(current_price) * abs(size),
        )
        self.positions[symbol] = position
        return position