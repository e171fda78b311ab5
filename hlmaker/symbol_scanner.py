"""Periodic scan of exchange symbols for price and 24h volume, published to Redis."""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

logger = logging.getLogger(__name__)

TOP_SYMBOLS_KEY = "top_symbols"
CANDLES_HASH_KEY = "symbol_candles"
CANDLE_INTERVAL = "1d"
DAY_MS = 24 * 60 * 60 * 1000
# Only the first asset of the exchange universe is scanned.
SCAN_LIMIT = 1


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


@dataclass
class SymbolMetrics:
    """Trading metrics of one symbol."""

    symbol: str
    volume_24h: float
    is_active: bool
    last_updated: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "volume_24h": self.volume_24h,
            "is_active": self.is_active,
            "last_updated": self.last_updated,
        }


@dataclass
class CandleData:
    """Most recent candle of a symbol along with derived volume and price."""

    time_open: int
    time_close: int
    coin: str
    candle_interval: str
    open: str
    close: str
    high: str
    low: str
    vlm: str
    num_trades: int
    volume_24h: float
    last_updated: int
    price: float

    @classmethod
    def from_snapshot(
        cls, raw: Mapping[str, Any], *, volume_24h: float, last_updated: int, price: float
    ) -> CandleData:
        """Build from an exchange candle snapshot (keys t, T, s, i, o, c, h, l, v, n)."""
        try:
            return cls(
                time_open=int(raw["t"]),
                time_close=int(raw["T"]),
                coin=str(raw["s"]),
                candle_interval=str(raw["i"]),
                open=str(raw["o"]),
                close=str(raw["c"]),
                high=str(raw["h"]),
                low=str(raw["l"]),
                vlm=str(raw["v"]),
                num_trades=int(raw["n"]),
                volume_24h=volume_24h,
                last_updated=last_updated,
                price=price,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed candle: {raw!r}") from exc

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


class RateLimiter:
    """Keeps successive calls at least ``interval`` seconds apart."""

    def __init__(
        self,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_call = clock()

    async def wait(self) -> float:
        """Sleep until the next call is allowed; returns the time slept."""
        elapsed = self._clock() - self._last_call
        slept = 0.0
        if elapsed < self.interval:
            slept = self.interval - elapsed
            logger.debug("Rate limiting: sleeping for %.3fs before next API call", slept)
            await self._sleep(slept)
        self._last_call = self._clock()
        return slept


def _by_volume_desc(a: SymbolMetrics, b: SymbolMetrics) -> int:
    if a.volume_24h > b.volume_24h:
        return -1
    if a.volume_24h < b.volume_24h:
        return 1
    return 0


def rank_top_symbols(
    metrics: Mapping[str, SymbolMetrics] | Iterable[SymbolMetrics], top_n: int
) -> list[SymbolMetrics]:
    """The ``top_n`` symbols by 24h volume, highest first."""
    items = list(metrics.values() if isinstance(metrics, Mapping) else metrics)
    items.sort(key=functools.cmp_to_key(_by_volume_desc))
    return items[:top_n]


async def update_redis_with_candles(
    redis_client: Any,
    symbol_metrics: Mapping[str, SymbolMetrics],
    candle_map: Mapping[str, CandleData],
    top_n_symbols: int,
) -> int:
    """Store the top symbols and latest candles; returns the candle hash size."""
    top_symbols = rank_top_symbols(symbol_metrics, top_n_symbols)
    logger.info("Top %d symbols by volume:", len(top_symbols))
    for rank, metric in enumerate(top_symbols, start=1):
        logger.info("  %d. %s - Volume: $%.2f", rank, metric.symbol, metric.volume_24h)

    await redis_client.set(TOP_SYMBOLS_KEY, _dumps([m.to_dict() for m in top_symbols]))

    for symbol, candle in candle_map.items():
        await redis_client.hset(CANDLES_HASH_KEY, symbol, _dumps(candle.to_dict()))

    hash_size = int(await redis_client.hlen(CANDLES_HASH_KEY))
    logger.info(
        "Updated metrics and candle data for %d symbols, stored %d total symbols in Redis hash",
        len(candle_map),
        hash_size,
    )
    return hash_size


class SymbolScanner:
    """Scans exchange symbols through a rate-limited info client."""

    def __init__(
        self,
        info_client: Any,
        redis_client: Any,
        metrics: MutableMapping[str, SymbolMetrics],
        scan_interval: float | timedelta,
        top_n_symbols: int,
    ) -> None:
        self.info_client = info_client
        self.redis_client = redis_client
        self.metrics = metrics
        self.scan_interval = _seconds(scan_interval)
        self.top_n_symbols = top_n_symbols
        self.rate_limiter = RateLimiter()

    async def start(self) -> None:
        """Scan forever, logging failures and waiting ``scan_interval`` between scans."""
        logger.info("Starting Symbol Scanner Service using REST APIs only")
        logger.info(
            "Monitoring top %d symbols with rate limit of 1 request per second",
            self.top_n_symbols,
        )
        while True:
            logger.info("Performing scheduled scan for symbol metrics")
            try:
                await self.scan_symbols()
            except Exception as exc:  # noqa: BLE001 - keep scanning after failures
                logger.error("Failed to scan symbols: %s", exc)
            await asyncio.sleep(self.scan_interval)

    async def _get_meta(self) -> Mapping[str, Any]:
        await self.rate_limiter.wait()
        return await self.info_client.meta()

    async def _get_all_mids(self) -> Mapping[str, str]:
        await self.rate_limiter.wait()
        return await self.info_client.all_mids()

    async def _get_candles(
        self, symbol: str, interval: str, start_time: int, end_time: int
    ) -> list[Mapping[str, Any]]:
        await self.rate_limiter.wait()
        return await self.info_client.candles_snapshot(symbol, interval, start_time, end_time)

    async def _scan_asset(
        self, symbol: str, price: float, timestamp: int
    ) -> tuple[float, CandleData | None]:
        now = _now_ms()
        volume_24h = 0.0
        latest: CandleData | None = None
        try:
            raw_candles = await self._get_candles(symbol, CANDLE_INTERVAL, now - DAY_MS, now)
            candles = [
                CandleData.from_snapshot(raw, volume_24h=0.0, last_updated=timestamp, price=price)
                for raw in raw_candles
            ]
        except Exception as exc:  # noqa: BLE001 - volume stays unknown
            logger.warning("Could not get candle data for %s: %s", symbol, exc)
            return volume_24h, latest

        for candle in candles:
            try:
                volume_24h += float(candle.vlm) * price
            except ValueError:
                pass
        if candles:
            latest = dataclasses.replace(candles[-1], volume_24h=volume_24h)
            logger.info("Found 24h volume for %s: $%.2f", symbol, volume_24h)
        return volume_24h, latest

    async def scan_symbols(self) -> dict[str, SymbolMetrics]:
        """Run one scan, update shared metrics and Redis; returns the new metrics."""
        meta = await self._get_meta()
        all_mids = await self._get_all_mids()

        universe = list(meta.get("universe", []))
        if not universe:
            raise ValueError("exchange metadata lists no assets")

        symbol_metrics: dict[str, SymbolMetrics] = {}
        candle_map: dict[str, CandleData] = {}
        timestamp = _now_ms()

        for asset in universe[:SCAN_LIMIT]:
            symbol = str(asset["name"])
            mid = all_mids.get(symbol)
            if mid is None:
                logger.warning("No price data available for %s, skipping", symbol)
                continue
            try:
                price = float(mid)
            except (TypeError, ValueError):
                price = 0.0

            volume_24h, latest = await self._scan_asset(symbol, price, timestamp)
            logger.info(
                "Processed symbol: %s - Price: %s, Volume 24h: %s", symbol, price, volume_24h
            )
            symbol_metrics[symbol] = SymbolMetrics(
                symbol=symbol, volume_24h=volume_24h, is_active=True, last_updated=timestamp
            )
            if latest is not None:
                candle_map[symbol] = latest

        self.metrics.clear()
        self.metrics.update(symbol_metrics)

        await update_redis_with_candles(
            self.redis_client, symbol_metrics, candle_map, self.top_n_symbols
        )
        return symbol_metrics