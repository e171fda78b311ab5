"""Dynamic market maker configuration received over Redis pub/sub."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

from hlmaker.config import MarketMakerConfig

logger = logging.getLogger(__name__)

CONFIG_KEY_PREFIX = "config:"
MIN_REFRESH_INTERVAL_MS = 100


def _text(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def validate_config(config: MarketMakerConfig) -> None:
    """Raise ValueError if a configuration holds unreasonable values."""
    if not config.symbol:
        raise ValueError("Symbol cannot be empty")
    if config.daily_return_bps == 0:
        raise ValueError("Daily return BPS must be greater than 0")
    if config.notional_per_side <= 0.0:
        raise ValueError("Notional per side must be greater than 0")
    if config.daily_pnl_stop_loss <= 0.0:
        raise ValueError("Daily PNL stop loss must be greater than 0")
    if config.trailing_take_profit <= 0.0 or config.trailing_take_profit >= 1.0:
        raise ValueError("Trailing take profit must be between 0 and 1")
    if config.trailing_stop_loss <= 0.0 or config.trailing_stop_loss >= 1.0:
        raise ValueError("Trailing stop loss must be between 0 and 1")
    if config.force_quote_refresh_interval < MIN_REFRESH_INTERVAL_MS:
        raise ValueError("Force quote refresh interval must be at least 100ms")
    if config.max_long_usd < 0.0 or config.max_short_usd < 0.0:
        raise ValueError("Position limits cannot be negative")


class ConfigService:
    """Listens for configuration updates and keeps them in memory and in Redis."""

    def __init__(
        self,
        redis_client: Any,
        configs: MutableMapping[str, MarketMakerConfig],
        config_channel: str,
    ) -> None:
        self.redis_client = redis_client
        self.configs = configs
        self.config_channel = config_channel

    async def start(self) -> None:
        """Apply every configuration published on the channel until it closes."""
        logger.info("Starting Configuration Service")
        logger.info("Listening for configuration updates on channel: %s", self.config_channel)
        async with self.redis_client.pubsub() as pubsub:
            await pubsub.subscribe(self.config_channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.handle_payload(message["data"])

    async def handle_payload(self, payload: str | bytes) -> MarketMakerConfig | None:
        """Parse, validate and store one configuration; None if it was rejected."""
        text = _text(payload)
        logger.info("Received configuration update: %s", text)
        try:
            config = MarketMakerConfig.from_json(text)
        except ValueError as exc:
            logger.error("Failed to parse configuration: %s", exc)
            return None

        symbol = config.symbol
        try:
            validate_config(config)
        except ValueError as exc:
            logger.error("Invalid configuration for %s: %s", symbol, exc)
            return None

        logger.info("Updating configuration for %s", symbol)
        logger.info(
            "Configuration parameters: daily_return_bps=%s, notional_per_side=%s, interval=%s",
            config.daily_return_bps,
            config.notional_per_side,
            config.force_quote_refresh_interval,
        )
        self.configs[symbol] = config

        try:
            await self.redis_client.set(f"{CONFIG_KEY_PREFIX}{symbol}", text)
        except Exception as exc:  # noqa: BLE001 - persistence failure must not drop the update
            logger.error("Failed to store configuration in Redis: %s", exc)
        return config

    async def load_stored_configs(self) -> int:
        """Load every configuration persisted in Redis; returns how many were loaded."""
        logger.info("Loading stored configurations from Redis")
        keys = await self.redis_client.keys(f"{CONFIG_KEY_PREFIX}*")
        if not keys:
            logger.info("No stored configurations found")
            return 0

        loaded = 0
        for key in keys:
            raw = await self.redis_client.get(key)
            if raw is None:
                logger.error("Stored configuration %s disappeared", _text(key))
                continue
            try:
                config = MarketMakerConfig.from_json(_text(raw))
            except ValueError as exc:
                logger.error("Failed to parse stored configuration: %s", exc)
                continue
            self.configs[config.symbol] = config
            loaded += 1
            logger.info("Loaded configuration for %s", config.symbol)

        logger.info("Loaded %d stored configurations", len(self.configs))
        return loaded