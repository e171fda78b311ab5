"""Market maker configuration, quoting parameters and per-symbol precision tables."""

from __future__ import annotations

import enum
import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

EPSILON = 1e-9

_U16_MAX = 0xFFFF
_U64_MAX = 0xFFFF_FFFF_FFFF_FFFF

_PRICE_DECIMALS = {
    "BTC": 0,
    "ETH": 2,
    "SOL": 3,
    "AVAX": 3,
    "MATIC": 4,
    "DOGE": 6,
    "SHIB": 8,
}
_DEFAULT_PRICE_DECIMALS = 2

_SIZE_DECIMALS = {
    "BTC": 8,
    "ETH": 6,
    "SOL": 4,
    "AVAX": 4,
    "MATIC": 2,
    "DOGE": 2,
    "SHIB": 0,
}
_DEFAULT_SIZE_DECIMALS = 6


class Mode(enum.Enum):
    """Service the process runs as."""

    SYMBOL_SCANNER = "SymbolScanner"
    MARKET_MAKER = "MarketMaker"
    CONFIG_SERVICE = "ConfigService"
    POSITION_MANAGER = "PositionManager"


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field `{name}` must be a number, got {value!r}")
    return float(value)


def _as_uint(value: Any, name: str, maximum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field `{name}` must be an unsigned integer, got {value!r}")
    if not 0 <= value <= maximum:
        raise ValueError(f"field `{name}` out of range: {value}")
    return value


def _as_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"field `{name}` must be a boolean, got {value!r}")
    return value


def _as_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field `{name}` must be a string, got {value!r}")
    return value


@dataclass
class QuoteLevel:
    """One quoting level; level 1 is closest to the mid price."""

    level: int
    spread_multiplier: float
    size_multiplier: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QuoteLevel:
        if not isinstance(data, Mapping):
            raise ValueError(f"quote level must be an object, got {data!r}")
        return cls(
            level=_as_uint(_require(data, "level"), "level", _U16_MAX),
            spread_multiplier=_as_float(
                _require(data, "spread_multiplier"), "spread_multiplier"
            ),
            size_multiplier=_as_float(
                _require(data, "size_multiplier"), "size_multiplier"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "spread_multiplier": self.spread_multiplier,
            "size_multiplier": self.size_multiplier,
        }


def _default_quote_levels() -> list[QuoteLevel]:
    return [QuoteLevel(level=1, spread_multiplier=1.0, size_multiplier=1.0)]


@dataclass
class MarketMakerConfig:
    """Per-symbol configuration of the market maker."""

    symbol: str
    daily_return_bps: int
    notional_per_side: float
    daily_pnl_stop_loss: float
    trailing_take_profit: float
    trailing_stop_loss: float
    hedge_only_mode: bool
    force_quote_refresh_interval: int
    max_long_usd: float
    max_short_usd: float
    enable_trading: bool = True
    quote_levels: list[QuoteLevel] = field(default_factory=_default_quote_levels)
    vault_address: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MarketMakerConfig:
        """Build a config from a decoded JSON object, raising ValueError on bad input."""
        if not isinstance(data, Mapping):
            raise ValueError(f"configuration must be an object, got {data!r}")

        if "quote_levels" in data:
            raw_levels = data["quote_levels"]
            if not isinstance(raw_levels, list):
                raise ValueError("field `quote_levels` must be a list")
            quote_levels = [QuoteLevel.from_dict(item) for item in raw_levels]
        else:
            quote_levels = _default_quote_levels()

        vault = data.get("vault_address")
        if vault is not None:
            vault = _as_str(vault, "vault_address")

        return cls(
            symbol=_as_str(_require(data, "symbol"), "symbol"),
            daily_return_bps=_as_uint(
                _require(data, "daily_return_bps"), "daily_return_bps", _U16_MAX
            ),
            notional_per_side=_as_float(
                _require(data, "notional_per_side"), "notional_per_side"
            ),
            daily_pnl_stop_loss=_as_float(
                _require(data, "daily_pnl_stop_loss"), "daily_pnl_stop_loss"
            ),
            trailing_take_profit=_as_float(
                _require(data, "trailing_take_profit"), "trailing_take_profit"
            ),
            trailing_stop_loss=_as_float(
                _require(data, "trailing_stop_loss"), "trailing_stop_loss"
            ),
            hedge_only_mode=_as_bool(_require(data, "hedge_only_mode"), "hedge_only_mode"),
            force_quote_refresh_interval=_as_uint(
                _require(data, "force_quote_refresh_interval"),
                "force_quote_refresh_interval",
                _U64_MAX,
            ),
            max_long_usd=_as_float(_require(data, "max_long_usd"), "max_long_usd"),
            max_short_usd=_as_float(_require(data, "max_short_usd"), "max_short_usd"),
            enable_trading=_as_bool(data.get("enable_trading", True), "enable_trading"),
            quote_levels=quote_levels,
            vault_address=vault,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "daily_return_bps": self.daily_return_bps,
            "notional_per_side": self.notional_per_side,
            "daily_pnl_stop_loss": self.daily_pnl_stop_loss,
            "trailing_take_profit": self.trailing_take_profit,
            "trailing_stop_loss": self.trailing_stop_loss,
            "hedge_only_mode": self.hedge_only_mode,
            "force_quote_refresh_interval": self.force_quote_refresh_interval,
            "max_long_usd": self.max_long_usd,
            "max_short_usd": self.max_short_usd,
            "enable_trading": self.enable_trading,
            "quote_levels": [level.to_dict() for level in self.quote_levels],
            "vault_address": self.vault_address,
        }

    @classmethod
    def from_json(cls, text: str | bytes) -> MarketMakerConfig:
        """Parse a JSON document; malformed JSON or fields raise ValueError."""
        return cls.from_dict(json.loads(text))

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass
class MarketMakerParams:
    """Quoting parameters derived from a config and shared with the main loop."""

    config: MarketMakerConfig
    half_spread: int
    target_liquidity: float
    max_position_size: float
    price_decimals: int
    last_quote_time: int = 0
    needs_refresh: bool = False

    @classmethod
    def from_config(cls, config: MarketMakerConfig) -> MarketMakerParams:
        return cls(
            config=config,
            half_spread=config.daily_return_bps // 365,
            target_liquidity=config.notional_per_side,
            max_position_size=calculate_max_position(config),
            price_decimals=price_decimals_for_symbol(config.symbol),
        )


def quote_levels_changed(a: Sequence[QuoteLevel], b: Sequence[QuoteLevel]) -> bool:
    """True if the two level lists differ in length, level number or multipliers."""
    if len(a) != len(b):
        return True
    return any(
        x.level != y.level
        or abs(x.spread_multiplier - y.spread_multiplier) > EPSILON
        or abs(x.size_multiplier - y.size_multiplier) > EPSILON
        for x, y in zip(a, b)
    )


def option_string_changed(a: str | None, b: str | None) -> bool:
    """True unless both are absent or both hold the same string."""
    return a != b


def config_changed(old: MarketMakerConfig, new: MarketMakerConfig) -> bool:
    """True if any quoting or risk parameter differs between two configs."""
    return (
        old.daily_return_bps != new.daily_return_bps
        or old.notional_per_side != new.notional_per_side
        or old.daily_pnl_stop_loss != new.daily_pnl_stop_loss
        or old.trailing_take_profit != new.trailing_take_profit
        or old.trailing_stop_loss != new.trailing_stop_loss
        or old.hedge_only_mode != new.hedge_only_mode
        or old.force_quote_refresh_interval != new.force_quote_refresh_interval
        or old.max_long_usd != new.max_long_usd
        or old.max_short_usd != new.max_short_usd
        or old.enable_trading != new.enable_trading
        or quote_levels_changed(old.quote_levels, new.quote_levels)
        or option_string_changed(old.vault_address, new.vault_address)
    )


def calculate_max_position(config: MarketMakerConfig) -> float:
    """Absolute position limit: zero in hedge-only mode, else the larger side limit."""
    if config.hedge_only_mode:
        return 0.0
    return max(config.max_long_usd, config.max_short_usd)


def price_decimals_for_symbol(symbol: str) -> int:
    """Number of decimal places used for prices of a symbol."""
    return _PRICE_DECIMALS.get(symbol, _DEFAULT_PRICE_DECIMALS)


def size_decimals_for_symbol(
    symbol: str, universe: Iterable[Mapping[str, Any]] | None
) -> int:
    """Size precision from exchange metadata (``name``/``szDecimals``), else a fallback."""
    for asset in universe or ():
        if asset.get("name") == symbol:
            return int(asset["szDecimals"])
    return _SIZE_DECIMALS.get(symbol, _DEFAULT_SIZE_DECIMALS)