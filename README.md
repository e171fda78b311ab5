# hlmaker

Building blocks for a quoting strategy, and asyncio services that use a Redis
client as their shared store and message bus.

The package has no runtime dependencies. The services take any asyncio Redis
client that you pass in, for example `redis.asyncio.Redis`. That library is
not installed with this package.

## Modules

### `hlmaker.config`

- `MarketMakerConfig` holds the configuration for one symbol.
  - `from_dict`, `from_json`, `to_dict` and `to_json` convert it to and from
    JSON.
  - Malformed or mistyped fields raise `ValueError`.
- `QuoteLevel` describes one level of the quote ladder.
- `MarketMakerParams.from_config` derives the quoting parameters from a config:
  - the half spread, which is `daily_return_bps // 365`;
  - the target liquidity;
  - the maximum position;
  - the price decimals.
- `config_changed`, `quote_levels_changed` and `option_string_changed` detect
  whether a configuration has changed.
- `calculate_max_position` returns 0 in hedge-only mode. Otherwise it returns
  the larger of `max_long_usd` and `max_short_usd`.
- `price_decimals_for_symbol` and `size_decimals_for_symbol` give per-symbol
  precision.
  - Both use fixed tables for BTC, ETH, SOL, AVAX, MATIC, DOGE and SHIB, with a
    default for other symbols.
  - For size decimals, an exchange `universe` list takes precedence when it is
    given (entries with `name` and `szDecimals`).
- `Mode` enumerates the service names `SymbolScanner`, `MarketMaker`,
  `ConfigService` and `PositionManager`.

### `hlmaker.orders`

- `truncate_float(value, decimals, round_up)` truncates a value to the given
  number of decimals. `bps_diff(x, y)` gives the difference between two values
  in whole basis points.
- `desired_orders(config, mid_price, position_size, price_decimals, size_decimals)`
  builds the bid and ask quotes for every quote level.
  - The half spread is `mid * daily_return_bps / 10000`, scaled by the level's
    spread multiplier.
  - The size is the level's notional divided by the quote price.
  - No bid is quoted at the long limit, and no ask at the short limit.
  - A mid price that is not positive raises `ValueError`.
- `reconcile_orders(desired, active)` returns an `OrderPlan` that lists the
  order ids to cancel (`to_cancel`) and the `DesiredOrder`s to place
  (`to_place`).
  - A resting order on the same side is kept while its price is within 2 bps
    and its size is unchanged. Otherwise it is cancelled and replaced.
  - A resting order on a side with no desired quote is cancelled.
- `record_resting(active, placed, resting_oids)` adds the orders the exchange
  reports as resting to the `active` map.
- `DesiredOrder.request(asset)` produces a post-only (`"Alo"`) limit order
  request as a dict.

### `hlmaker.positions`

- `Position` and `PositionSummary` are the position records.
- `summarize_positions` totals the PnL and the long and short exposure. It
  returns `None` when there are no positions.
- `AssetPosition` reads one entry of an exchange user-state `assetPositions`
  list.
- `PositionManager(redis_client, positions, update_interval, update_channel)`
  has two methods:
  - `update_position` records a position, with PnL `(current - entry) * size`.
  - `start` publishes a JSON summary to the channel at every interval and
    appends it to the `position_history` stream.

### `hlmaker.config_service`

- `validate_config` raises `ValueError` if any of the following hold:
  - the symbol is empty;
  - `daily_return_bps` is zero;
  - the notional or the daily stop loss is not positive;
  - a trailing limit lies outside the open range (0, 1);
  - the refresh interval is below 100 ms;
  - a position limit is negative.
- `ConfigService(redis_client, configs, config_channel)` manages the
  configurations:
  - `start` subscribes to the channel. For each message it calls
    `handle_payload`, which parses and validates the payload, stores it in
    `configs` and writes it to `config:<SYMBOL>`.
  - `load_stored_configs` reloads every `config:*` key.

### `hlmaker.symbol_scanner`

`SymbolScanner(info_client, redis_client, metrics, scan_interval, top_n_symbols)`
calls the exchange info client through a `RateLimiter` that allows one call per
second.

- The info client must provide these async methods:
  - `meta()`;
  - `all_mids()`;
  - `candles_snapshot(symbol, interval, start_ms, end_ms)`.
- Each scan takes only the first asset of the universe. For that asset it
  reads the mid price and the daily candles of the last 24 hours.
- Volume is computed as candle volume × price.
- `update_redis_with_candles` writes the results to Redis:
  - the top N symbols by volume go to `top_symbols`;
  - the latest candle goes to the `symbol_candles` hash.

## Example

```python
import asyncio
import redis.asyncio as redis

from hlmaker.config_service import ConfigService

async def main():
    client = redis.Redis.from_url("redis://localhost:6379")
    configs = {}
    service = ConfigService(client, configs, "mm_config")
    await service.load_stored_configs()
    await service.start()

asyncio.run(main())
```

An example configuration document:

```json
{
  "symbol": "ETH",
  "daily_return_bps": 20,
  "notional_per_side": 500.0,
  "daily_pnl_stop_loss": 100.0,
  "trailing_take_profit": 0.2,
  "trailing_stop_loss": 0.2,
  "hedge_only_mode": false,
  "force_quote_refresh_interval": 1000,
  "max_long_usd": 2000.0,
  "max_short_usd": 2000.0,
  "enable_trading": true,
  "quote_levels": [
    {"level": 1, "spread_multiplier": 1.0, "size_multiplier": 1.0}
  ],
  "vault_address": null
}
```

`enable_trading` defaults to `true`. `quote_levels` defaults to a single level
at 1.0x spread and 1.0x size.

## What it does not do

- The package has no command-line program. You start the services from your
  own asyncio code.
- It contains no exchange client. It does not sign or send orders itself, and
  it does not fetch market data itself. The quoting functions return plans,
  and the scanner uses whatever info client you pass in.
- It has no running market-making loop and no stop-loss or take-profit
  enforcement.

## Tests

```
pip install ".[test]"
pytest
```