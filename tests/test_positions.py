import asyncio
import json
from datetime import timedelta

import pytest

from hlmaker.positions import (
    AssetPosition,
    Position,
    PositionManager,
    PositionSummary,
    summarize_positions,
)


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.streams = []
        self.fail = fail
        self.attempts = 0

    async def publish(self, channel, message):
        self.attempts += 1
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, message))

    async def xadd(self, name, fields):
        self.streams.append((name, fields))


def _long():
    return Position("ETH", 2.0, 100.0, 110.0, 20.0, 220.0)


def _short():
    return Position("BTC", -1.0, 50.0, 40.0, 10.0, 40.0)


def test_position_round_trip():
    pos = _long()
    assert Position.from_dict(pos.to_dict()) == pos


def test_position_from_dict_missing_field():
    data = _long().to_dict()
    del data["notional_usd"]
    with pytest.raises(ValueError):
        Position.from_dict(data)


def test_position_from_dict_bad_type():
    data = _long().to_dict()
    data["size"] = "big"
    with pytest.raises(ValueError):
        Position.from_dict(data)


def test_summarize_empty_is_none():
    assert summarize_positions({}, 1) is None


def test_summarize_splits_exposure():
    flat = Position("SOL", 0.0, 0.0, 0.0, 0.0, 5.0)
    long_pos, short_pos = _long(), _short()
    summary = summarize_positions({"ETH": long_pos, "BTC": short_pos, "SOL": flat}, 42)
    assert summary.timestamp == 42
    assert summary.total_long_exposure == long_pos.notional_usd
    assert summary.total_short_exposure == short_pos.notional_usd
    assert summary.total_pnl == pytest.approx(
        long_pos.unrealized_pnl + short_pos.unrealized_pnl
    )
    assert len(summary.positions) == 3


def test_summary_json_round_trip():
    summary = summarize_positions([_long(), _short()], 7)
    decoded = json.loads(summary.to_json())
    assert decoded["timestamp"] == 7
    assert [Position.from_dict(p) for p in decoded["positions"]] == summary.positions
    assert decoded["total_long_exposure"] == summary.total_long_exposure


def test_asset_position_parsing():
    asset = AssetPosition.from_dict(
        {"position": {"coin": "ETH", "szi": "-1.5", "entryPx": None, "unrealizedPnl": "x"}}
    )
    assert asset.coin == "ETH"
    assert asset.size == -1.5
    assert asset.entry_price == 0.0
    assert asset.pnl == 0.0


def test_asset_position_rejects_non_position():
    with pytest.raises(ValueError):
        AssetPosition.from_dict({"foo": 1})


@pytest.mark.asyncio
async def test_update_position_short():
    positions = {}
    manager = PositionManager(FakeRedis(), positions, timedelta(seconds=1), "chan")
    pos = await manager.update_position("ETH", -2.0, 60.0, 50.0)
    assert positions["ETH"] == pos
    assert pos.notional_usd == 100.0
    assert pos.unrealized_pnl == 20.0
    assert manager.update_interval == 1.0


@pytest.mark.asyncio
async def test_publish_nothing_when_empty():
    redis = FakeRedis()
    manager = PositionManager(redis, {}, 1, "chan")
    assert await manager.publish_position_updates() is None
    assert redis.published == [] and redis.streams == []


@pytest.mark.asyncio
async def test_publish_sends_channel_and_stream():
    redis = FakeRedis()
    manager = PositionManager(redis, {"ETH": _long()}, 1, "mm_position_updates")
    summary = await manager.publish_position_updates()
    assert isinstance(summary, PositionSummary)
    assert redis.published == [("mm_position_updates", summary.to_json())]
    assert redis.streams == [("position_history", {"data": summary.to_json()})]


@pytest.mark.asyncio
async def test_start_keeps_running_after_errors():
    redis = FakeRedis(fail=True)
    manager = PositionManager(redis, {"ETH": _long()}, 0.01, "chan")
    task = asyncio.create_task(manager.start())
    await asyncio.sleep(0.08)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert redis.attempts >= 2
    assert redis.published == []