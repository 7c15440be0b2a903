from datetime import timedelta

import pytest

from market_signals.core.custom_types import (
    AggregationConfig,
    DataSourceType,
    RateLimit,
    SourceConfiguration,
    TimeWindow,
)
from market_signals.core.timeutils import utcnow
from market_signals.sources import aggregator as aggregator_mod
from market_signals.sources.aggregator import DataAggregator
from market_signals.sources.base import DataSource, MockDataSource


class DummySource(DataSource):
    def __init__(self, source_type, points=None, available=True, fetch_error=None, available_error=None):
        super().__init__(source_type)
        self.points = points or []
        self.available = available
        self.fetch_error = fetch_error
        self.available_error = available_error
        self.fetch_calls = 0
        self.last_config = None

    async def fetch(self, config):
        self.fetch_calls += 1
        self.last_config = config
        if self.fetch_error:
            raise self.fetch_error
        return list(self.points)

    async def is_available(self):
        if self.available_error:
            raise self.available_error
        return self.available


def _window(hours=24):
    end = utcnow()
    return TimeWindow(start=end - timedelta(hours=hours), end=end)


def _cfg(*sources, **kw):
    return AggregationConfig(sources=list(sources), time_window=kw.pop("time_window", _window()), **kw)


def _register(agg, source, **cfg):
    agg.register_source(source, SourceConfiguration(source_type=source.source_type, **cfg))
    return source


@pytest.mark.asyncio
async def test_failing_availability_is_isolated():
    agg = DataAggregator()
    _register(agg, DummySource(DataSourceType.TWITTER, available_error=RuntimeError("boom")))
    _register(agg, MockDataSource(DataSourceType.REDDIT, count=7, seed=1))

    points = await agg.aggregate(_cfg(DataSourceType.TWITTER, DataSourceType.REDDIT))
    assert len(points) == 7
    assert {p.source_type for p in points} == {DataSourceType.REDDIT}


@pytest.mark.asyncio
async def test_failing_fetch_is_isolated(point_factory):
    agg = DataAggregator()
    _register(agg, DummySource(DataSourceType.NEWS, fetch_error=ValueError("bad payload")))
    good = _register(agg, DummySource(DataSourceType.EDGAR, points=[
        point_factory(i, source_type=DataSourceType.EDGAR) for i in range(3)
    ]))

    points = await agg.aggregate(_cfg(DataSourceType.NEWS, DataSourceType.EDGAR))
    assert [p.id for p in points] == ["p0", "p1", "p2"]
    assert good.fetch_calls == 1


@pytest.mark.asyncio
async def test_unavailable_disabled_and_unregistered_sources_skipped(point_factory):
    agg = DataAggregator()
    down = _register(agg, DummySource(DataSourceType.REDDIT, points=[point_factory(1)], available=False))
    off = _register(agg, DummySource(DataSourceType.TWITTER, points=[point_factory(2)]), enabled=False)

    points = await agg.aggregate(_cfg(DataSourceType.REDDIT, DataSourceType.TWITTER, DataSourceType.USPTO))
    assert points == []
    assert down.fetch_calls == 0
    assert off.fetch_calls == 0


@pytest.mark.asyncio
async def test_points_outside_window_are_dropped(point_factory):
    now = utcnow()
    inside = point_factory(1, anchor=now - timedelta(hours=1))
    outside = point_factory(2, anchor=now - timedelta(hours=30))
    agg = DataAggregator()
    _register(agg, DummySource(DataSourceType.REDDIT, points=[inside, outside]))

    points = await agg.aggregate(_cfg(DataSourceType.REDDIT))
    assert [p.id for p in points] == ["p1"]


@pytest.mark.asyncio
async def test_dict_payloads_validated_and_malformed_dropped():
    ts = utcnow() - timedelta(minutes=10)
    raw = [
        {"id": "ok", "source_type": "news", "content": "fine", "timestamp": ts.isoformat(), "sentiment": 0.1},
        {"id": "bad", "source_type": "news", "content": "oops", "timestamp": ts.isoformat(), "sentiment": 4.0},
    ]
    agg = DataAggregator()
    _register(agg, DummySource(DataSourceType.NEWS, points=raw))

    points = await agg.aggregate(_cfg(DataSourceType.NEWS))
    assert [p.id for p in points] == ["ok"]


@pytest.mark.asyncio
async def test_fetch_config_carries_request_filters(point_factory):
    agg = DataAggregator()
    src = _register(agg, DummySource(DataSourceType.REDDIT, points=[point_factory(1)]), config={"subreddit": "tech"})
    cfg = _cfg(DataSourceType.REDDIT, keywords=["ai"], entities=["NVDA"])

    await agg.aggregate(cfg)
    assert src.last_config["subreddit"] == "tech"
    assert src.last_config["keywords"] == ["ai"]
    assert src.last_config["entities"] == ["NVDA"]
    assert src.last_config["time_window"] == cfg.time_window


@pytest.mark.asyncio
async def test_cache_hit_within_ttl(point_factory):
    agg = DataAggregator(cache_ttl_sec=300)
    src = _register(agg, DummySource(DataSourceType.REDDIT, points=[point_factory(1)]))
    cfg = _cfg(DataSourceType.REDDIT)

    first = await agg.aggregate(cfg)
    second = await agg.aggregate(cfg)
    assert first == second
    assert src.fetch_calls == 1
    assert agg.get_statistics()["cache_size"] == 1

    agg.clear_cache()
    await agg.aggregate(cfg)
    assert src.fetch_calls == 2


@pytest.mark.asyncio
async def test_expired_cache_refetches(point_factory):
    agg = DataAggregator(cache_ttl_sec=0)
    src = _register(agg, DummySource(DataSourceType.REDDIT, points=[point_factory(1)]))
    cfg = _cfg(DataSourceType.REDDIT)

    await agg.aggregate(cfg)
    await agg.aggregate(cfg)
    assert src.fetch_calls == 2


def test_cache_key_ignores_source_and_keyword_order():
    window = _window()
    a = _cfg(DataSourceType.REDDIT, DataSourceType.NEWS, time_window=window, keywords=["b", "a"])
    b = _cfg(DataSourceType.NEWS, DataSourceType.REDDIT, time_window=window, keywords=["a", "b"])
    c = _cfg(DataSourceType.NEWS, DataSourceType.REDDIT, time_window=window)
    assert aggregator_mod._cache_key(a) == aggregator_mod._cache_key(b)
    assert aggregator_mod._cache_key(a) != aggregator_mod._cache_key(c)


@pytest.mark.asyncio
async def test_rate_limit_delays_each_fetch(monkeypatch, point_factory):
    delays = []

    async def fake_sleep(sec):
        delays.append(sec)

    monkeypatch.setattr(aggregator_mod.asyncio, "sleep", fake_sleep)
    agg = DataAggregator()
    _register(agg, DummySource(DataSourceType.REDDIT, points=[point_factory(1)]),
              rate_limit=RateLimit(max_requests=10, window_ms=1000))
    _register(agg, DummySource(DataSourceType.NEWS, points=[point_factory(2)]))

    points = await agg.aggregate(_cfg(DataSourceType.REDDIT, DataSourceType.NEWS))
    assert len(points) == 2
    assert delays == [pytest.approx(0.1)]


def test_registry_toggle_and_update():
    agg = DataAggregator()
    _register(agg, MockDataSource(DataSourceType.REDDIT), config={"limit": 5})

    assert agg.toggle_source(DataSourceType.REDDIT, False) is True
    assert agg.get_source_configuration(DataSourceType.REDDIT).enabled is False
    assert agg.toggle_source(DataSourceType.USPTO, True) is False

    assert agg.update_source_configuration(DataSourceType.REDDIT, {"config": {"limit": 9}}) is True
    updated = agg.get_source_configuration(DataSourceType.REDDIT)
    assert updated.config == {"limit": 9}
    assert updated.enabled is False

    assert agg.update_source_configuration(DataSourceType.USPTO, {"enabled": True}) is False
    assert agg.update_source_configuration(
        DataSourceType.REDDIT, {"rate_limit": {"max_requests": 0, "window_ms": 10}}
    ) is False
    assert len(agg.get_all_source_configurations()) == 1


def test_reregistering_overwrites():
    agg = DataAggregator()
    _register(agg, MockDataSource(DataSourceType.REDDIT), enabled=True)
    _register(agg, MockDataSource(DataSourceType.REDDIT), enabled=False)
    stats = agg.get_statistics()
    assert stats["total_sources"] == 1
    assert stats["enabled_sources"] == 0


@pytest.mark.asyncio
async def test_sources_health_maps_errors_to_false():
    agg = DataAggregator()
    _register(agg, MockDataSource(DataSourceType.REDDIT))
    _register(agg, DummySource(DataSourceType.TWITTER, available=False))
    _register(agg, DummySource(DataSourceType.NEWS, available_error=ConnectionError("down")))

    health = await agg.check_sources_health()
    assert health == {
        DataSourceType.REDDIT: True,
        DataSourceType.TWITTER: False,
        DataSourceType.NEWS: False,
    }


@pytest.mark.asyncio
async def test_mock_source_is_repeatable_with_seed():
    a = await MockDataSource(DataSourceType.NEWS, seed=42).fetch({})
    b = await MockDataSource(DataSourceType.NEWS, seed=42).fetch({})
    assert 5 <= len(a) <= 14
    assert [p.id for p in a] == [p.id for p in b]
    assert all(p.entities == ["entity1", "entity2"] for p in a)
