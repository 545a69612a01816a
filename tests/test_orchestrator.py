"""End-to-end tests for the signal engine."""

import dataclasses
import json
from datetime import timedelta
from unittest import mock

import pytest

from quantumtrade.config import SystemConfig
from quantumtrade.data import (
    MockOptionsFlowProvider,
    OptionsFlowService,
    ProviderChain,
    QuoteCache,
    SyntheticQuoteSource,
    YFinanceProvider,
)
from quantumtrade.features.indicators import Pattern
from quantumtrade.ml import InMemoryModelStore, ScoringModel
from quantumtrade.orchestrator import SignalEngine, normalize_symbols
from quantumtrade.signals import Action

from conftest import FakeFlowProvider, FakeQuoteProvider, make_quote


@pytest.fixture
def config():
    config = SystemConfig()
    config.data.symbols = ["AAPL"]
    config.data.backfill_history = False
    return config


def _engine(config, providers, store=None, flow_records=None):
    chain = ProviderChain(providers, cache=QuoteCache(), synthetic=SyntheticQuoteSource(seed=1))
    flow = OptionsFlowService(provider=FakeFlowProvider(flow_records or []),
                              fallback=MockOptionsFlowProvider(seed=1))
    return SignalEngine(config, chain=chain, options_flow=flow,
                        model_store=store or InMemoryModelStore())


def test_normalize_symbols():
    assert normalize_symbols([" aapl", "TSLA", "", "aapl", None, "nvda "]) == ["AAPL", "TSLA", "NVDA"]


def test_cycle_with_flat_history(config):
    engine = _engine(config, [FakeQuoteProvider("fake", quote=make_quote())])
    engine.history.extend("AAPL", [100.0] * 5)

    result = engine.run_cycle(["AAPL"])

    ind = result.indicators["AAPL"]
    assert ind.rsi == 50.0
    assert ind.macd_histogram == 0.0
    assert ind.bollinger_position == 0.0
    assert ind.volume_ratio == pytest.approx(2.0)
    assert ind.pattern is Pattern.UNKNOWN
    assert all(r.action is not Action.HOLD for r in result.recommendations)
    assert result.skipped == []
    assert json.dumps(result.to_dict())


def test_cycle_appends_real_closes_only(config):
    engine = _engine(config, [FakeQuoteProvider("fake", quote=make_quote())])
    engine.run_cycle(["AAPL"])
    assert engine.history.get("AAPL") == [100.0]

    offline = SignalEngine(config, offline=True, seed=5)
    result = offline.run_cycle(["AAPL", "TSLA"])

    assert all(q.is_synthetic for q in result.quotes.values())
    assert offline.history.get("AAPL") == []
    assert set(result.indicators) == {"AAPL", "TSLA"}


def test_cached_quote_is_not_appended_twice(config):
    provider = FakeQuoteProvider("fake", quote=make_quote())
    engine = _engine(config, [provider])

    for _ in range(12):
        engine.run_cycle(["AAPL"])

    assert provider.calls == 1
    assert engine.history.get("AAPL") == [100.0]


def test_new_observation_is_appended_after_ttl(config, fake_clock):
    first = make_quote()
    provider = FakeQuoteProvider("fake", quote=first)
    chain = ProviderChain([provider], cache=QuoteCache(ttl_seconds=30, clock=fake_clock),
                          synthetic=SyntheticQuoteSource(seed=1))
    engine = SignalEngine(config, chain=chain, options_flow=OptionsFlowService(
        provider=FakeFlowProvider([]), fallback=MockOptionsFlowProvider(seed=1)),
        model_store=InMemoryModelStore())

    engine.run_cycle(["AAPL"])
    fake_clock.advance(31)
    engine.run_cycle(["AAPL"])
    provider.quote = dataclasses.replace(first, price=101.0,
                                         timestamp=first.timestamp + timedelta(minutes=1))
    fake_clock.advance(31)
    engine.run_cycle(["AAPL"])

    assert provider.calls == 3
    assert engine.history.get("AAPL") == [100.0, 101.0]


def test_cycle_uses_default_universe(config):
    config.data.symbols = ["spy", "QQQ"]
    engine = SignalEngine(config, offline=True, seed=2)

    result = engine.run_cycle()

    assert list(result.quotes) == ["SPY", "QQQ"]
    assert engine.cycle_count == 1


def test_bullish_history_produces_buy(config):
    # Choppy start (RSI 50), then a steady climb into a strong day on heavy volume
    closes = [100.0 + (i % 2) for i in range(15)] + [101.0 + i for i in range(20)]
    quote = make_quote(price=121.0, open=118.0, volume=3_000_000, average_volume=1_000_000)
    engine = _engine(config, [FakeQuoteProvider("fake", quote=quote)])
    engine.history.extend("AAPL", closes)

    result = engine.run_cycle(["AAPL"])

    assert [r.symbol for r in result.recommendations] == ["AAPL"]
    assert result.recommendations[0].action in (Action.BUY, Action.STRONG_BUY)
    assert result.recommendations[0].model_score is not None


def test_record_trade_trains_and_persists(config):
    store = InMemoryModelStore()
    engine = _engine(config, [FakeQuoteProvider("fake", quote=make_quote())], store=store)
    engine.run_cycle(["AAPL"])

    engine.record_trade("aapl", 25.0)

    assert engine.model.training_samples == 1
    assert json.loads(store.state)["training_samples"] == 1
    assert engine.memory.get_trades()[0].pattern is Pattern.UNKNOWN


def test_record_trade_requires_features(config):
    engine = _engine(config, [])
    with pytest.raises(ValueError):
        engine.record_trade("MSFT", 1.0)

    engine.record_trade("MSFT", -1.0, features={"rsi": 0.1}, pattern=Pattern.BEAR_FLAG)
    assert engine.memory.get_trades()[0].symbol == "MSFT"


def test_initialize_restores_model(config):
    trained = ScoringModel()
    trained.train({"rsi": 1.0}, 1)
    store = InMemoryModelStore(trained.serialize())

    engine = _engine(config, [], store=store)
    engine.initialize()

    assert engine.model.training_samples == 1
    assert engine.model.weights == pytest.approx(trained.weights)


def test_initialize_backfills_from_yfinance(config):
    config.data.backfill_history = True
    yahoo = YFinanceProvider()
    engine = _engine(config, [yahoo])

    with mock.patch.object(YFinanceProvider, "fetch_history", return_value=[10.0, 11.0, 12.0]) as fetch:
        engine.initialize(["AAPL"])

    fetch.assert_called_once_with("AAPL", days=config.data.backfill_days)
    assert engine.history.get("AAPL") == [10.0, 11.0, 12.0]


def test_backfill_failure_is_logged_not_raised(config):
    engine = _engine(config, [YFinanceProvider()])
    with mock.patch.object(YFinanceProvider, "fetch_history", side_effect=ConnectionError("down")):
        assert engine.backfill(["AAPL"]) == {}


def test_run_fixed_cycles(config):
    engine = SignalEngine(config, offline=True, seed=3)
    results = []

    engine.run(cycles=3, interval=0, on_result=results.append)

    assert engine.cycle_count == 3
    assert [r.cycle for r in results] == [1, 2, 3]
    assert not engine.running


def test_status(config):
    engine = SignalEngine(config, offline=True, seed=4)
    engine.run_cycle()

    status = engine.get_status()

    assert status["mode"] == "offline"
    assert status["cycles"] == 1
    assert status["data"]["synthetic_quotes"] == 1
    assert status["options_flow_fallback"] is True
    assert status["performance"]["total_trades"] == 0
    assert json.dumps(status)


def test_shutdown_saves_model(config):
    store = InMemoryModelStore()
    engine = _engine(config, [], store=store)
    engine.shutdown()

    assert store.state is not None
    assert not engine.running
