import numpy as np
import pytest

from championship.config import Cfg, MarketCfg
from championship.errors import DuplicateSymbol, InvalidInput
from championship.pricing import PricingEngine
from conftest import FixedRandom


def test_unknown_symbol_has_no_price(pricing):
    assert pricing.get_current_price("NOPE-EUR") is None


def test_add_asset_seeds_history_at_current_week(store, pricing):
    store.set_current_week(4)
    asset = pricing.add_asset("LTC-EUR", None, 80.0)
    assert asset.name == "LTC-EUR"
    assert pricing.get_current_price("LTC-EUR") == 80.0
    [pt] = store.list_price_history("LTC-EUR")
    assert (pt.week_number, pt.price) == (4, 80.0)


def test_add_duplicate_leaves_no_trace(store, pricing):
    pricing.add_asset("LTC-EUR", "Litecoin", 80.0)
    with pytest.raises(DuplicateSymbol):
        pricing.add_asset("LTC-EUR", "Litecoin", 99.0)
    assert pricing.get_current_price("LTC-EUR") == 80.0
    assert len(store.list_price_history("LTC-EUR")) == 1


@pytest.mark.parametrize("symbol,price", [("", 10.0), ("X-EUR", 0.0), ("X-EUR", -1.0), ("X-EUR", float("nan"))])
def test_add_asset_rejects_bad_input(pricing, symbol, price):
    with pytest.raises(InvalidInput):
        pricing.add_asset(symbol, "x", price)


def test_advance_prices_applies_draws_in_order(store):
    with store.atomic():
        store.insert_asset("BTC-EUR", "Bitcoin", 100.0)
        store.insert_asset("ETH-EUR", "Ethereum", 50.0)
    engine = PricingEngine(store, FixedRandom(0.05, -0.10))
    with store.atomic():
        new = engine.advance_prices(store.list_assets(), 2)
    assert new["BTC-EUR"] == pytest.approx(105.0)
    assert new["ETH-EUR"] == pytest.approx(45.0)
    assert engine.get_current_price("BTC-EUR") == pytest.approx(105.0)
    hist = store.list_price_history()
    assert [(p.symbol, p.week_number) for p in hist] == [("BTC-EUR", 2), ("ETH-EUR", 2)]
    assert engine.rng.calls == [(-0.10, 0.10), (-0.10, 0.10)]


def test_draws_outside_band_are_clipped(store):
    engine = PricingEngine(store, FixedRandom(0.5))
    assert engine.next_price(100.0) == pytest.approx(110.0)


def test_price_never_drops_to_zero(store):
    engine = PricingEngine(store, FixedRandom(-1.0), max_change=1.0, min_price=0.01)
    assert engine.next_price(100.0) == 0.01


def test_default_source_stays_in_band(store):
    engine = PricingEngine(store, np.random.default_rng(7))
    draws = [engine.draw_change() for _ in range(500)]
    assert min(draws) >= -0.10
    assert max(draws) <= 0.10


def test_seeded_config_is_reproducible(store):
    cfg = Cfg(market=MarketCfg(seed=123))
    a = PricingEngine.from_config(store, cfg)
    b = PricingEngine.from_config(store, cfg)
    assert [a.draw_change() for _ in range(5)] == [b.draw_change() for _ in range(5)]
