from __future__ import annotations
import logging
import math
from typing import Dict, Iterable, Optional, Protocol

import numpy as np

from .errors import InvalidInput
from .schemas import AssetRecord
from .store import LedgerStore

log = logging.getLogger("championship")


class RandomSource(Protocol):
    def uniform(self, low: float, high: float) -> float: ...


class PricingEngine:
    """Current prices per symbol plus the weekly bounded random walk.

    The random source is injectable; anything with ``uniform(low, high)``
    works (a ``numpy.random.Generator`` by default).
    """

    def __init__(self, store: LedgerStore, rng: Optional[RandomSource] = None,
                 max_change: float = 0.10, min_price: float = 1e-8):
        self.store = store
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_change = max_change
        self.min_price = min_price

    @classmethod
    def from_config(cls, store: LedgerStore, cfg, rng: Optional[RandomSource] = None) -> "PricingEngine":
        m = cfg.market
        if rng is None:
            rng = np.random.default_rng(m.seed)
        return cls(store, rng, max_change=m.max_weekly_change, min_price=m.min_price)

    def get_current_price(self, symbol: str) -> Optional[float]:
        """Stored price for *symbol*, or None when the symbol is unknown."""
        a = self.store.get_asset(symbol)
        return a.price if a is not None else None

    def add_asset(self, symbol: str, name: str | None, price: float) -> AssetRecord:
        symbol = (symbol or "").strip()
        if not symbol:
            raise InvalidInput("Symbol and price required")
        if price is None or not math.isfinite(price) or price <= 0:
            raise InvalidInput("Price must be a positive number")
        with self.store.atomic():
            asset = self.store.insert_asset(symbol, name or symbol, float(price))
            # charts pick the asset up from the week it was introduced
            week = self.store.get_current_week()
            self.store.append_price_point(symbol, week, asset.price)
        log.info("Asset %s (%s) added at %.4f in week %d", symbol, asset.name, asset.price, week)
        return asset

    def draw_change(self) -> float:
        m = self.max_change
        return float(np.clip(self.rng.uniform(-m, m), -m, m))

    def next_price(self, price: float) -> float:
        return max(price * (1.0 + self.draw_change()), self.min_price)

    def advance_prices(self, assets: Iterable[AssetRecord], week_number: int) -> Dict[str, float]:
        """Reprice every asset and record one history point each at *week_number*.

        Must run inside the caller's atomic block.
        """
        new_prices: Dict[str, float] = {}
        for a in assets:
            px = self.next_price(a.price)
            self.store.set_price(a.symbol, px)
            self.store.append_price_point(a.symbol, week_number, px)
            new_prices[a.symbol] = px
        return new_prices
