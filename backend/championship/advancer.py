"""Admin transitions: end-of-week advancement and full game reset."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .alerts import Notifier
from .analytics import PortfolioAnalytics
from .errors import InvalidInput
from .pricing import PricingEngine
from .store import LedgerStore

log = logging.getLogger("championship")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WeekAdvancer:
    def __init__(self, store: LedgerStore, pricing: PricingEngine, analytics: PortfolioAnalytics,
                 interest_rate: float = 0.03, notifier: Optional[Notifier] = None):
        self.store = store
        self.pricing = pricing
        self.analytics = analytics
        self.interest_rate = interest_rate
        self.notifier = notifier

    def advance(self) -> Dict[str, Any]:
        """
        One end-of-week transition, all inside a single atomic block:
          1. next_week = current_week + 1
          2. reprice every asset, history points tagged next_week
          3. bank_balance *= 1 + interest_rate for every student
          4. snapshot every student at new prices and post-interest balances,
             tagged with the pre-increment week
        The counter is written last so a failure leaves it untouched.
        """
        with self.store.atomic():
            week = self.store.get_current_week()
            next_week = week + 1
            log.info("Advancing week %d -> %d", week, next_week)

            assets = self.store.list_assets()
            prices = self.pricing.advance_prices(assets, next_week)

            self.store.apply_bank_interest(self.interest_rate)

            students = self.store.list_students()
            rows = self.analytics.valuate_all(students, self.store.list_holdings(), prices)
            ts = _now()
            for r in rows:
                # snapshots keep the pre-increment week; price history uses next_week
                self.store.append_snapshot(r["id"], week, r["totalValue"], r["profitLoss"], ts)

            self.store.set_current_week(next_week)

        log.info("Week %d done: %d assets repriced, %d students snapshotted", next_week, len(assets), len(students))
        if self.notifier is not None:
            self.notifier.notify("week_advanced", {"new_week": next_week})
        return {"new_week": next_week, "prices": prices}


def reset_game(store: LedgerStore, cfg, notifier: Optional[Notifier] = None) -> None:
    """Wipe students, lots and history; re-seed default assets, week 0 and the demo student."""
    with store.atomic():
        store.clear_all()
        store.set_current_week(0)
        seeds = cfg.market.default_assets
        for a in seeds:
            store.upsert_asset(a.symbol, a.name, a.price)
        for a in seeds:
            store.append_price_point(a.symbol, 0, a.price)

        demo = cfg.game.demo_student
        s = store.create_student(demo.name, demo.color, demo.cash_balance, demo.bank_balance)
        seed_px = {a.symbol: a.price for a in seeds}
        for h in demo.holdings:
            if h.symbol not in seed_px:
                raise InvalidInput(f"Demo holding {h.symbol} is not a default asset")
            store.create_holding(s.id, h.symbol, h.euro / seed_px[h.symbol], h.euro)
    log.info("Game reset: %d assets, demo student %r", len(seeds), demo.name)
    if notifier is not None:
        notifier.notify("reset", {})
