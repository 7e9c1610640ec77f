import pytest
from fastapi.testclient import TestClient

from championship.config import Cfg
from championship.db import Base, make_engine, make_sessionmaker
from championship import models  # noqa: F401  registers tables
from championship.store import LedgerStore
from championship.alerts import Notifier
from championship.pricing import PricingEngine
from championship.analytics import PortfolioAnalytics
from championship.trading import TradingEngine
from championship.advancer import WeekAdvancer
from championship.main import create_app


class FixedRandom:
    """Replays a fixed list of draws, cycling when it runs out."""

    def __init__(self, *values):
        self.values = list(values) or [0.0]
        self.calls = []

    def uniform(self, low, high):
        v = self.values[len(self.calls) % len(self.values)]
        self.calls.append((low, high))
        return v


@pytest.fixture
def cfg():
    return Cfg()


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    s = make_sessionmaker(engine)()
    yield s
    s.close()


@pytest.fixture
def store(session):
    return LedgerStore(session)


@pytest.fixture
def rng():
    return FixedRandom(0.0)


@pytest.fixture
def notifier():
    return Notifier(webhook_url="")


@pytest.fixture
def events(notifier):
    seen = []
    notifier.subscribe(lambda event, payload: seen.append((event, payload)))
    return seen


@pytest.fixture
def pricing(store, rng):
    return PricingEngine(store, rng)


@pytest.fixture
def trading(store, pricing, notifier):
    return TradingEngine(store, pricing, notifier)


@pytest.fixture
def advancer(store, pricing, notifier):
    return WeekAdvancer(store, pricing, PortfolioAnalytics(), interest_rate=0.03, notifier=notifier)


@pytest.fixture
def btc_market(store):
    """Week 1, one asset BTC-EUR at 100 and one fresh student with 1000 cash."""
    with store.atomic():
        store.set_current_week(1)
        store.insert_asset("BTC-EUR", "Bitcoin", 100.0)
        store.append_price_point("BTC-EUR", 1, 100.0)
        student = store.create_student("Ada", "#ff0000")
    return student


@pytest.fixture
def client(engine, cfg, rng, notifier):
    app = create_app(cfg, bind=engine, rng=rng, notifier=notifier, static_dir="")
    with TestClient(app) as c:
        yield c
