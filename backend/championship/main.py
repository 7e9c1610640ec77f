from __future__ import annotations

import os
import csv
import io
import logging
import threading
from contextlib import asynccontextmanager, contextmanager
from typing import List, Optional

import numpy as np
from fastapi import FastAPI, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Cfg, load_config
from .db import engine as default_engine, init_db, make_sessionmaker
from .store import LedgerStore
from .errors import ChampionshipError
from .alerts import Notifier
from .analytics import PortfolioAnalytics
from .pricing import PricingEngine
from .trading import TradingEngine
from .advancer import WeekAdvancer, reset_game
from .schemas import (
    AssetIn, AssetOut, StudentIn, StudentCreated, StudentOut, BuyIn, SellIn, BankIn,
    Ok, WeekAdvanced, StateOut, SnapshotOut, PricePointOut, Highlights, MarketWatchItem,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
log = logging.getLogger("championship")
if not log.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    log.addHandler(h)
log.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

STATIC_DIR = os.getenv("STATIC_DIR", "").strip()

# ---------------------------------------------------------------------------
# Per-request wiring
# ---------------------------------------------------------------------------

def get_store(request: Request):
    db = request.app.state.sessionmaker()
    try:
        yield LedgerStore(db)
    finally:
        db.close()

def _cfg(request: Request) -> Cfg:
    return request.app.state.cfg

def _pricing(request: Request, store: LedgerStore) -> PricingEngine:
    return PricingEngine.from_config(store, _cfg(request), rng=request.app.state.rng)

def _analytics(request: Request) -> PortfolioAnalytics:
    return PortfolioAnalytics(start_value=_cfg(request).game.start_value)

def _trading(request: Request, store: LedgerStore) -> TradingEngine:
    return TradingEngine(store, _pricing(request, store), request.app.state.notifier)

@contextmanager
def _writing(request: Request):
    # lock released first, then queued events go out
    with request.app.state.notifier.deferred():
        with request.app.state.lock:
            yield

def _ranked_students(request: Request, store: LedgerStore) -> list[dict]:
    # one lock-held pass so holdings are never valued against half-updated prices
    with request.app.state.lock:
        students = store.list_students()
        holdings = store.list_holdings()
        prices = {a.symbol: a.price for a in store.list_assets()}
    pa = _analytics(request)
    return pa.rank_students(pa.valuate_all(students, holdings, prices))

# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:

    # ---- Assets ----

    @app.get("/api/assets", response_model=list[AssetOut])
    def list_assets(store: LedgerStore = Depends(get_store)):
        return [a.model_dump() for a in store.list_assets()]

    @app.post("/api/assets", response_model=Ok)
    def add_asset(body: AssetIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request):
            asset = _pricing(request, store).add_asset(body.symbol, body.name, body.price)
        request.app.state.notifier.notify("asset_added", {"symbol": asset.symbol})
        return Ok()

    # ---- State / config ----

    @app.get("/api/state", response_model=StateOut)
    def get_state(store: LedgerStore = Depends(get_store)):
        return StateOut(current_week=store.get_current_week())

    @app.get("/api/config")
    def get_config(request: Request):
        return _cfg(request).model_dump()

    # ---- Students ----

    @app.get("/api/students", response_model=list[StudentOut])
    def list_students(request: Request, store: LedgerStore = Depends(get_store)):
        return _ranked_students(request, store)

    @app.post("/api/students", response_model=StudentCreated)
    def add_student(body: StudentIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request), store.atomic():
            s = store.create_student(body.name, body.color, cash_balance=_cfg(request).game.start_value)
        log.info("Student %d (%s) joined", s.id, s.name)
        request.app.state.notifier.notify("student_added", {"student_id": s.id})
        return StudentCreated(id=s.id)

    @app.get("/api/highlights", response_model=Highlights)
    def highlights(request: Request, store: LedgerStore = Depends(get_store)):
        return PortfolioAnalytics.highlights(_ranked_students(request, store))

    # ---- Trading ----

    @app.post("/api/investments/buy", response_model=Ok)
    def buy(body: BuyIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request):
            _trading(request, store).buy(body.studentId, body.symbol, body.amountInEuro)
        return Ok()

    @app.post("/api/investments/sell", response_model=Ok)
    def sell(body: SellIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request):
            _trading(request, store).sell(body.studentId, body.investmentId)
        return Ok()

    # ---- Bank ----

    @app.post("/api/bank/deposit", response_model=Ok)
    def deposit(body: BankIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request):
            _trading(request, store).deposit_to_bank(body.studentId, body.amount)
        return Ok()

    @app.post("/api/bank/withdraw", response_model=Ok)
    def withdraw(body: BankIn, request: Request, store: LedgerStore = Depends(get_store)):
        with _writing(request):
            _trading(request, store).withdraw_from_bank(body.studentId, body.amount)
        return Ok()

    # ---- Admin ----

    @app.post("/api/admin/next-week", response_model=WeekAdvanced)
    def next_week(request: Request, store: LedgerStore = Depends(get_store)):
        log.info("Received request to advance week")
        adv = WeekAdvancer(store, _pricing(request, store), _analytics(request),
                           interest_rate=_cfg(request).bank.weekly_interest,
                           notifier=request.app.state.notifier)
        with _writing(request):
            out = adv.advance()
        return WeekAdvanced(new_week=out["new_week"])

    @app.post("/api/admin/reset", response_model=Ok)
    def reset(request: Request, store: LedgerStore = Depends(get_store)):
        log.info("Received request to reset app")
        with _writing(request):
            reset_game(store, _cfg(request), request.app.state.notifier)
        return Ok()

    # ---- History ----

    @app.get("/api/history", response_model=list[SnapshotOut])
    def history(store: LedgerStore = Depends(get_store)):
        return [s.model_dump() for s in store.list_snapshots()]

    @app.get("/api/history/chart")
    def history_chart(store: LedgerStore = Depends(get_store)):
        return PortfolioAnalytics.history_chart(store.list_snapshots())

    @app.get("/api/history.csv")
    def history_csv(store: LedgerStore = Depends(get_store)):
        buf = io.StringIO()
        w = csv.writer(buf)
        w.writerow(["student_id", "week_number", "total_value", "profit_loss", "timestamp"])
        for s in store.list_snapshots():
            w.writerow([s.student_id, s.week_number, s.total_value, s.profit_loss, s.timestamp])
        return Response(content=buf.getvalue(), media_type="text/csv")

    @app.get("/api/market/history", response_model=list[PricePointOut])
    def market_history(symbol: Optional[str] = None, store: LedgerStore = Depends(get_store)):
        return [p.model_dump() for p in store.list_price_history(symbol)]

    @app.get("/api/market/watch", response_model=List[MarketWatchItem])
    def market_watch(store: LedgerStore = Depends(get_store)):
        return PortfolioAnalytics.market_watch(store.list_price_history())

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ChampionshipError)
    async def _domain_error(request: Request, exc: ChampionshipError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            log.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(SQLAlchemyError)
    async def _db_error(request: Request, exc: SQLAlchemyError):
        log.exception("%s %s storage failure", request.method, request.url.path)
        return JSONResponse({"error": str(exc) or "Internal Server Error"}, status_code=500)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()]
        return JSONResponse({"error": f"Invalid or missing fields: {', '.join(fields)}"}, status_code=400)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        log.exception("%s %s crashed", request.method, request.url.path)
        return JSONResponse({"error": str(exc) or "Internal Server Error"}, status_code=500)

    # ---- Friendlier JSON 404 for /api/*
    @app.exception_handler(StarletteHTTPException)
    async def _friendly_404(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and request.url.path.startswith("/api/"):
            return JSONResponse({"error": "Not Found"}, status_code=404)
        return await http_exception_handler(request, exc)

# ---------------------------------------------------------------------------
# App & globals
# ---------------------------------------------------------------------------

def create_app(cfg: Cfg | None = None, bind: Engine | None = None, rng=None,
               notifier: Notifier | None = None, static_dir: str = STATIC_DIR) -> FastAPI:
    cfg = cfg or load_config()
    bind = bind or default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(bind, cfg)
        yield

    app = FastAPI(title="Crypto Championships", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_methods=["*"], allow_headers=["*"],
    )
    app.state.cfg = cfg
    app.state.sessionmaker = make_sessionmaker(bind)
    # one random source for the app's lifetime so a configured seed replays the same walk
    app.state.rng = rng if rng is not None else np.random.default_rng(cfg.market.seed)
    app.state.notifier = notifier or Notifier()
    # single writer: every mutating request runs under this lock
    app.state.lock = threading.RLock()

    _register_routes(app)
    _register_error_handlers(app)

    # Mount static LAST (so /api/* isn't shadowed)
    if static_dir and os.path.isdir(static_dir):
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    return app

app = create_app()
