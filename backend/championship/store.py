"""Ledger store: the only place rows are read from or written to.

Everything handed out of here is a frozen pydantic record, never a live ORM
row, so callers cannot mutate persisted state behind the store's back.
Multi-row writes go through ``atomic()``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .errors import DuplicateSymbol, InternalFailure, NotFound
from .models import Asset, AppState, Holding, PriceHistory, Student, WeeklySnapshot
from .schemas import AssetRecord, HoldingRecord, PricePoint, SnapshotRecord, StudentRecord

log = logging.getLogger("championship")

R = TypeVar("R", bound=BaseModel)

CURRENT_WEEK_KEY = "current_week"


def _parse(record: Type[R], row) -> R:
    try:
        return record.model_validate(row)
    except ValidationError as e:
        raise InternalFailure(f"malformed {record.__name__} row: {e}") from e


class LedgerStore:
    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["LedgerStore"]:
        """All writes inside the block commit together or not at all.

        Nested blocks fold into the outermost one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        s = self.session
        self._depth = 1
        try:
            if s.in_transaction():
                # earlier reads already opened a transaction; adopt it
                try:
                    yield self
                except BaseException:
                    s.rollback()
                    raise
                s.commit()
            else:
                with s.begin():
                    yield self
        finally:
            self._depth = 0

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    def create_student(self, name: str, color: str, cash_balance: float = 1000.0,
                       bank_balance: float = 0.0) -> StudentRecord:
        row = Student(name=name, color=color, cash_balance=cash_balance, bank_balance=bank_balance)
        self.session.add(row)
        self.session.flush()
        return _parse(StudentRecord, row)

    def list_students(self) -> list[StudentRecord]:
        rows = self.session.scalars(select(Student).order_by(Student.id)).all()
        return [_parse(StudentRecord, r) for r in rows]

    def get_student(self, student_id: int) -> Optional[StudentRecord]:
        row = self.session.get(Student, student_id)
        return _parse(StudentRecord, row) if row is not None else None

    def set_balances(self, student_id: int, *, cash_balance: float | None = None,
                     bank_balance: float | None = None) -> StudentRecord:
        row = self.session.get(Student, student_id)
        if row is None:
            raise NotFound("Student not found")
        if cash_balance is not None:
            row.cash_balance = cash_balance
        if bank_balance is not None:
            row.bank_balance = bank_balance
        self.session.flush()
        return _parse(StudentRecord, row)

    def apply_bank_interest(self, rate: float) -> None:
        self.session.execute(
            update(Student)
            .values(bank_balance=Student.bank_balance * (1.0 + rate))
            .execution_options(synchronize_session=False)
        )
        # bulk UPDATE bypasses the identity map
        self.session.expire_all()

    # ------------------------------------------------------------------
    # Holdings
    # ------------------------------------------------------------------

    def create_holding(self, student_id: int, symbol: str, amount: float, cost_basis: float) -> HoldingRecord:
        row = Holding(student_id=student_id, symbol=symbol, amount=amount, cost_basis=cost_basis)
        self.session.add(row)
        self.session.flush()
        return _parse(HoldingRecord, row)

    def get_holding(self, holding_id: int) -> Optional[HoldingRecord]:
        row = self.session.get(Holding, holding_id)
        return _parse(HoldingRecord, row) if row is not None else None

    def delete_holding(self, holding_id: int) -> None:
        res = self.session.execute(delete(Holding).where(Holding.id == holding_id))
        if res.rowcount == 0:
            raise NotFound("Investment not found")

    def list_holdings(self, student_id: int | None = None) -> list[HoldingRecord]:
        q = select(Holding).order_by(Holding.id)
        if student_id is not None:
            q = q.where(Holding.student_id == student_id)
        return [_parse(HoldingRecord, r) for r in self.session.scalars(q).all()]

    # ------------------------------------------------------------------
    # Assets & prices
    # ------------------------------------------------------------------

    def get_asset(self, symbol: str) -> Optional[AssetRecord]:
        row = self.session.get(Asset, symbol)
        return _parse(AssetRecord, row) if row is not None else None

    def list_assets(self) -> list[AssetRecord]:
        return [_parse(AssetRecord, r) for r in self.session.scalars(select(Asset)).all()]

    def insert_asset(self, symbol: str, name: str, price: float) -> AssetRecord:
        if self.session.get(Asset, symbol) is not None:
            raise DuplicateSymbol(f"Asset {symbol} already exists")
        row = Asset(symbol=symbol, name=name, price=price)
        self.session.add(row)
        self.session.flush()
        return _parse(AssetRecord, row)

    def upsert_asset(self, symbol: str, name: str, price: float) -> AssetRecord:
        row = self.session.get(Asset, symbol)
        if row is None:
            row = Asset(symbol=symbol, name=name, price=price)
            self.session.add(row)
        else:
            row.name = name
            row.price = price
        self.session.flush()
        return _parse(AssetRecord, row)

    def set_price(self, symbol: str, price: float) -> AssetRecord:
        row = self.session.get(Asset, symbol)
        if row is None:
            raise NotFound(f"Unknown symbol {symbol}")
        row.price = price
        self.session.flush()
        return _parse(AssetRecord, row)

    # ------------------------------------------------------------------
    # History (append-only)
    # ------------------------------------------------------------------

    def append_price_point(self, symbol: str, week_number: int, price: float) -> PricePoint:
        row = PriceHistory(symbol=symbol, week_number=week_number, price=price)
        self.session.add(row)
        self.session.flush()
        return _parse(PricePoint, row)

    def list_price_history(self, symbol: str | None = None) -> list[PricePoint]:
        q = select(PriceHistory).order_by(PriceHistory.week_number, PriceHistory.id)
        if symbol is not None:
            q = q.where(PriceHistory.symbol == symbol)
        return [_parse(PricePoint, r) for r in self.session.scalars(q).all()]

    def append_snapshot(self, student_id: int, week_number: int, total_value: float,
                        profit_loss: float, timestamp: str) -> SnapshotRecord:
        row = WeeklySnapshot(student_id=student_id, week_number=week_number,
                             total_value=total_value, profit_loss=profit_loss, timestamp=timestamp)
        self.session.add(row)
        self.session.flush()
        return _parse(SnapshotRecord, row)

    def list_snapshots(self) -> list[SnapshotRecord]:
        q = select(WeeklySnapshot).order_by(WeeklySnapshot.week_number, WeeklySnapshot.id)
        return [_parse(SnapshotRecord, r) for r in self.session.scalars(q).all()]

    # ------------------------------------------------------------------
    # App state
    # ------------------------------------------------------------------

    def get_current_week(self) -> int:
        row = self.session.get(AppState, CURRENT_WEEK_KEY)
        if row is None:
            return 0
        try:
            return int(row.value)
        except ValueError as e:
            raise InternalFailure(f"malformed current_week value {row.value!r}") from e

    def set_current_week(self, week: int) -> None:
        row = self.session.get(AppState, CURRENT_WEEK_KEY)
        if row is None:
            self.session.add(AppState(key=CURRENT_WEEK_KEY, value=str(week)))
        else:
            row.value = str(week)
        self.session.flush()

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Wipe every mutable table. Assets stay; reset re-prices them."""
        for model in (WeeklySnapshot, Holding, Student, PriceHistory):
            self.session.execute(delete(model))
        self.session.expire_all()

    def seed(self, cfg) -> bool:
        """First-run seeding. Returns False when the store was already seeded."""
        with self.atomic():
            if self.session.get(AppState, CURRENT_WEEK_KEY) is not None:
                return False
            week = cfg.game.initial_week
            self.set_current_week(week)
            for a in cfg.market.default_assets:
                if self.get_asset(a.symbol) is None:
                    self.insert_asset(a.symbol, a.name, a.price)
            if not self.list_price_history():
                for a in self.list_assets():
                    self.append_price_point(a.symbol, week, a.price)
        log.info("Seeded store at week %d with %d assets", week, len(cfg.market.default_assets))
        return True
