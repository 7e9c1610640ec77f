"""Trading engine: buy/sell lots against cash, and move cash to and from the bank.

Every operation validates first, then mutates inside one atomic block, and
only touches the one student it was called for.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

from .alerts import Notifier
from .errors import InsufficientFunds, InvalidInput, InvalidSymbol, NotFound
from .pricing import PricingEngine
from .schemas import HoldingRecord, StudentRecord
from .store import LedgerStore

log = logging.getLogger("championship")


def _amount(amount, allow_zero: bool = False) -> float:
    try:
        x = float(amount)
    except (TypeError, ValueError):
        raise InvalidInput("Amount must be a number") from None
    if not math.isfinite(x) or x < 0 or (x == 0 and not allow_zero):
        raise InvalidInput("Amount must be positive" if not allow_zero else "Amount must not be negative")
    return x


class TradingEngine:
    def __init__(self, store: LedgerStore, pricing: PricingEngine, notifier: Optional[Notifier] = None):
        self.store = store
        self.pricing = pricing
        self.notifier = notifier

    def _student(self, student_id: int) -> StudentRecord:
        s = self.store.get_student(student_id)
        if s is None:
            raise NotFound("Student not found")
        return s

    def _notify(self, event: str, payload: dict) -> None:
        if self.notifier is not None:
            self.notifier.notify(event, payload)

    def buy(self, student_id: int, symbol: str, euro_amount: float) -> HoldingRecord:
        euro = _amount(euro_amount)
        with self.store.atomic():
            s = self._student(student_id)
            if euro > s.cash_balance:
                raise InsufficientFunds("Insufficient funds")
            price = self.pricing.get_current_price(symbol)
            if not price:
                raise InvalidSymbol("Invalid symbol or price unavailable")
            self.store.set_balances(s.id, cash_balance=s.cash_balance - euro)
            lot = self.store.create_holding(s.id, symbol, euro / price, euro)
        log.info("Student %d bought %.8f %s for %.2f", s.id, lot.amount, symbol, euro)
        self._notify("trade", {"side": "buy", "student_id": s.id, "holding_id": lot.id, "symbol": symbol, "euro": euro})
        return lot

    def sell(self, student_id: int, holding_id: int) -> float:
        """Sell a whole lot at the current price. Returns the cash credited."""
        with self.store.atomic():
            lot = self.store.get_holding(holding_id)
            if lot is None or lot.student_id != student_id:
                raise NotFound("Investment not found")
            s = self._student(student_id)
            proceeds = lot.amount * (self.pricing.get_current_price(lot.symbol) or 0.0)
            self.store.set_balances(s.id, cash_balance=s.cash_balance + proceeds)
            self.store.delete_holding(lot.id)
        log.info("Student %d sold lot %d (%s) for %.2f", s.id, lot.id, lot.symbol, proceeds)
        self._notify("trade", {"side": "sell", "student_id": s.id, "holding_id": lot.id, "symbol": lot.symbol, "euro": proceeds})
        return proceeds

    def deposit_to_bank(self, student_id: int, amount: float) -> StudentRecord:
        x = _amount(amount, allow_zero=True)
        with self.store.atomic():
            s = self._student(student_id)
            if x > s.cash_balance:
                raise InsufficientFunds("Insufficient funds")
            s = self.store.set_balances(s.id, cash_balance=s.cash_balance - x, bank_balance=s.bank_balance + x)
        log.info("Student %d deposited %.2f", s.id, x)
        self._notify("bank", {"side": "deposit", "student_id": s.id, "amount": x})
        return s

    def withdraw_from_bank(self, student_id: int, amount: float) -> StudentRecord:
        x = _amount(amount, allow_zero=True)
        with self.store.atomic():
            s = self._student(student_id)
            if x > s.bank_balance:
                raise InsufficientFunds("Insufficient bank funds")
            s = self.store.set_balances(s.id, cash_balance=s.cash_balance + x, bank_balance=s.bank_balance - x)
        log.info("Student %d withdrew %.2f", s.id, x)
        self._notify("bank", {"side": "withdraw", "student_id": s.id, "amount": x})
        return s
