from __future__ import annotations
from dataclasses import dataclass
from typing import List, Dict, Any, Iterable, Mapping, Optional

import pandas as pd

from .schemas import HoldingRecord, PricePoint, SnapshotRecord, StudentRecord

START_VALUE = 1000.0


def value_holding(holding: HoldingRecord, current_price: Optional[float]) -> Dict[str, Any]:
    """Current price and market value of one lot. Unknown prices value at 0."""
    px = current_price or 0.0
    value = holding.amount * px
    gain = ((value - holding.cost_basis) / holding.cost_basis * 100.0) if holding.cost_basis else 0.0
    return {**holding.model_dump(), "currentPrice": px, "value": value, "gain_pct": gain}


def _pct(new: float, old: float) -> float:
    return ((new - old) / old * 100.0) if old else 0.0


@dataclass
class PortfolioAnalytics:
    start_value: float = START_VALUE

    def valuate_student(self, student: StudentRecord, holdings: Iterable[HoldingRecord],
                        prices: Mapping[str, float]) -> Dict[str, Any]:
        """
        Returns the student's fields plus:
          portfolio       - valued lots (see value_holding)
          investmentValue - sum of lot values
          totalValue      - cash + bank + investmentValue
          profitLoss      - totalValue - start_value (same baseline for every student)
        """
        portfolio = [value_holding(h, prices.get(h.symbol)) for h in holdings if h.student_id == student.id]
        inv = sum(p["value"] for p in portfolio)
        total = student.cash_balance + student.bank_balance + inv
        return {
            **student.model_dump(),
            "portfolio": portfolio,
            "investmentValue": inv,
            "totalValue": total,
            "profitLoss": total - self.start_value,
        }

    def valuate_all(self, students: Iterable[StudentRecord], holdings: Iterable[HoldingRecord],
                    prices: Mapping[str, float]) -> List[Dict[str, Any]]:
        by_student: Dict[int, list] = {}
        for h in holdings:
            by_student.setdefault(h.student_id, []).append(h)
        return [self.valuate_student(s, by_student.get(s.id, []), prices) for s in students]

    @staticmethod
    def rank_students(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # sorted() is stable, reverse included: ties keep store order
        return sorted(rows, key=lambda r: r["totalValue"], reverse=True)

    # ---- derived views for the dashboard ------------------------------

    @staticmethod
    def highlights(ranked: List[Dict[str, Any]]) -> Dict[str, Any]:
        top_inv = {"symbol": "N/A", "gain": 0.0, "student_name": ""}
        for s in ranked:
            for h in s["portfolio"]:
                if h["cost_basis"] > 0 and h["gain_pct"] > top_inv["gain"]:
                    top_inv = {"symbol": h["symbol"], "gain": h["gain_pct"], "student_name": s["name"]}
        return {"top_student": ranked[0] if ranked else None, "top_investment": top_inv}

    @staticmethod
    def market_watch(history: Iterable[PricePoint]) -> List[Dict[str, Any]]:
        """Per symbol: latest price, change vs the previous week, change since the first point."""
        series: Dict[str, List[PricePoint]] = {}
        for p in history:
            series.setdefault(p.symbol, []).append(p)
        out = []
        for sym, pts in series.items():
            pts.sort(key=lambda p: p.week_number)
            cur = pts[-1]
            prev = pts[-2] if len(pts) > 1 else None
            out.append({
                "symbol": sym,
                "price": cur.price,
                "change": _pct(cur.price, prev.price) if prev else 0.0,
                "total_change": _pct(cur.price, pts[0].price),
                "history": [p.model_dump() for p in pts],
            })
        return out

    @staticmethod
    def history_chart(snapshots: Iterable[SnapshotRecord]) -> List[Dict[str, Any]]:
        """One row per week ascending with a ``student_<id>`` column of total values."""
        rows = [s.model_dump() for s in snapshots]
        if not rows:
            return []
        df = pd.DataFrame(rows)
        pv = df.pivot_table(index="week_number", columns="student_id", values="total_value", aggfunc="last")
        pv = pv.sort_index()
        pv.columns = [f"student_{int(c)}" for c in pv.columns]
        out = []
        for week, r in pv.iterrows():
            entry: Dict[str, Any] = {"week": int(week)}
            for col, v in r.items():
                if pd.notna(v):
                    entry[col] = float(v)
            out.append(entry)
        return out
