from pydantic import BaseModel, ConfigDict, Field

# ---- typed records read out of the ledger store ----

class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

class StudentRecord(_Record):
    id: int; name: str; color: str
    cash_balance: float = Field(ge=0); bank_balance: float = Field(ge=0)

class HoldingRecord(_Record):
    id: int; student_id: int; symbol: str
    amount: float = Field(gt=0); cost_basis: float = Field(gt=0)

class AssetRecord(_Record):
    symbol: str; name: str; price: float = Field(gt=0)

class PricePoint(_Record):
    id: int | None = None; symbol: str; week_number: int; price: float = Field(gt=0)

class SnapshotRecord(_Record):
    id: int | None = None; student_id: int; week_number: int
    total_value: float; profit_loss: float; timestamp: str

# ---- request bodies ----

class AssetIn(BaseModel): symbol: str; name: str | None = None; price: float
class StudentIn(BaseModel): name: str; color: str
class BuyIn(BaseModel): studentId: int; symbol: str; amountInEuro: float
class SellIn(BaseModel): studentId: int; investmentId: int
class BankIn(BaseModel): studentId: int; amount: float

# ---- responses ----

class AssetOut(BaseModel): symbol: str; name: str; price: float
class StateOut(BaseModel): current_week: int
class StudentCreated(BaseModel): id: int
class Ok(BaseModel): success: bool = True
class WeekAdvanced(Ok): new_week: int

class HoldingOut(BaseModel):
    id: int; student_id: int; symbol: str; amount: float; cost_basis: float
    currentPrice: float; value: float; gain_pct: float

class StudentOut(BaseModel):
    id: int; name: str; color: str; cash_balance: float; bank_balance: float
    portfolio: list[HoldingOut]; investmentValue: float; totalValue: float; profitLoss: float

class SnapshotOut(BaseModel):
    id: int; student_id: int; week_number: int; total_value: float; profit_loss: float; timestamp: str

class PricePointOut(BaseModel): id: int; symbol: str; week_number: int; price: float

class TopInvestment(BaseModel): symbol: str = "N/A"; gain: float = 0.0; student_name: str = ""
class Highlights(BaseModel): top_student: StudentOut | None; top_investment: TopInvestment

class MarketWatchItem(BaseModel):
    symbol: str; price: float; change: float; total_change: float; history: list[PricePointOut]
