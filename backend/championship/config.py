from pydantic import BaseModel, model_validator
from pathlib import Path
import os
import yaml

class AssetSeed(BaseModel): symbol: str; name: str; price: float
class HoldingSeed(BaseModel): symbol: str; euro: float

DEFAULT_ASSETS = [
    AssetSeed(symbol="BTC-EUR", name="Bitcoin", price=95000.00),
    AssetSeed(symbol="ETH-EUR", name="Ethereum", price=2700.00),
    AssetSeed(symbol="SOL-EUR", name="Solana", price=145.00),
    AssetSeed(symbol="DOGE-EUR", name="Dogecoin", price=0.35),
    AssetSeed(symbol="ADA-EUR", name="Cardano", price=0.75),
    AssetSeed(symbol="XRP-EUR", name="XRP", price=2.10),
]

class MarketCfg(BaseModel):
    max_weekly_change: float=0.10; min_price: float=1e-8; seed: int|None=None
    default_assets: list[AssetSeed]=DEFAULT_ASSETS

class BankCfg(BaseModel): weekly_interest: float=0.03

class DemoStudentCfg(BaseModel):
    name: str="Joan Byers"; color: str="#94a3b8"; cash_balance: float=0.0; bank_balance: float=400.0
    holdings: list[HoldingSeed]=[HoldingSeed(symbol="BTC-EUR", euro=300.0), HoldingSeed(symbol="ETH-EUR", euro=300.0)]

class GameCfg(BaseModel): start_value: float=1000.0; initial_week: int=1; demo_student: DemoStudentCfg=DemoStudentCfg()

class Cfg(BaseModel):
    market: MarketCfg=MarketCfg(); bank: BankCfg=BankCfg(); game: GameCfg=GameCfg(); ui: dict={}

    @model_validator(mode="after")
    def _demo_holdings_are_seeded(self):
        known = {a.symbol for a in self.market.default_assets}
        missing = [h.symbol for h in self.game.demo_student.holdings if h.symbol not in known]
        if missing:
            raise ValueError(f"demo_student holdings not in market.default_assets: {', '.join(missing)}")
        return self

CFG_PATH = Path(os.getenv("CHAMPIONSHIP_CONFIG", "config.yaml"))
def load_config(path: Path | None = None) -> "Cfg":
    p = path or CFG_PATH
    if not p.exists():
        return Cfg()
    data = yaml.safe_load(p.read_text()) or {}
    return Cfg(**data)
