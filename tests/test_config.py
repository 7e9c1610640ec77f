import pytest
from pydantic import ValidationError

from championship.config import Cfg, load_config


def test_defaults_when_file_missing(tmp_path):
    cfg = load_config(tmp_path / "absent.yaml")
    assert cfg.game.start_value == 1000.0
    assert [h.symbol for h in cfg.game.demo_student.holdings] == ["BTC-EUR", "ETH-EUR"]


def test_yaml_overrides(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("bank:\n  weekly_interest: 0.05\nmarket:\n  seed: 9\n")
    cfg = load_config(p)
    assert (cfg.bank.weekly_interest, cfg.market.seed) == (0.05, 9)


def test_demo_holding_must_be_a_default_asset():
    with pytest.raises(ValidationError, match="LTC-EUR"):
        Cfg(game={"demo_student": {"holdings": [{"symbol": "LTC-EUR", "euro": 10.0}]}})


def test_demo_holding_may_use_a_custom_default_asset(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "market:\n"
        "  default_assets:\n"
        "    - {symbol: LTC-EUR, name: Litecoin, price: 80.0}\n"
        "game:\n"
        "  demo_student:\n"
        "    holdings:\n"
        "      - {symbol: LTC-EUR, euro: 100.0}\n"
    )
    cfg = load_config(p)
    assert [a.symbol for a in cfg.market.default_assets] == ["LTC-EUR"]
