from __future__ import annotations

import itertools
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from journal_api.app.schemas import Trade
from journal_api.app.services.ledger_store import InMemoryLedger
from journal_api.app.settings import Settings

DATA_DIR = Path(__file__).resolve().parent / "data"

USER = "user-1"

_ids = itertools.count(1)


def make_trade(**overrides: Any) -> Trade:
    fields: dict[str, Any] = {
        "id": f"t{next(_ids)}",
        "user_id": USER,
        "symbol": "SPY 12/20/24 P550",
        "date": datetime(2024, 11, 1, 15, 0, tzinfo=timezone.utc),
        "action": "SELL_TO_OPEN",
        "quantity": 1.0,
        "price": 2.5,
        "amount": 250.0,
        "multiplier": 100.0,
        "asset_type": "OPTION",
    }
    fields.update(overrides)
    return Trade(**fields)


@pytest.fixture
def trade_factory() -> Callable[..., Trade]:
    return make_trade


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR


@pytest.fixture
def store() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_root=tmp_path, ledger_backend="memory", reconcile_workers=4)
