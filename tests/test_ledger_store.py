from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from journal_api.app.errors import DuplicateImportError, JournalValidationError, LedgerError, NotFoundError
from journal_api.app.ingest import ImportService
from journal_api.app.schemas import BenchmarkPrice, ParsedTrade, StrategyCreate, TagCreate
from journal_api.app.services import ledger_store
from journal_api.app.services.ledger_store import InMemoryLedger, ParquetLedger, create_store
from journal_api.app.settings import Settings


def _parsed(symbol: str = "SPY 12/20/24 P550", day: int = 1, import_hash: str | None = "abc") -> ParsedTrade:
    return ParsedTrade(
        symbol=symbol,
        date=datetime(2024, 11, day, 15, 0),
        action="SELL_TO_OPEN",
        quantity=1,
        price=2.5,
        amount=250.0,
        multiplier=100.0,
        asset_type="OPTION",
        import_hash=import_hash,
    )


def test_insert_rejects_duplicate_fingerprint(store: InMemoryLedger) -> None:
    trade = store.insert_trade("u", _parsed())

    assert trade.user_id == "u"
    assert trade.date.tzinfo is not None
    assert trade.mark_price is None
    with pytest.raises(DuplicateImportError):
        store.insert_trade("u", _parsed(day=2))


def test_trades_without_fingerprint_are_never_duplicates(store: InMemoryLedger) -> None:
    store.insert_trade("u", _parsed(import_hash=None))
    store.insert_trade("u", _parsed(import_hash=None))

    assert len(store.list_trades("u")) == 2


def test_list_trades_sorted_and_filtered(store: InMemoryLedger) -> None:
    late = store.insert_trade("u", _parsed(day=5, import_hash="late"))
    early = store.insert_trade("u", _parsed(day=1, import_hash="early"))
    store.insert_trade("other", _parsed(import_hash="late"))
    strategy = store.create_strategy("u", StrategyCreate(name="Wheel"))
    store.update_trades("u", [late.id], {"strategy_id": strategy.id})
    store.update_trade("u", early.id, {"hidden": True})

    assert [t.id for t in store.list_trades("u")] == [early.id, late.id]
    assert [t.id for t in store.list_trades("u", include_hidden=False)] == [late.id]
    assert [t.id for t in store.list_trades("u", strategy_id=strategy.id)] == [late.id]
    assert [t.id for t in store.list_trades("u", unassigned=True)] == [early.id]


def test_update_rejects_unknown_fields_and_ids(store: InMemoryLedger) -> None:
    trade = store.insert_trade("u", _parsed())

    with pytest.raises(JournalValidationError):
        store.update_trade("u", trade.id, {"amount": 1.0})
    with pytest.raises(NotFoundError):
        store.update_trade("u", "missing", {"mark_price": 1.0})
    with pytest.raises(NotFoundError):
        store.get_trade("someone-else", trade.id)
    assert store.update_trades("u", [trade.id, "missing"], {"mark_price": 0.0}) == 1
    assert store.get_trade("u", trade.id).mark_price == 0.0


def test_update_rejects_null_for_required_fields(store: InMemoryLedger) -> None:
    trade = store.insert_trade("u", _parsed())
    strategy = store.create_strategy("u", StrategyCreate(name="Wheel"))
    tag = store.create_tag("u", strategy.id, TagCreate(name="Earnings"))

    with pytest.raises(JournalValidationError, match="hidden"):
        store.update_trade("u", trade.id, {"hidden": None})
    with pytest.raises(JournalValidationError):
        store.update_trades("u", [trade.id], {"hidden": None})
    with pytest.raises(JournalValidationError):
        store.update_tag("u", tag.id, {"show_on_dashboard": None})

    assert store.get_trade("u", trade.id).hidden is False
    assert store.get_tag("u", tag.id).show_on_dashboard is True


def test_deleting_a_trade_frees_its_fingerprint(store: InMemoryLedger) -> None:
    trade = store.insert_trade("u", _parsed())

    assert store.delete_trades("u", [trade.id, trade.id]) == 1
    store.insert_trade("u", _parsed())


def test_delete_strategy_cascades(store: InMemoryLedger) -> None:
    strategy = store.create_strategy("u", StrategyCreate(name="Put Camp", capital_allocation=10_000))
    tag = store.create_tag("u", strategy.id, TagCreate(name="Earnings"))
    trade = store.insert_trade("u", _parsed())
    store.update_trade("u", trade.id, {"strategy_id": strategy.id, "tag_id": tag.id})

    store.delete_strategy("u", strategy.id)

    assert store.list_strategies("u") == []
    assert store.list_tags("u") == []
    updated = store.get_trade("u", trade.id)
    assert updated.strategy_id is None
    assert updated.tag_id is None


def test_delete_tag_clears_trade_tags(store: InMemoryLedger) -> None:
    strategy = store.create_strategy("u", StrategyCreate(name="Wheel"))
    tag = store.create_tag("u", strategy.id, TagCreate(name="Rolled", show_on_dashboard=False))
    trade = store.insert_trade("u", _parsed())
    store.update_trade("u", trade.id, {"tag_id": tag.id})

    store.delete_tag("u", tag.id)

    assert store.get_trade("u", trade.id).tag_id is None
    with pytest.raises(NotFoundError):
        store.get_tag("u", tag.id)


def test_benchmark_upsert_overwrites_same_day(store: InMemoryLedger) -> None:
    store.upsert_benchmark_prices(
        "u",
        [
            BenchmarkPrice(ticker="spy", date=date(2024, 1, 2), price=470.0),
            BenchmarkPrice(ticker="SPY", date=date(2024, 1, 3), price=468.0),
        ],
    )
    store.upsert_benchmark_prices("u", [BenchmarkPrice(ticker="SPY", date=date(2024, 1, 2), price=471.0)])

    prices = store.list_benchmark_prices("u", "spy")
    assert [(p.date, p.price) for p in prices] == [(date(2024, 1, 2), 471.0), (date(2024, 1, 3), 468.0)]
    assert len(store.list_benchmark_prices("u", "SPY", start=date(2024, 1, 3))) == 1


def test_parquet_ledger_survives_restart(tmp_path: Path) -> None:
    ledger = ParquetLedger(tmp_path)
    trade = ledger.insert_trade("u", _parsed())
    strategy = ledger.create_strategy("u", StrategyCreate(name="Wheel", capital_allocation=5000))
    ledger.update_trade("u", trade.id, {"mark_price": 1.25, "strategy_id": strategy.id})
    ledger.upsert_benchmark_prices("u", [BenchmarkPrice(ticker="SPY", date=date(2024, 1, 2), price=470.0)])

    assert list((tmp_path / "parquet" / "trades").glob("*.parquet"))
    assert list((tmp_path / "metadata").glob("*.json"))

    reopened = ParquetLedger(tmp_path)
    (restored,) = reopened.list_trades("u")
    assert restored.id == trade.id
    assert restored.mark_price == 1.25
    assert restored.strategy_id == strategy.id
    assert restored.date == datetime(2024, 11, 1, 15, 0, tzinfo=timezone.utc)
    assert reopened.get_strategy("u", strategy.id).capital_allocation == 5000
    assert reopened.list_benchmark_prices("u", "SPY")[0].price == 470.0
    with pytest.raises(DuplicateImportError):
        reopened.insert_trade("u", _parsed())


def test_create_store_follows_settings(tmp_path: Path) -> None:
    assert type(create_store(Settings(data_root=tmp_path, ledger_backend="memory"))) is InMemoryLedger
    assert isinstance(create_store(Settings(data_root=tmp_path)), ParquetLedger)


def test_failed_insert_leaves_no_trace(tmp_path: Path, data_dir: Path) -> None:
    # A plain file where the parquet directory belongs makes every trade write fail.
    blocker = tmp_path / "parquet"
    blocker.write_text("not a directory")
    ledger = ParquetLedger(tmp_path)
    source = (data_dir / "tastytrade_transactions.csv").read_bytes()

    stats = ImportService(ledger).import_transactions("u", source)
    assert (stats.inserted, stats.duplicates, stats.failed) == (0, 0, stats.total)
    assert ledger.list_trades("u") == []

    blocker.unlink()
    retry = ImportService(ledger).import_transactions("u", source)
    assert (retry.inserted, retry.duplicates, retry.failed) == (stats.total, 0, 0)
    assert len(ParquetLedger(tmp_path).list_trades("u")) == stats.total


def test_failed_write_rolls_back_updates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ledger = ParquetLedger(tmp_path)
    trade = ledger.insert_trade("u", _parsed())
    strategy = ledger.create_strategy("u", StrategyCreate(name="Wheel"))

    def fail(path: Path, write) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(ledger_store, "_replace_atomically", fail)

    with pytest.raises(LedgerError):
        ledger.update_trade("u", trade.id, {"mark_price": 1.25})
    with pytest.raises(LedgerError):
        ledger.update_trades("u", [trade.id], {"strategy_id": strategy.id})
    with pytest.raises(LedgerError):
        ledger.delete_trades("u", [trade.id])
    with pytest.raises(LedgerError):
        ledger.delete_strategy("u", strategy.id)
    with pytest.raises(LedgerError):
        ledger.upsert_benchmark_prices("u", [BenchmarkPrice(ticker="SPY", date=date(2024, 1, 2), price=470.0)])

    current = ledger.get_trade("u", trade.id)
    assert current.mark_price is None
    assert current.strategy_id is None
    assert ledger.get_strategy("u", strategy.id).name == "Wheel"
    assert ledger.list_benchmark_prices("u", "SPY") == []
    with pytest.raises(DuplicateImportError):
        ledger.insert_trade("u", _parsed())


def test_damaged_trade_file_is_not_overwritten(tmp_path: Path) -> None:
    ParquetLedger(tmp_path).insert_trade("u", _parsed())
    (path,) = (tmp_path / "parquet" / "trades").glob("*.parquet")
    damaged = path.read_bytes()[: path.stat().st_size // 2]
    path.write_bytes(damaged)

    ledger = ParquetLedger(tmp_path)
    for _ in range(2):
        with pytest.raises(LedgerError):
            ledger.list_trades("u")
    with pytest.raises(LedgerError):
        ledger.insert_trade("u", _parsed(import_hash="other"))
    assert path.read_bytes() == damaged


def test_damaged_metadata_file_is_not_overwritten(tmp_path: Path) -> None:
    ParquetLedger(tmp_path).create_strategy("u", StrategyCreate(name="Wheel"))
    (path,) = (tmp_path / "metadata").glob("*.json")
    path.write_text('{"strategies": [', encoding="utf-8")

    ledger = ParquetLedger(tmp_path)
    for _ in range(2):
        with pytest.raises(LedgerError):
            ledger.list_strategies("u")
    with pytest.raises(LedgerError):
        ledger.create_strategy("u", StrategyCreate(name="Income"))
    assert path.read_text(encoding="utf-8") == '{"strategies": ['
