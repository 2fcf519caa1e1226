"""Per-user trade ledger with an in-memory backend and a Parquet/JSON file backend.

The journal core only needs three things from persistence: insert with
uniqueness-violation detection on the import fingerprint, update by id (one or
a set), and filtered, date-sorted selects. Every call is scoped by an opaque
user id.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol, Sequence, TypeVar
from uuid import uuid4

import polars as pl
from pydantic import BaseModel, ValidationError

from ..errors import DuplicateImportError, JournalValidationError, LedgerError, NotFoundError
from ..schemas import (
    BenchmarkPrice,
    ParsedTrade,
    Strategy,
    StrategyCreate,
    Tag,
    TagCreate,
    Trade,
)
from ..settings import Settings

logger = logging.getLogger(__name__)

MUTABLE_TRADE_FIELDS = frozenset({"mark_price", "snapshot_pnl", "strategy_id", "tag_id", "pair_id", "hidden", "notes"})
MUTABLE_STRATEGY_FIELDS = frozenset({"name", "description", "capital_allocation", "status", "benchmark_ticker", "is_hidden"})
MUTABLE_TAG_FIELDS = frozenset({"name", "show_on_dashboard"})


class LedgerStore(Protocol):
    def insert_trade(self, user_id: str, trade: ParsedTrade) -> Trade:
        ...

    def list_trades(
        self,
        user_id: str,
        *,
        strategy_id: Optional[str] = None,
        unassigned: bool = False,
        include_hidden: bool = True,
    ) -> list[Trade]:
        ...

    def get_trade(self, user_id: str, trade_id: str) -> Trade:
        ...

    def update_trade(self, user_id: str, trade_id: str, changes: Mapping[str, Any]) -> Trade:
        ...

    def update_trades(self, user_id: str, trade_ids: Sequence[str], changes: Mapping[str, Any]) -> int:
        ...

    def delete_trades(self, user_id: str, trade_ids: Sequence[str]) -> int:
        ...

    def list_strategies(self, user_id: str) -> list[Strategy]:
        ...

    def get_strategy(self, user_id: str, strategy_id: str) -> Strategy:
        ...

    def create_strategy(self, user_id: str, payload: StrategyCreate) -> Strategy:
        ...

    def update_strategy(self, user_id: str, strategy_id: str, changes: Mapping[str, Any]) -> Strategy:
        ...

    def delete_strategy(self, user_id: str, strategy_id: str) -> None:
        ...

    def list_tags(self, user_id: str, strategy_id: Optional[str] = None) -> list[Tag]:
        ...

    def get_tag(self, user_id: str, tag_id: str) -> Tag:
        ...

    def create_tag(self, user_id: str, strategy_id: str, payload: TagCreate) -> Tag:
        ...

    def update_tag(self, user_id: str, tag_id: str, changes: Mapping[str, Any]) -> Tag:
        ...

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        ...

    def upsert_benchmark_prices(self, user_id: str, prices: Iterable[BenchmarkPrice]) -> int:
        ...

    def list_benchmark_prices(self, user_id: str, ticker: str, start: Optional[date] = None) -> list[BenchmarkPrice]:
        ...


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str], entity: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise JournalValidationError(f"Cannot update {entity} field(s): {', '.join(sorted(unknown))}")


ModelT = TypeVar("ModelT", bound=BaseModel)


def _with_changes(current: ModelT, changes: Mapping[str, Any]) -> ModelT:
    """Return ``current`` with ``changes`` applied, validated like a fresh model."""

    try:
        return type(current).model_validate({**current.model_dump(), **changes})
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        raise JournalValidationError(f"Invalid value for field(s): {', '.join(fields)}") from exc


class InMemoryLedger(LedgerStore):
    """Dictionary-backed store; the base for the file-backed ledger."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._trades: dict[str, dict[str, Trade]] = defaultdict(dict)
        self._hashes: dict[str, set[str]] = defaultdict(set)
        self._strategies: dict[str, dict[str, Strategy]] = defaultdict(dict)
        self._tags: dict[str, dict[str, Tag]] = defaultdict(dict)
        self._benchmarks: dict[str, dict[tuple[str, date], float]] = defaultdict(dict)

    # Hooks for persistent subclasses.
    def _load_user(self, user_id: str) -> None:
        return None

    def _trades_changed(self, user_id: str) -> None:
        return None

    def _metadata_changed(self, user_id: str) -> None:
        return None

    @contextmanager
    def _transaction(self, user_id: str, *, trades: bool = False, metadata: bool = False) -> Iterator[None]:
        """Mutate one user's state, then persist it.

        If the body or a write raises, the user's in-memory state is restored
        to what it was on entry before the error propagates.
        """

        with self._lock:
            self._load_user(user_id)
            snapshot = (
                dict(self._trades[user_id]),
                set(self._hashes[user_id]),
                dict(self._strategies[user_id]),
                dict(self._tags[user_id]),
                dict(self._benchmarks[user_id]),
            )
            try:
                yield
                if trades:
                    self._trades_changed(user_id)
                if metadata:
                    self._metadata_changed(user_id)
            except Exception:
                (
                    self._trades[user_id],
                    self._hashes[user_id],
                    self._strategies[user_id],
                    self._tags[user_id],
                    self._benchmarks[user_id],
                ) = snapshot
                raise

    # ---------------- trades ----------------
    def insert_trade(self, user_id: str, trade: ParsedTrade) -> Trade:
        with self._lock:
            self._load_user(user_id)
            if trade.import_hash and trade.import_hash in self._hashes[user_id]:
                raise DuplicateImportError(trade.import_hash)
            record = Trade(**trade.model_dump(), id=str(uuid4()), user_id=user_id)
            with self._transaction(user_id, trades=True):
                self._trades[user_id][record.id] = record
                if record.import_hash:
                    self._hashes[user_id].add(record.import_hash)
            return record

    def list_trades(
        self,
        user_id: str,
        *,
        strategy_id: Optional[str] = None,
        unassigned: bool = False,
        include_hidden: bool = True,
    ) -> list[Trade]:
        with self._lock:
            self._load_user(user_id)
            trades = list(self._trades[user_id].values())
        if strategy_id is not None:
            trades = [t for t in trades if t.strategy_id == strategy_id]
        if unassigned:
            trades = [t for t in trades if t.strategy_id is None]
        if not include_hidden:
            trades = [t for t in trades if not t.hidden]
        return sorted(trades, key=lambda t: (t.date, t.created_at))

    def get_trade(self, user_id: str, trade_id: str) -> Trade:
        with self._lock:
            self._load_user(user_id)
            try:
                return self._trades[user_id][trade_id]
            except KeyError:
                raise NotFoundError(f"Trade {trade_id} not found") from None

    def _apply(self, user_id: str, trade_id: str, changes: Mapping[str, Any]) -> Trade:
        updated = _with_changes(self.get_trade(user_id, trade_id), changes)
        self._trades[user_id][trade_id] = updated
        return updated

    def update_trade(self, user_id: str, trade_id: str, changes: Mapping[str, Any]) -> Trade:
        _check_fields(changes, MUTABLE_TRADE_FIELDS, "trade")
        with self._transaction(user_id, trades=True):
            return self._apply(user_id, trade_id, changes)

    def update_trades(self, user_id: str, trade_ids: Sequence[str], changes: Mapping[str, Any]) -> int:
        _check_fields(changes, MUTABLE_TRADE_FIELDS, "trade")
        with self._lock:
            self._load_user(user_id)
            ids = [tid for tid in dict.fromkeys(trade_ids) if tid in self._trades[user_id]]
            if not ids:
                return 0
            with self._transaction(user_id, trades=True):
                for trade_id in ids:
                    self._apply(user_id, trade_id, changes)
            return len(ids)

    def delete_trades(self, user_id: str, trade_ids: Sequence[str]) -> int:
        with self._lock:
            self._load_user(user_id)
            ids = [tid for tid in dict.fromkeys(trade_ids) if tid in self._trades[user_id]]
            if not ids:
                return 0
            with self._transaction(user_id, trades=True):
                for trade_id in ids:
                    trade = self._trades[user_id].pop(trade_id)
                    if trade.import_hash:
                        self._hashes[user_id].discard(trade.import_hash)
            return len(ids)

    # ---------------- strategies ----------------
    def list_strategies(self, user_id: str) -> list[Strategy]:
        with self._lock:
            self._load_user(user_id)
            return sorted(self._strategies[user_id].values(), key=lambda s: s.name.lower())

    def get_strategy(self, user_id: str, strategy_id: str) -> Strategy:
        with self._lock:
            self._load_user(user_id)
            try:
                return self._strategies[user_id][strategy_id]
            except KeyError:
                raise NotFoundError(f"Strategy {strategy_id} not found") from None

    def create_strategy(self, user_id: str, payload: StrategyCreate) -> Strategy:
        strategy = Strategy(id=str(uuid4()), user_id=user_id, **payload.model_dump())
        with self._transaction(user_id, metadata=True):
            self._strategies[user_id][strategy.id] = strategy
        return strategy

    def update_strategy(self, user_id: str, strategy_id: str, changes: Mapping[str, Any]) -> Strategy:
        _check_fields(changes, MUTABLE_STRATEGY_FIELDS, "strategy")
        with self._transaction(user_id, metadata=True):
            updated = _with_changes(self.get_strategy(user_id, strategy_id), changes)
            self._strategies[user_id][strategy_id] = updated
            return updated

    def delete_strategy(self, user_id: str, strategy_id: str) -> None:
        """Delete a strategy, its tags, and unassign its trades."""

        with self._transaction(user_id, trades=True, metadata=True):
            self.get_strategy(user_id, strategy_id)
            del self._strategies[user_id][strategy_id]
            tag_ids = [tid for tid, tag in self._tags[user_id].items() if tag.strategy_id == strategy_id]
            for tag_id in tag_ids:
                del self._tags[user_id][tag_id]
            affected = [t.id for t in self._trades[user_id].values() if t.strategy_id == strategy_id or t.tag_id in tag_ids]
            for trade_id in affected:
                trade = self._trades[user_id][trade_id]
                self._apply(
                    user_id,
                    trade_id,
                    {
                        "strategy_id": None if trade.strategy_id == strategy_id else trade.strategy_id,
                        "tag_id": None if trade.tag_id in tag_ids else trade.tag_id,
                    },
                )

    # ---------------- tags ----------------
    def list_tags(self, user_id: str, strategy_id: Optional[str] = None) -> list[Tag]:
        with self._lock:
            self._load_user(user_id)
            tags = list(self._tags[user_id].values())
        if strategy_id is not None:
            tags = [t for t in tags if t.strategy_id == strategy_id]
        return sorted(tags, key=lambda t: t.name.lower())

    def get_tag(self, user_id: str, tag_id: str) -> Tag:
        with self._lock:
            self._load_user(user_id)
            try:
                return self._tags[user_id][tag_id]
            except KeyError:
                raise NotFoundError(f"Tag {tag_id} not found") from None

    def create_tag(self, user_id: str, strategy_id: str, payload: TagCreate) -> Tag:
        with self._transaction(user_id, metadata=True):
            self.get_strategy(user_id, strategy_id)
            tag = Tag(id=str(uuid4()), user_id=user_id, strategy_id=strategy_id, **payload.model_dump())
            self._tags[user_id][tag.id] = tag
            return tag

    def update_tag(self, user_id: str, tag_id: str, changes: Mapping[str, Any]) -> Tag:
        _check_fields(changes, MUTABLE_TAG_FIELDS, "tag")
        with self._transaction(user_id, metadata=True):
            updated = _with_changes(self.get_tag(user_id, tag_id), changes)
            self._tags[user_id][tag_id] = updated
            return updated

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        with self._transaction(user_id, trades=True, metadata=True):
            self.get_tag(user_id, tag_id)
            del self._tags[user_id][tag_id]
            tagged = [t.id for t in self._trades[user_id].values() if t.tag_id == tag_id]
            for trade_id in tagged:
                self._apply(user_id, trade_id, {"tag_id": None})

    # ---------------- benchmark prices ----------------
    def upsert_benchmark_prices(self, user_id: str, prices: Iterable[BenchmarkPrice]) -> int:
        prices = list(prices)
        if not prices:
            return 0
        with self._transaction(user_id, metadata=True):
            for price in prices:
                self._benchmarks[user_id][(price.ticker.upper(), price.date)] = price.price
        return len(prices)

    def list_benchmark_prices(self, user_id: str, ticker: str, start: Optional[date] = None) -> list[BenchmarkPrice]:
        with self._lock:
            self._load_user(user_id)
            rows = [
                BenchmarkPrice(ticker=t, date=d, price=p)
                for (t, d), p in self._benchmarks[user_id].items()
                if t == ticker.upper() and (start is None or d >= start)
            ]
        return sorted(rows, key=lambda r: r.date)


TRADE_SCHEMA = {
    "id": pl.Utf8,
    "user_id": pl.Utf8,
    "symbol": pl.Utf8,
    "date": pl.Datetime("us", "UTC"),
    "action": pl.Utf8,
    "quantity": pl.Float64,
    "price": pl.Float64,
    "fees": pl.Float64,
    "amount": pl.Float64,
    "multiplier": pl.Float64,
    "asset_type": pl.Utf8,
    "import_hash": pl.Utf8,
    "mark_price": pl.Float64,
    "snapshot_pnl": pl.Float64,
    "pair_id": pl.Utf8,
    "strategy_id": pl.Utf8,
    "tag_id": pl.Utf8,
    "notes": pl.Utf8,
    "hidden": pl.Boolean,
    "created_at": pl.Datetime("us", "UTC"),
}


def _user_key(user_id: str) -> str:
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:16]


def _replace_atomically(path: Path, write) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    write(tmp)
    os.replace(tmp, path)


class ParquetLedger(InMemoryLedger):
    """File-backed ledger: trades in Parquet, strategies/tags/benchmarks in JSON.

    Layout under ``storage_root``::

        parquet/trades/<user-key>.parquet
        metadata/<user-key>.json
    """

    def __init__(self, storage_root: str | Path) -> None:
        super().__init__()
        self.storage_root = Path(storage_root)
        self.trades_dir = self.storage_root / "parquet" / "trades"
        self.metadata_dir = self.storage_root / "metadata"
        self._loaded: set[str] = set()

    def _trades_path(self, user_id: str) -> Path:
        return self.trades_dir / f"{_user_key(user_id)}.parquet"

    def _metadata_path(self, user_id: str) -> Path:
        return self.metadata_dir / f"{_user_key(user_id)}.json"

    def _load_user(self, user_id: str) -> None:
        # A user is cached only once both files have been read; a damaged file
        # keeps failing instead of being overwritten by an empty ledger.
        if user_id in self._loaded:
            return

        trades_path = self._trades_path(user_id)
        trades: list[Trade] = []
        if trades_path.exists():
            try:
                trades = [Trade.model_validate(row) for row in pl.read_parquet(trades_path).to_dicts()]
            except (OSError, pl.exceptions.PolarsError, ValidationError) as exc:
                raise LedgerError(f"Could not read trade ledger {trades_path}: {exc}") from exc

        meta_path = self._metadata_path(user_id)
        strategies: list[Strategy] = []
        tags: list[Tag] = []
        prices: list[BenchmarkPrice] = []
        if meta_path.exists():
            try:
                with meta_path.open("r", encoding="utf-8") as f:
                    payload = json.load(f)
                strategies = [Strategy.model_validate(item) for item in payload.get("strategies", [])]
                tags = [Tag.model_validate(item) for item in payload.get("tags", [])]
                prices = [BenchmarkPrice.model_validate(item) for item in payload.get("benchmarks", [])]
            except (OSError, ValueError, AttributeError) as exc:
                raise LedgerError(f"Could not read ledger metadata {meta_path}: {exc}") from exc

        self._trades[user_id] = {t.id: t for t in trades}
        self._hashes[user_id] = {t.import_hash for t in trades if t.import_hash}
        self._strategies[user_id] = {s.id: s for s in strategies}
        self._tags[user_id] = {t.id: t for t in tags}
        self._benchmarks[user_id] = {(p.ticker, p.date): p.price for p in prices}
        self._loaded.add(user_id)
        logger.debug("Loaded ledger for user key %s", _user_key(user_id))

    def _trades_changed(self, user_id: str) -> None:
        rows = [t.model_dump() for t in self._trades[user_id].values()]
        frame = pl.DataFrame(rows, schema=TRADE_SCHEMA) if rows else pl.DataFrame(schema=TRADE_SCHEMA)
        try:
            _replace_atomically(self._trades_path(user_id), frame.write_parquet)
        except OSError as exc:
            raise LedgerError(f"Could not write trade ledger: {exc}") from exc

    def _metadata_changed(self, user_id: str) -> None:
        payload = {
            "strategies": [s.model_dump(mode="json") for s in self._strategies[user_id].values()],
            "tags": [t.model_dump(mode="json") for t in self._tags[user_id].values()],
            "benchmarks": [
                {"ticker": t, "date": d.isoformat(), "price": p} for (t, d), p in self._benchmarks[user_id].items()
            ],
        }

        def write(path: Path) -> None:
            with path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)

        try:
            _replace_atomically(self._metadata_path(user_id), write)
        except OSError as exc:
            raise LedgerError(f"Could not write ledger metadata: {exc}") from exc


def create_store(settings: Settings) -> LedgerStore:
    """Return the configured ledger backend."""

    if settings.ledger_backend == "memory":
        return InMemoryLedger()
    logger.info("Using Parquet ledger under %s", settings.data_root)
    return ParquetLedger(settings.data_root)


__all__ = [
    "InMemoryLedger",
    "LedgerStore",
    "MUTABLE_TRADE_FIELDS",
    "ParquetLedger",
    "create_store",
]
