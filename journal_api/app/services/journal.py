"""Request-level journal operations on top of a ``LedgerStore``."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

from ..compute.groups import build_groups
from ..compute.metrics import portfolio_summary, put_campaign_metrics, strategy_performance
from ..compute.reconcile import reconcile
from ..constants import STRATEGY_STATUSES, UNTAGGED_KEY, UNTAGGED_LABEL
from ..errors import BatchUpdateError, JournalError, JournalValidationError, MissingContextError
from ..ingest import CsvSource, ImportService, parse_positions
from ..schemas import (
    BenchmarkPrice,
    GroupSummary,
    ImportStats,
    MarkUpdate,
    PairResponse,
    PortfolioSummary,
    PutCampaignResponse,
    ReconcileStats,
    Strategy,
    StrategyCreate,
    StrategyDetail,
    StrategyPerformance,
    Tag,
    TagCreate,
    TagGroups,
    Trade,
)
from ..settings import Settings
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class JournalService:
    def __init__(self, store: LedgerStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self.imports = ImportService(store)

    # ---------------- ingest ----------------
    def import_transactions(self, user_id: str, source: CsvSource) -> ImportStats:
        return self.imports.import_transactions(user_id, source)

    def reconcile_positions(self, user_id: str, source: CsvSource) -> ReconcileStats:
        """Apply a position snapshot to the ledger's open legs.

        Row updates run concurrently; every one is awaited before a
        ``BatchUpdateError`` is raised for the failures.
        """

        positions = parse_positions(source)
        ledger = self.store.list_trades(user_id)
        plan = reconcile(ledger, positions)
        failed = self._apply_mark_updates(user_id, plan.updates)

        stats = plan.stats
        stats.failed = len(failed)
        stats.updated = len(plan.updates) - len(failed)
        logger.info(
            "Reconciled %d positions for user %s: candidates=%d matched=%d cleared=%d updated=%d failed=%d",
            stats.positions,
            user_id,
            stats.candidates,
            stats.matched,
            stats.cleared,
            stats.updated,
            stats.failed,
        )
        if failed:
            raise BatchUpdateError(failed, attempted=len(plan.updates))
        return stats

    def _apply_mark_updates(self, user_id: str, updates: Sequence[MarkUpdate]) -> list[str]:
        if not updates:
            return []
        failed: list[str] = []
        workers = max(1, min(self.settings.reconcile_workers, len(updates)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reconcile") as pool:
            futures = {
                pool.submit(
                    self.store.update_trade,
                    user_id,
                    update.trade_id,
                    {"mark_price": update.mark_price, "snapshot_pnl": update.snapshot_pnl},
                ): update.trade_id
                for update in updates
            }
            for future in as_completed(futures):
                trade_id = futures[future]
                try:
                    future.result()
                except JournalError as exc:
                    logger.error("Error updating mark for trade %s: %s", trade_id, exc)
                    failed.append(trade_id)
        return sorted(failed)

    # ---------------- reads ----------------
    def list_trades(
        self,
        user_id: str,
        *,
        strategy_id: Optional[str] = None,
        unassigned: bool = False,
        include_hidden: bool = False,
    ) -> list[Trade]:
        trades = self.store.list_trades(
            user_id, strategy_id=strategy_id, unassigned=unassigned, include_hidden=include_hidden
        )
        return list(reversed(trades))

    def list_groups(self, user_id: str, *, strategy_id: Optional[str] = None) -> list[GroupSummary]:
        return build_groups(self.store.list_trades(user_id, strategy_id=strategy_id))

    def dashboard(self, user_id: str) -> PortfolioSummary:
        return portfolio_summary(self.store.list_trades(user_id))

    def strategy_performance(self, user_id: str, *, include_hidden: bool = False) -> list[StrategyPerformance]:
        trades = self.store.list_trades(user_id)
        tags = self.store.list_tags(user_id)
        return [
            strategy_performance(strategy, trades, tags)
            for strategy in self.store.list_strategies(user_id)
            if include_hidden or not strategy.is_hidden
        ]

    def strategy_detail(self, user_id: str, strategy_id: str) -> StrategyDetail:
        """One strategy's performance with its trade groups bucketed by tag."""

        strategy = self.store.get_strategy(user_id, strategy_id)
        trades = self.store.list_trades(user_id, strategy_id=strategy_id)
        tags = self.store.list_tags(user_id, strategy_id=strategy_id)

        buckets: dict[str, TagGroups] = {
            tag.id: TagGroups(key=tag.id, tag_id=tag.id, name=tag.name) for tag in tags
        }
        untagged = TagGroups(key=UNTAGGED_KEY, name=UNTAGGED_LABEL)
        for group in build_groups(trades):
            tag_id = next((t.tag_id for t in group.trades if t.tag_id), None)
            bucket = buckets.get(tag_id) if tag_id else None
            (bucket or untagged).groups.append(group)

        tag_groups = [bucket for bucket in buckets.values() if bucket.groups]
        if untagged.groups:
            tag_groups.append(untagged)
        return StrategyDetail(
            performance=strategy_performance(strategy, trades, tags),
            tags=tags,
            tag_groups=tag_groups,
        )

    def find_strategy(self, user_id: str, name: str) -> Strategy:
        wanted = name.strip().lower()
        for strategy in self.store.list_strategies(user_id):
            if strategy.name.strip().lower() == wanted:
                return strategy
        raise MissingContextError(
            f'No strategy named "{name}" found. Create a strategy called "{name}" '
            "and assign your put campaign trades to it."
        )

    def put_campaign(self, user_id: str, name: Optional[str] = None) -> PutCampaignResponse:
        strategy = self.find_strategy(user_id, name or self.settings.put_campaign_strategy)
        groups = build_groups(self.store.list_trades(user_id, strategy_id=strategy.id))
        return PutCampaignResponse(
            strategy=strategy,
            metrics=put_campaign_metrics(groups, strategy.capital_allocation),
            open_groups=[g for g in groups if g.is_open],
            closed_groups=[g for g in groups if not g.is_open],
        )

    # ---------------- trade mutations ----------------
    def update_trade(self, user_id: str, trade_id: str, changes: Mapping[str, Any]) -> Trade:
        if "strategy_id" in changes and changes["strategy_id"] is not None:
            self.store.get_strategy(user_id, changes["strategy_id"])
        if "tag_id" in changes and changes["tag_id"] is not None:
            self.store.get_tag(user_id, changes["tag_id"])
        return self.store.update_trade(user_id, trade_id, changes)

    def assign_strategy(self, user_id: str, trade_ids: Sequence[str], strategy_id: Optional[str]) -> int:
        if strategy_id is not None:
            self.store.get_strategy(user_id, strategy_id)
        changes: dict[str, Any] = {"strategy_id": strategy_id}
        if strategy_id is None:
            changes["tag_id"] = None
        return self.store.update_trades(user_id, trade_ids, changes)

    def assign_tag(self, user_id: str, trade_ids: Sequence[str], tag_id: Optional[str]) -> int:
        if tag_id is not None:
            self.store.get_tag(user_id, tag_id)
        return self.store.update_trades(user_id, trade_ids, {"tag_id": tag_id})

    def pair_trades(self, user_id: str, trade_ids: Sequence[str]) -> PairResponse:
        unique_ids = list(dict.fromkeys(trade_ids))
        if len(unique_ids) < 2:
            raise JournalValidationError("Select at least 2 trades to pair.")
        for trade_id in unique_ids:
            self.store.get_trade(user_id, trade_id)
        pair_id = str(uuid4())
        self.store.update_trades(user_id, unique_ids, {"pair_id": pair_id})
        logger.info("Paired %d trades under %s", len(unique_ids), pair_id)
        return PairResponse(pair_id=pair_id, trade_ids=unique_ids)

    def unpair_trades(self, user_id: str, trade_ids: Sequence[str]) -> int:
        return self.store.update_trades(user_id, trade_ids, {"pair_id": None})

    def hide_trades(self, user_id: str, trade_ids: Sequence[str], hidden: bool = True) -> int:
        return self.store.update_trades(user_id, trade_ids, {"hidden": hidden})

    def delete_trades(self, user_id: str, trade_ids: Sequence[str]) -> int:
        return self.store.delete_trades(user_id, trade_ids)

    # ---------------- strategies & tags ----------------
    def list_strategies(self, user_id: str) -> list[Strategy]:
        return self.store.list_strategies(user_id)

    def get_strategy(self, user_id: str, strategy_id: str) -> Strategy:
        return self.store.get_strategy(user_id, strategy_id)

    def create_strategy(self, user_id: str, payload: StrategyCreate) -> Strategy:
        return self.store.create_strategy(user_id, payload)

    def update_strategy(self, user_id: str, strategy_id: str, changes: Mapping[str, Any]) -> Strategy:
        status = changes.get("status")
        if status is not None and status not in STRATEGY_STATUSES:
            raise JournalValidationError(f"Strategy status must be one of: {', '.join(STRATEGY_STATUSES)}")
        return self.store.update_strategy(user_id, strategy_id, changes)

    def delete_strategy(self, user_id: str, strategy_id: str) -> None:
        self.store.delete_strategy(user_id, strategy_id)

    def list_tags(self, user_id: str, strategy_id: str) -> list[Tag]:
        self.store.get_strategy(user_id, strategy_id)
        return self.store.list_tags(user_id, strategy_id=strategy_id)

    def create_tag(self, user_id: str, strategy_id: str, payload: TagCreate) -> Tag:
        return self.store.create_tag(user_id, strategy_id, payload)

    def update_tag(self, user_id: str, tag_id: str, changes: Mapping[str, Any]) -> Tag:
        return self.store.update_tag(user_id, tag_id, changes)

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        self.store.delete_tag(user_id, tag_id)

    # ---------------- benchmarks ----------------
    def benchmark_prices(self, user_id: str, ticker: str, start: Optional[date] = None) -> list[BenchmarkPrice]:
        return self.store.list_benchmark_prices(user_id, ticker, start)

    def upsert_benchmark_prices(self, user_id: str, ticker: str, prices: Sequence[BenchmarkPrice]) -> int:
        mismatched = [p for p in prices if p.ticker.upper() != ticker.upper()]
        if mismatched:
            raise JournalValidationError(f"All prices must be for {ticker.upper()}")
        return self.store.upsert_benchmark_prices(user_id, prices)


__all__ = ["JournalService"]
