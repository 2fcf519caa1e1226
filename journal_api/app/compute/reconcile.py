"""Match open ledger legs against an uploaded position snapshot.

The snapshot is taken to be complete: an open leg that no longer appears in it
has been closed since, so its mark price is cleared.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..constants import SHORT_MARKERS
from ..schemas import MarkUpdate, PositionSnapshot, ReconcileStats, Trade
from .legs import is_buy_action, is_closing_action, is_open, is_opening_action
from .symbols import canonicalize

logger = logging.getLogger(__name__)

_QTY_EPSILON = 1e-9


@dataclass
class ReconcilePlan:
    updates: list[MarkUpdate] = field(default_factory=list)
    stats: ReconcileStats = field(default_factory=ReconcileStats)


def instrument_key(trade: Trade) -> str:
    return canonicalize(trade.symbol, trade.asset_type)


def _signed_quantity(action: str) -> float:
    label = action.upper()
    if is_buy_action(label):
        return 1.0
    if any(marker in label for marker in SHORT_MARKERS):
        return -1.0
    return 0.0


def net_open_quantity(trades: Iterable[Trade]) -> dict[str, float]:
    """Signed contracts still held per instrument (buys add, sells subtract, expiry flattens)."""

    net: dict[str, float] = defaultdict(float)
    for trade in sorted(trades, key=lambda t: t.date):
        if trade.hidden:
            continue
        action = (trade.action or "").upper()
        key = instrument_key(trade)
        if "EXP" in action:
            net[key] = 0.0
        elif is_opening_action(action) or is_closing_action(action):
            net[key] += _signed_quantity(action) * (trade.quantity or 0.0)
    return dict(net)


def select_open_candidates(trades: Sequence[Trade]) -> list[Trade]:
    """The single "could be open" predicate used by reconciliation.

    A trade is a candidate when it is an opening leg of an instrument that
    still nets to a non-zero quantity, or when it currently carries a mark
    price (so a stale mark can be cleared).

    After a partial close the opening leg stays a candidate at its full
    quantity; legs are never split.
    """

    net = net_open_quantity(trades)
    still_held = {key for key, qty in net.items() if abs(qty) > _QTY_EPSILON}

    candidates: list[Trade] = []
    seen: set[str] = set()
    for trade in trades:
        if trade.id in seen:
            continue
        opening_held = not trade.hidden and is_opening_action(trade.action) and instrument_key(trade) in still_held
        if opening_held or is_open(trade):
            candidates.append(trade)
            seen.add(trade.id)
    return candidates


def snapshot_index(positions: Iterable[PositionSnapshot]) -> tuple[dict[str, PositionSnapshot], dict[str, PositionSnapshot]]:
    """Snapshot rows keyed by canonical symbol and by raw symbol; later rows win."""

    by_key: dict[str, PositionSnapshot] = {}
    by_symbol: dict[str, PositionSnapshot] = {}
    for position in positions:
        by_key[position.canonical_symbol] = position
        by_symbol[position.symbol.strip()] = position
    return by_key, by_symbol


def reconcile(ledger: Sequence[Trade], positions: Sequence[PositionSnapshot]) -> ReconcilePlan:
    """Plan mark-price updates for every open candidate in ``ledger``."""

    by_key, by_symbol = snapshot_index(positions)
    candidates = select_open_candidates(ledger)
    plan = ReconcilePlan(stats=ReconcileStats(positions=len(positions), candidates=len(candidates)))

    for trade in candidates:
        position = by_key.get(instrument_key(trade)) or by_symbol.get(trade.symbol.strip())
        if position is not None:
            plan.updates.append(
                MarkUpdate(trade_id=trade.id, mark_price=abs(position.mark), snapshot_pnl=position.pnl)
            )
            plan.stats.matched += 1
        elif trade.mark_price is not None:
            plan.updates.append(MarkUpdate(trade_id=trade.id, mark_price=None, snapshot_pnl=None))
            plan.stats.cleared += 1
        else:
            logger.debug("No snapshot row for open candidate %s (%s)", trade.id, trade.symbol)

    plan.stats.unmatched = plan.stats.candidates - plan.stats.matched
    plan.stats.updated = len(plan.updates)
    return plan


__all__ = [
    "ReconcilePlan",
    "instrument_key",
    "net_open_quantity",
    "reconcile",
    "select_open_candidates",
    "snapshot_index",
]
