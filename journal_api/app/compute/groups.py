"""Fold ledger legs into logical positions.

Legs sharing a ``pair_id`` form one group; a leg without one is its own group
keyed by its id. Groups may mix open and closed legs: open/closed is tracked
per leg and a group is open while any leg is.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

import polars as pl

from ..schemas import GroupSummary, Trade, utcnow
from .legs import legs_frame
from .symbols import parse_option_symbol

SECONDS_PER_DAY = 86_400


def days_in_trade(open_date: datetime, close_date: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days from open to close (or now), rounded up; 0 only when no time has passed."""

    end = close_date or now or utcnow()
    elapsed = (end - open_date).total_seconds()
    if elapsed <= 0:
        return 0
    return max(1, math.ceil(elapsed / SECONDS_PER_DAY))


def credit_captured_pct(total_pnl: float, initial_credit: float) -> Optional[float]:
    """Share of the collected premium kept so far; undefined without a credit leg."""

    if initial_credit <= 0:
        return None
    return total_pnl / initial_credit * 100.0


def display_symbol(symbols: list[str], is_pair: bool) -> str:
    if not symbols:
        return ""
    if len(symbols) > 1 and is_pair:
        return f"{symbols[0]} + {len(symbols) - 1} legs"
    return symbols[0]


def _aggregate(frame: pl.DataFrame) -> pl.DataFrame:
    return (
        frame.sort("date")
        .group_by("group_key", maintain_order=True)
        .agg(
            pl.col("is_pair").any().alias("is_pair"),
            pl.col("symbol").unique(maintain_order=True).alias("symbols"),
            pl.col("date").min().alias("open_date"),
            pl.col("date").max().alias("last_date"),
            pl.col("is_open").any().alias("is_open"),
            pl.col("is_open").sum().alias("open_legs"),
            pl.col("id").count().alias("leg_count"),
            pl.col("amount").sum().alias("total_amount"),
            pl.col("market_value").sum().alias("market_value"),
            pl.col("realized_pnl").sum().alias("realized_pnl"),
            pl.col("unrealized_pnl").sum().alias("unrealized_pnl"),
            pl.col("pnl").sum().alias("total_pnl"),
            pl.col("amount").filter(pl.col("amount") > 0).sum().alias("initial_credit"),
        )
    )


def build_groups(
    trades: Iterable[Trade],
    *,
    now: Optional[datetime] = None,
    include_trades: bool = True,
) -> list[GroupSummary]:
    """Group visible trades into positions, newest open date first."""

    visible = [t for t in trades if not t.hidden]
    frame = legs_frame(visible)
    if frame.is_empty():
        return []

    members: dict[str, list[Trade]] = defaultdict(list)
    for trade in visible:
        members[trade.pair_id or trade.id].append(trade)

    groups: list[GroupSummary] = []
    for row in _aggregate(frame).iter_rows(named=True):
        is_open = bool(row["is_open"])
        close_date = None if is_open else row["last_date"]
        symbols = list(row["symbols"])
        contract = parse_option_symbol(symbols[0]) if symbols else None
        total_pnl = float(row["total_pnl"])
        initial_credit = float(row["initial_credit"] or 0.0)
        legs = sorted(members[row["group_key"]], key=lambda t: t.date)

        groups.append(
            GroupSummary(
                group_id=row["group_key"],
                is_pair=bool(row["is_pair"]),
                symbol=display_symbol(symbols, bool(row["is_pair"])),
                open_date=row["open_date"],
                close_date=close_date,
                is_open=is_open,
                leg_count=int(row["leg_count"]),
                open_legs=int(row["open_legs"]),
                total_amount=float(row["total_amount"]),
                market_value=float(row["market_value"]),
                realized_pnl=float(row["realized_pnl"]),
                unrealized_pnl=float(row["unrealized_pnl"]),
                total_pnl=total_pnl,
                initial_credit=initial_credit,
                credit_captured_pct=credit_captured_pct(total_pnl, initial_credit),
                days_in_trade=days_in_trade(row["open_date"], close_date, now),
                strike=contract.strike if contract else None,
                expiration=contract.expiration if contract else None,
                right=contract.right if contract else None,
                trades=legs if include_trades else [],
            )
        )

    groups.sort(key=lambda g: g.open_date, reverse=True)
    return groups


def primary_leg(group: GroupSummary) -> Optional[Trade]:
    return group.trades[0] if group.trades else None


__all__ = [
    "build_groups",
    "credit_captured_pct",
    "days_in_trade",
    "display_symbol",
    "primary_leg",
]
