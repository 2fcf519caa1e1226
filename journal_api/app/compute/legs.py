"""Per-leg sign conventions and the open/closed predicates.

Every P&L figure in the service is built from these rules:

* a leg is short (sign -1) when its action mentions SELL or SHORT, else long;
* an open leg (``mark_price`` not null, zero included) is worth
  ``|mark| * quantity * multiplier * sign`` and its unrealized P&L is that
  value plus the signed cash flow ``amount``;
* a closed leg's realized P&L is ``amount``.

The same rules exist twice: as scalar helpers for single trades and as polars
expressions for frame-wide aggregation.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import polars as pl

from ..constants import BUY_MARKERS, CLOSE_MARKERS, OPEN_MARKERS, SHORT_MARKERS
from ..schemas import Trade


def _has_marker(action: str | None, markers: Sequence[str]) -> bool:
    label = (action or "").upper()
    return any(marker in label for marker in markers)


def direction_sign(action: str | None) -> int:
    return -1 if _has_marker(action, SHORT_MARKERS) else 1


def is_buy_action(action: str | None) -> bool:
    return _has_marker(action, BUY_MARKERS)


def is_opening_action(action: str | None) -> bool:
    return _has_marker(action, OPEN_MARKERS)


def is_closing_action(action: str | None) -> bool:
    """Closing trades for trade-level win/loss counting (CLOSE or EXP in the action)."""

    return _has_marker(action, CLOSE_MARKERS)


def is_open(trade: Trade) -> bool:
    """The one open/closed signal for aggregation: mark price nullity, not magnitude."""

    return trade.mark_price is not None


def market_value(trade: Trade) -> float:
    if not is_open(trade):
        return 0.0
    return abs(trade.mark_price) * trade.quantity * trade.multiplier * direction_sign(trade.action)


def unrealized_pnl(trade: Trade) -> float:
    if not is_open(trade):
        return 0.0
    return market_value(trade) + trade.amount


# --- Frame form ---------------------------------------------------------------


LEG_SCHEMA = {
    "id": pl.Utf8,
    "group_key": pl.Utf8,
    "is_pair": pl.Boolean,
    "symbol": pl.Utf8,
    "date": pl.Datetime("us", "UTC"),
    "action": pl.Utf8,
    "quantity": pl.Float64,
    "multiplier": pl.Float64,
    "amount": pl.Float64,
    "mark_price": pl.Float64,
    "strategy_id": pl.Utf8,
    "tag_id": pl.Utf8,
}


def _marker_pattern(markers: Sequence[str]) -> str:
    return "|".join(markers)


def legs_frame(trades: Iterable[Trade]) -> pl.DataFrame:
    """Build the per-leg frame with sign, market value and P&L columns.

    Hidden trades are dropped here so that no aggregate can see them.
    """

    rows = [
        {
            "id": t.id,
            "group_key": t.pair_id or t.id,
            "is_pair": t.pair_id is not None,
            "symbol": t.symbol,
            "date": t.date,
            "action": (t.action or "").upper(),
            "quantity": float(t.quantity or 0.0),
            "multiplier": float(t.multiplier or 0.0),
            "amount": float(t.amount or 0.0),
            "mark_price": t.mark_price,
            "strategy_id": t.strategy_id,
            "tag_id": t.tag_id,
        }
        for t in trades
        if not t.hidden
    ]
    frame = pl.DataFrame(rows, schema=LEG_SCHEMA) if rows else pl.DataFrame(schema=LEG_SCHEMA)

    sign = (
        pl.when(pl.col("action").str.contains(_marker_pattern(SHORT_MARKERS)))
        .then(pl.lit(-1.0))
        .otherwise(pl.lit(1.0))
    )
    frame = frame.with_columns(
        sign.alias("sign"),
        pl.col("mark_price").is_not_null().alias("is_open"),
        pl.col("action").str.contains(_marker_pattern(CLOSE_MARKERS)).alias("is_closing"),
    )
    frame = frame.with_columns(
        pl.when(pl.col("is_open"))
        .then(pl.col("mark_price").abs() * pl.col("quantity") * pl.col("multiplier") * pl.col("sign"))
        .otherwise(pl.lit(0.0))
        .alias("market_value"),
    )
    return frame.with_columns(
        pl.when(pl.col("is_open")).then(pl.lit(0.0)).otherwise(pl.col("amount")).alias("realized_pnl"),
        pl.when(pl.col("is_open"))
        .then(pl.col("market_value") + pl.col("amount"))
        .otherwise(pl.lit(0.0))
        .alias("unrealized_pnl"),
    ).with_columns((pl.col("realized_pnl") + pl.col("unrealized_pnl")).alias("pnl"))


def pnl_totals(frame: pl.DataFrame) -> dict[str, float]:
    """Realized, unrealized and total P&L of a legs frame."""

    if frame.is_empty():
        return {"realized_pnl": 0.0, "unrealized_pnl": 0.0, "total_pnl": 0.0}
    realized = float(frame["realized_pnl"].sum())
    unrealized = float(frame["unrealized_pnl"].sum())
    return {"realized_pnl": realized, "unrealized_pnl": unrealized, "total_pnl": realized + unrealized}


__all__ = [
    "LEG_SCHEMA",
    "direction_sign",
    "is_buy_action",
    "is_closing_action",
    "is_open",
    "is_opening_action",
    "legs_frame",
    "market_value",
    "pnl_totals",
    "unrealized_pnl",
]
