"""Portfolio, strategy and put-campaign metrics built on the legs/groups frames."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

import numpy as np
import polars as pl

from ..schemas import (
    GroupSummary,
    PortfolioSummary,
    PutCampaignMetrics,
    Strategy,
    StrategyPerformance,
    Tag,
    TagPerformance,
    Trade,
)
from .groups import build_groups, primary_leg
from .legs import legs_frame, pnl_totals


def win_rate(wins: int, losses: int) -> float:
    """Percentage of wins among decided outcomes; 0 when nothing has closed."""

    decided = wins + losses
    if decided == 0:
        return 0.0
    return wins / decided * 100.0


def display_percent(value: float) -> int:
    """Round half up to a whole percent, the way rates are shown."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def roi(total_pnl: float, capital_allocation: float) -> Optional[float]:
    """Return on allocated capital in percent; ``None`` (N/A) without capital."""

    if not capital_allocation:
        return None
    return total_pnl / capital_allocation * 100.0


def trade_outcomes(frame: pl.DataFrame) -> tuple[int, int]:
    """Trade-level wins/losses over closing legs (CLOSE or EXP in the action)."""

    if frame.is_empty():
        return 0, 0
    closing = frame.filter(pl.col("is_closing"))
    return int((closing["amount"] > 0).sum()), int((closing["amount"] < 0).sum())


def portfolio_summary(trades: Sequence[Trade]) -> PortfolioSummary:
    frame = legs_frame(trades)
    totals = pnl_totals(frame)
    wins, losses = trade_outcomes(frame)
    groups = build_groups(trades, include_trades=False)
    return PortfolioSummary(
        **totals,
        open_positions=sum(1 for g in groups if g.is_open),
        wins=wins,
        losses=losses,
        win_rate=display_percent(win_rate(wins, losses)),
        trade_count=frame.height,
    )


def strategy_performance(
    strategy: Strategy,
    trades: Sequence[Trade],
    tags: Sequence[Tag] = (),
) -> StrategyPerformance:
    """P&L and ROI of one strategy, with a block per dashboard tag."""

    frame = legs_frame(t for t in trades if t.strategy_id == strategy.id)
    totals = pnl_totals(frame)

    dashboard_tags: list[TagPerformance] = []
    for tag in tags:
        if not tag.show_on_dashboard or tag.strategy_id != strategy.id:
            continue
        tagged = frame.filter(pl.col("tag_id") == tag.id)
        dashboard_tags.append(TagPerformance(tag_id=tag.id, name=tag.name, trade_count=tagged.height, **pnl_totals(tagged)))

    return StrategyPerformance(
        strategy=strategy,
        trade_count=frame.height,
        roi=roi(totals["total_pnl"], strategy.capital_allocation),
        dashboard_tags=dashboard_tags,
        **totals,
    )


def max_drawdown_pct(groups: Sequence[GroupSummary], capital_allocation: float) -> float:
    """Largest peak-to-trough drop of account value over closed groups, in percent.

    Closed groups are replayed by close date; account value is the allocated
    capital plus cumulative P&L, and the peak starts from zero cumulative P&L.
    """

    closed = sorted((g for g in groups if not g.is_open and g.close_date is not None), key=lambda g: g.close_date)
    if not closed:
        return 0.0

    cumulative = np.cumsum([g.total_pnl for g in closed], dtype=float)
    peak_pnl = np.maximum.accumulate(np.maximum(cumulative, 0.0))
    account = capital_allocation + cumulative
    peak_account = capital_allocation + peak_pnl
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown = np.where(peak_account > 0, (peak_account - account) / peak_account, 0.0)
    return float(max(drawdown.max(), 0.0) * 100.0)


def notional_value(groups: Sequence[GroupSummary]) -> float:
    """Σ strike × multiplier × quantity over open groups, taken from each group's primary leg."""

    total = 0.0
    for group in groups:
        if not group.is_open:
            continue
        leg = primary_leg(group)
        if leg is None or group.strike is None:
            continue
        total += group.strike * (leg.multiplier or 0.0) * (leg.quantity or 0.0)
    return total


def notional_leverage(notional: float, net_liquidity: float) -> Optional[float]:
    if net_liquidity <= 0:
        return None
    return notional / net_liquidity


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def put_campaign_metrics(
    groups: Sequence[GroupSummary],
    capital_allocation: float,
) -> Optional[PutCampaignMetrics]:
    """Grid metrics for the put campaign tracker; ``None`` when there are no groups."""

    if not groups:
        return None

    closed = [g for g in groups if not g.is_open]
    opened = [g for g in groups if g.is_open]
    winners = [g.total_pnl for g in closed if g.total_pnl > 0]
    losers = [g.total_pnl for g in closed if g.total_pnl < 0]

    running_pnl = sum(g.total_pnl for g in groups)
    net_liquidity = capital_allocation + running_pnl
    notional = notional_value(groups)

    dte = [
        (g.expiration - g.open_date.date()).days
        for g in groups
        if g.expiration is not None and (g.expiration - g.open_date.date()).days >= 0
    ]
    dit = [g.days_in_trade for g in closed if g.close_date is not None]

    return PutCampaignMetrics(
        total_trades=len(groups),
        total_closed=len(closed),
        total_open=len(opened),
        wins=len(winners),
        losses=len(losers),
        win_rate=display_percent(win_rate(len(winners), len(losers))),
        notional_value=notional,
        notional_leverage=notional_leverage(notional, net_liquidity),
        running_pnl=running_pnl,
        net_liquidity=net_liquidity,
        avg_credit=_mean([g.initial_credit for g in groups]),
        avg_winner=_mean(winners),
        avg_loser=_mean(losers),
        avg_dte=_mean(dte),
        avg_dit=_mean(dit),
        max_drawdown_pct=max_drawdown_pct(groups, capital_allocation),
        allocated_capital=capital_allocation,
        ror=roi(running_pnl, capital_allocation),
    )


__all__ = [
    "display_percent",
    "max_drawdown_pct",
    "notional_leverage",
    "notional_value",
    "portfolio_summary",
    "put_campaign_metrics",
    "roi",
    "strategy_performance",
    "trade_outcomes",
    "win_rate",
]
