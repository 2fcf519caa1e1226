from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_BENCHMARK_TICKER, DEFAULT_STRATEGY_STATUS, STOCK


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC; aware ones are converted."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# --- Ledger entities ----------------------------------------------------------


class ParsedTrade(BaseModel):
    """Canonical trade shape produced by the CSV ingest parser."""

    symbol: str
    date: datetime
    action: str
    quantity: float = 0.0
    price: float = 0.0
    fees: float = 0.0
    amount: float = 0.0
    multiplier: float = 1.0
    asset_type: str = STOCK
    import_hash: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _date_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Trade(ParsedTrade):
    """A ledger entry. ``mark_price`` nullity is the open/closed signal."""

    id: str
    user_id: str
    mark_price: Optional[float] = None
    snapshot_pnl: Optional[float] = None
    pair_id: Optional[str] = None
    strategy_id: Optional[str] = None
    tag_id: Optional[str] = None
    notes: Optional[str] = None
    hidden: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class TradeUpdate(BaseModel):
    """Mutable trade fields; only fields present in the request are applied."""

    mark_price: Optional[float] = None
    strategy_id: Optional[str] = None
    tag_id: Optional[str] = None
    pair_id: Optional[str] = None
    hidden: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("hidden")
    @classmethod
    def _hidden_not_null(cls, value: Optional[bool]) -> bool:
        if value is None:
            raise ValueError("hidden must be true or false")
        return value


class PositionSnapshot(BaseModel):
    symbol: str
    canonical_symbol: str
    asset_type: str = STOCK
    quantity: float = 0.0
    mark: float = 0.0
    pnl: Optional[float] = None


class Strategy(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    capital_allocation: float = Field(default=0.0, ge=0)
    status: str = DEFAULT_STRATEGY_STATUS
    benchmark_ticker: str = DEFAULT_BENCHMARK_TICKER
    is_hidden: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class StrategyCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    capital_allocation: float = Field(default=0.0, ge=0)
    benchmark_ticker: str = DEFAULT_BENCHMARK_TICKER


class StrategyUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    capital_allocation: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = None
    benchmark_ticker: Optional[str] = None
    is_hidden: Optional[bool] = None


class Tag(BaseModel):
    id: str
    user_id: str
    strategy_id: Optional[str] = None
    name: str
    show_on_dashboard: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    show_on_dashboard: bool = True


class TagUpdate(BaseModel):
    name: Optional[str] = None
    show_on_dashboard: Optional[bool] = None


class BenchmarkPrice(BaseModel):
    ticker: str
    date: date
    price: float


# --- Operation reports --------------------------------------------------------


class ImportStats(BaseModel):
    total: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0


class MarkUpdate(BaseModel):
    trade_id: str
    mark_price: Optional[float] = None
    snapshot_pnl: Optional[float] = None


class ReconcileStats(BaseModel):
    positions: int = 0
    candidates: int = 0
    matched: int = 0
    cleared: int = 0
    unmatched: int = 0
    updated: int = 0
    failed: int = 0


class BulkUpdateResponse(BaseModel):
    updated: int


class PairResponse(BaseModel):
    pair_id: str
    trade_ids: List[str]


class TradeIdsRequest(BaseModel):
    trade_ids: List[str] = Field(default_factory=list)


class AssignStrategyRequest(TradeIdsRequest):
    strategy_id: Optional[str] = None


class AssignTagRequest(TradeIdsRequest):
    tag_id: Optional[str] = None


class HideRequest(TradeIdsRequest):
    hidden: bool = True


# --- Aggregates ---------------------------------------------------------------


class GroupSummary(BaseModel):
    """One logical position: a pair of legs, or a single leg."""

    group_id: str
    is_pair: bool
    symbol: str
    open_date: datetime
    close_date: Optional[datetime] = None
    is_open: bool
    leg_count: int
    open_legs: int = 0
    total_amount: float = 0.0
    market_value: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_pnl: float = 0.0
    initial_credit: float = 0.0
    credit_captured_pct: Optional[float] = None
    days_in_trade: int = 0
    strike: Optional[float] = None
    expiration: Optional[date] = None
    right: Optional[str] = None
    trades: List[Trade] = Field(default_factory=list)


class PortfolioSummary(BaseModel):
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_pnl: float = 0.0
    open_positions: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: int = 0
    trade_count: int = 0


class TagPerformance(BaseModel):
    tag_id: str
    name: str
    trade_count: int = 0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_pnl: float = 0.0


class StrategyPerformance(BaseModel):
    strategy: Strategy
    trade_count: int = 0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_pnl: float = 0.0
    roi: Optional[float] = Field(default=None, description="Percent of capital; null when capital is 0")
    dashboard_tags: List[TagPerformance] = Field(default_factory=list)


class TagGroups(BaseModel):
    key: str
    tag_id: Optional[str] = None
    name: str
    groups: List[GroupSummary] = Field(default_factory=list)


class StrategyDetail(BaseModel):
    performance: StrategyPerformance
    tags: List[Tag] = Field(default_factory=list)
    tag_groups: List[TagGroups] = Field(default_factory=list)


class PutCampaignMetrics(BaseModel):
    total_trades: int = 0
    total_closed: int = 0
    total_open: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: int = 0
    notional_value: float = 0.0
    notional_leverage: Optional[float] = None
    running_pnl: float = 0.0
    net_liquidity: float = 0.0
    avg_credit: float = 0.0
    avg_winner: float = 0.0
    avg_loser: float = 0.0
    avg_dte: float = 0.0
    avg_dit: float = 0.0
    max_drawdown_pct: float = 0.0
    allocated_capital: float = 0.0
    ror: Optional[float] = None


class PutCampaignResponse(BaseModel):
    strategy: Strategy
    metrics: Optional[PutCampaignMetrics] = None
    open_groups: List[GroupSummary] = Field(default_factory=list)
    closed_groups: List[GroupSummary] = Field(default_factory=list)
