"""Canonicalisation, reconciliation and P&L aggregation for the trade ledger."""

from journal_api.app.compute.groups import build_groups, days_in_trade
from journal_api.app.compute.metrics import portfolio_summary, put_campaign_metrics, strategy_performance
from journal_api.app.compute.reconcile import ReconcilePlan, reconcile, select_open_candidates
from journal_api.app.compute.symbols import OptionContract, canonicalize, parse_option_symbol

__all__ = [
    "OptionContract",
    "ReconcilePlan",
    "build_groups",
    "canonicalize",
    "days_in_trade",
    "parse_option_symbol",
    "portfolio_summary",
    "put_campaign_metrics",
    "reconcile",
    "select_open_candidates",
    "strategy_performance",
]
