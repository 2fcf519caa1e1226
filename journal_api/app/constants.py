"""Ledger vocabulary: actions, asset types and contract defaults."""

from __future__ import annotations

from typing import Dict


UNKNOWN_ACTION = "UNKNOWN"

# Substrings inspected on the upper-cased action label.
SHORT_MARKERS = ("SELL", "SHORT")
BUY_MARKERS = ("BUY",)
OPEN_MARKERS = ("OPEN",)
CLOSE_MARKERS = ("CLOSE", "EXP")

OPTION = "OPTION"
FUTURES_OPTION = "FUTURES_OPTION"
STOCK = "STOCK"
FUTURES = "FUTURES"

OPTION_ASSET_TYPES = frozenset({OPTION, FUTURES_OPTION})

# Broker spellings folded into the canonical asset type vocabulary.
ASSET_TYPE_ALIASES: Dict[str, str] = {
    "OPTION": OPTION,
    "EQUITY OPTION": OPTION,
    "EQUITY_OPTION": OPTION,
    "INDEX OPTION": OPTION,
    "FUTURES_OPTION": FUTURES_OPTION,
    "FUTURES OPTION": FUTURES_OPTION,
    "FUTURE OPTION": FUTURES_OPTION,
    "FUTURE_OPTION": FUTURES_OPTION,
    "STOCK": STOCK,
    "EQUITY": STOCK,
    "ETF": STOCK,
    "FUTURES": FUTURES,
    "FUTURE": FUTURES,
}

STANDARD_OPTION_MULTIPLIER = 100.0
DEFAULT_MULTIPLIER = 1.0

DEFAULT_STRATEGY_STATUS = "active"
STRATEGY_STATUSES = ("active", "closed")
DEFAULT_BENCHMARK_TICKER = "SPY"

UNTAGGED_KEY = "untagged"
UNTAGGED_LABEL = "Untagged Trades"
