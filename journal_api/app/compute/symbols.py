"""Broker symbol canonicalisation.

Option and futures-option symbols arrive in at least two shapes:

* OCC style fixed width, ``NVDA  241220C00140000`` or ``./ESH6 EWF6  260130P5925``
* human readable, ``SPY 12/18/26 P670``

Both are folded into ``UNDERLYING:YYYY-MM-DD:STRIKE:R`` so ledger trades and
position snapshot rows can be joined regardless of the export they came from.
Parsing is best effort: anything unrecognised comes back trimmed and simply
fails to match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..constants import ASSET_TYPE_ALIASES, OPTION_ASSET_TYPES, STOCK

logger = logging.getLogger(__name__)

# Anchor on the trailing date/right/strike block; the underlying may contain
# spaces or slashes (futures roots).
_OCC_PATTERN = re.compile(r"^(?P<underlying>.+?)\s+(?P<date>\d{6})(?P<right>[CP])(?P<strike>\d+)$", re.IGNORECASE)
_HUMAN_PATTERN = re.compile(
    r"^(?P<underlying>.+?)\s+(?P<date>\d{1,2}/\d{1,2}/\d{2})\s+(?P<right>[CP])(?P<strike>\d+(?:\.\d+)?)$",
    re.IGNORECASE,
)
_CANONICAL_PATTERN = re.compile(
    r"^(?P<underlying>.+):(?P<date>\d{4}-\d{2}-\d{2}):(?P<strike>\d+(?:\.\d+)?):(?P<right>[CP])$",
    re.IGNORECASE,
)

OCC_STRIKE_DIGITS = 8
OCC_STRIKE_SCALE = 1000.0


@dataclass(frozen=True)
class OptionContract:
    underlying: str
    expiration: date
    strike: float
    right: str

    @property
    def key(self) -> str:
        return f"{self.underlying}:{self.expiration.isoformat()}:{self.strike:.2f}:{self.right}"

    @property
    def is_put(self) -> bool:
        return self.right == "P"


def normalize_asset_type(value: Optional[str], default: str = STOCK) -> str:
    """Fold broker spellings ("Equity Option", "Future") into the ledger vocabulary."""

    if value is None:
        return default
    cleaned = " ".join(str(value).replace("-", " ").split()).upper()
    if not cleaned:
        return default
    if cleaned in ASSET_TYPE_ALIASES:
        return ASSET_TYPE_ALIASES[cleaned]
    underscored = cleaned.replace(" ", "_")
    return ASSET_TYPE_ALIASES.get(underscored, underscored)


def decode_occ_strike(strike: str) -> float:
    """An 8-digit OCC strike carries three implied decimals; shorter strikes are whole dollars."""

    if len(strike) == OCC_STRIKE_DIGITS:
        return int(strike) / OCC_STRIKE_SCALE
    return float(strike)


def parse_option_symbol(symbol: str) -> OptionContract | None:
    """Return the structured contract for an OCC, human-readable or canonical symbol."""

    text = (symbol or "").strip()
    if not text:
        return None

    match = _OCC_PATTERN.match(text)
    if match:
        fmt = "%y%m%d"
        strike = decode_occ_strike(match["strike"])
    else:
        match = _HUMAN_PATTERN.match(text)
        if match:
            fmt = "%m/%d/%y"
        else:
            match = _CANONICAL_PATTERN.match(text)
            fmt = "%Y-%m-%d"
            if not match:
                return None
        strike = float(match["strike"])

    try:
        expiration = datetime.strptime(match["date"], fmt).date()
    except ValueError:
        logger.debug("Unparseable expiration in option symbol %r", symbol)
        return None

    return OptionContract(
        underlying=match["underlying"].strip(),
        expiration=expiration,
        strike=strike,
        right=match["right"].upper(),
    )


def canonicalize(symbol: str, asset_type: Optional[str]) -> str:
    """Structural join key for a symbol; the trimmed symbol when it cannot be parsed."""

    trimmed = (symbol or "").strip()
    if normalize_asset_type(asset_type) not in OPTION_ASSET_TYPES:
        return trimmed

    contract = parse_option_symbol(trimmed)
    if contract is None:
        logger.debug("Could not parse option symbol %r", symbol)
        return trimmed
    return contract.key


__all__ = [
    "OptionContract",
    "canonicalize",
    "decode_occ_strike",
    "normalize_asset_type",
    "parse_option_symbol",
]
