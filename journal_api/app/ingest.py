from __future__ import annotations

import io
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Mapping, Optional, Union

import pandas as pd

from .compute.symbols import canonicalize, normalize_asset_type
from .constants import (
    ASSET_TYPE_ALIASES,
    DEFAULT_MULTIPLIER,
    OPTION,
    STANDARD_OPTION_MULTIPLIER,
    STOCK,
    UNKNOWN_ACTION,
)
from .errors import DuplicateImportError, LedgerError, NoValidRowsError
from .schemas import ImportStats, ParsedTrade, PositionSnapshot

if TYPE_CHECKING:
    from .services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)

CsvSource = Union[str, Path, bytes, IO[bytes], IO[str]]

TRADE_ROW_TYPE = "Trade"
KNOWN_ASSET_TYPES = frozenset(ASSET_TYPE_ALIASES.values())


# --- Broker formats -----------------------------------------------------------


ColumnMap = dict[str, tuple[str, ...]]


@dataclass(frozen=True)
class BrokerFormat:
    """Field-mapping table for one broker export layout.

    ``fields`` maps each canonical field to the header names that may carry
    it, in priority order. ``signature`` lists the headers whose presence
    identifies the layout.
    """

    name: str
    signature: tuple[str, ...]
    fields: Mapping[str, tuple[str, ...]]

    def matches(self, headers: Mapping[str, str]) -> bool:
        return all(h.lower() in headers for h in self.signature)

    def resolve(self, headers: Mapping[str, str]) -> ColumnMap:
        """Map each field onto the headers actually present (case-insensitive)."""

        return {
            field: tuple(headers[c.lower()] for c in candidates if c.lower() in headers)
            for field, candidates in self.fields.items()
        }


TASTYTRADE = BrokerFormat(
    name="tastytrade",
    signature=("Average Price", "Value"),
    fields={
        "symbol": ("Symbol",),
        "date": ("Date", "Time"),
        "action": ("Action",),
        "quantity": ("Quantity",),
        "price": ("Average Price", "Price"),
        "amount": ("Value", "Amount"),
        "commissions": ("Commissions",),
        "fees": ("Fees",),
        "row_type": ("Type",),
        "instrument_type": ("Instrument Type",),
        "multiplier": ("Multiplier",),
    },
)

GENERIC = BrokerFormat(
    name="generic",
    signature=("Price", "Amount"),
    fields={
        "symbol": ("Symbol",),
        "date": ("Date", "Time"),
        "action": ("Action",),
        "quantity": ("Quantity",),
        "price": ("Price", "Average Price"),
        "amount": ("Amount", "Value"),
        "commissions": ("Commissions",),
        "fees": ("Fees",),
        "row_type": ("Type",),
        "instrument_type": ("Instrument Type",),
        "multiplier": ("Multiplier",),
    },
)

TRANSACTION_FORMATS: tuple[BrokerFormat, ...] = (TASTYTRADE, GENERIC)

POSITIONS = BrokerFormat(
    name="positions",
    signature=("Symbol",),
    fields={
        "symbol": ("Symbol",),
        "mark": ("Mark", "Market Value", "Current Price", "Price"),
        "pnl": ("P/L Open", "Profit/Loss", "Unrealized P&L", "P&L"),
        "quantity": ("Quantity", "Qty"),
        "asset_type": ("Type", "Instrument Type"),
    },
)


def detect_format(headers: Mapping[str, str]) -> BrokerFormat:
    for fmt in TRANSACTION_FORMATS:
        if fmt.matches(headers):
            return fmt
    return GENERIC


# --- Value helpers ------------------------------------------------------------


_NON_NUMERIC = re.compile(r"[^0-9.\-]+")


def sanitize_currency(value: Any) -> float:
    """Parse "$1,234.50", "(45.67)" or "-3" into a float; anything else is 0."""

    if value is None:
        return 0.0
    text = str(value).strip()
    if not text:
        return 0.0
    negative = text.startswith("(") and text.endswith(")")
    cleaned = _NON_NUMERIC.sub("", text)
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -abs(number) if negative else number


def parse_timestamp(value: str) -> Optional[datetime]:
    """UTC datetime for a broker date string, or ``None`` when it cannot be parsed."""

    if not value:
        return None
    stamp = pd.to_datetime(value, errors="coerce", utc=True)
    if stamp is None or pd.isna(stamp):
        return None
    return stamp.to_pydatetime()


def import_hash(fields: Mapping[str, Any]) -> str:
    """Deterministic 32-bit rolling hash of the identifying broker fields.

    Not cryptographic: it only has to tell personal-scale imports apart.
    """

    payload = json.dumps(dict(fields), separators=(",", ":"), ensure_ascii=False, default=str)
    h = 0
    for ch in payload:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return f"{h:08x}"


def _pick(row: Mapping[str, str], columns: tuple[str, ...]) -> str:
    for column in columns:
        value = row.get(column)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return ""


# --- CSV reading --------------------------------------------------------------


def _open_source(source: CsvSource):
    if isinstance(source, bytes):
        return io.BytesIO(source)
    if isinstance(source, str) and "\n" in source:
        return io.StringIO(source)
    return source


def read_csv_rows(source: CsvSource) -> tuple[dict[str, str], list[dict[str, str]]]:
    """Read a header-row CSV as strings.

    Returns a lower-cased header lookup (``{"symbol": "Symbol"}``) and the rows.
    """

    try:
        frame = pd.read_csv(
            _open_source(source),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError as exc:
        raise NoValidRowsError("The uploaded CSV is empty.") from exc
    except pd.errors.ParserError as exc:
        raise NoValidRowsError(f"The uploaded file is not a readable CSV: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise NoValidRowsError("The uploaded CSV is not UTF-8 encoded; re-export it as UTF-8 and try again.") from exc

    frame.columns = [str(c).strip() for c in frame.columns]
    headers = {c.lower(): c for c in frame.columns}
    return headers, frame.to_dict(orient="records")


# --- Transactions -------------------------------------------------------------


def _resolve_multiplier(raw: str, instrument_type: str) -> float:
    multiplier = sanitize_currency(raw)
    if multiplier:
        return abs(multiplier)
    if "option" in instrument_type.lower():
        return STANDARD_OPTION_MULTIPLIER
    return DEFAULT_MULTIPLIER


def _resolve_asset_type(instrument_type: str, multiplier: float) -> str:
    asset_type = normalize_asset_type(instrument_type, default="")
    if asset_type in KNOWN_ASSET_TYPES:
        return asset_type
    return OPTION if multiplier == STANDARD_OPTION_MULTIPLIER else STOCK


def _parse_transaction_row(row: Mapping[str, str], columns: ColumnMap) -> ParsedTrade | None:
    if columns["row_type"] and _pick(row, columns["row_type"]) != TRADE_ROW_TYPE:
        return None

    symbol = _pick(row, columns["symbol"])
    if not symbol:
        return None

    raw_date = _pick(row, columns["date"])
    executed_at = parse_timestamp(raw_date)
    if executed_at is None:
        return None

    raw_action = _pick(row, columns["action"])
    raw_quantity = _pick(row, columns["quantity"])
    raw_price = _pick(row, columns["price"])
    raw_amount = _pick(row, columns["amount"])

    instrument_type = _pick(row, columns["instrument_type"])
    multiplier = _resolve_multiplier(_pick(row, columns["multiplier"]), instrument_type)

    return ParsedTrade(
        symbol=symbol,
        date=executed_at,
        action=raw_action.upper() or UNKNOWN_ACTION,
        quantity=abs(sanitize_currency(raw_quantity)),
        price=sanitize_currency(raw_price),
        fees=abs(sanitize_currency(_pick(row, columns["commissions"]))) + abs(sanitize_currency(_pick(row, columns["fees"]))),
        amount=sanitize_currency(raw_amount),
        multiplier=multiplier,
        asset_type=_resolve_asset_type(instrument_type, multiplier),
        import_hash=import_hash(
            {
                "symbol": symbol,
                "date": raw_date,
                "action": raw_action,
                "qty": raw_quantity,
                "price": raw_price,
                "amount": raw_amount,
            }
        ),
    )


def parse_transactions(source: CsvSource) -> list[ParsedTrade]:
    """Parse a broker transaction export into canonical trades.

    Non-trade rows and rows without a symbol or a parseable date are dropped.
    Raises ``NoValidRowsError`` when nothing survives.
    """

    headers, rows = read_csv_rows(source)
    fmt = detect_format(headers)
    columns = fmt.resolve(headers)

    trades: list[ParsedTrade] = []
    for index, row in enumerate(rows):
        trade = _parse_transaction_row(row, columns)
        if trade is None:
            logger.debug("Skipping transaction row %d (not an executed trade or incomplete)", index)
            continue
        trades.append(trade)

    logger.info("Parsed %d of %d %s transaction rows", len(trades), len(rows), fmt.name)
    if not trades:
        raise NoValidRowsError("No valid trades found in CSV.")
    return trades


# --- Positions ----------------------------------------------------------------


def parse_positions(source: CsvSource) -> list[PositionSnapshot]:
    """Parse a position snapshot export; every row needs a symbol."""

    headers, rows = read_csv_rows(source)
    columns = POSITIONS.resolve(headers)

    positions: list[PositionSnapshot] = []
    for index, row in enumerate(rows):
        symbol = _pick(row, columns["symbol"])
        if not symbol:
            logger.debug("Skipping position row %d without a symbol", index)
            continue
        asset_type = normalize_asset_type(_pick(row, columns["asset_type"]))
        raw_pnl = _pick(row, columns["pnl"])
        positions.append(
            PositionSnapshot(
                symbol=symbol,
                canonical_symbol=canonicalize(symbol, asset_type),
                asset_type=asset_type,
                quantity=sanitize_currency(_pick(row, columns["quantity"])),
                mark=sanitize_currency(_pick(row, columns["mark"])),
                pnl=sanitize_currency(raw_pnl) if raw_pnl else None,
            )
        )

    logger.info("Parsed %d of %d position rows", len(positions), len(rows))
    if not positions:
        raise NoValidRowsError("No valid positions found in CSV.")
    return positions


# --- Dedup gate ---------------------------------------------------------------


class ImportService:
    """Insert parsed trades at most once per import fingerprint."""

    def __init__(self, store: "LedgerStore") -> None:
        self.store = store

    def import_trades(self, user_id: str, trades: list[ParsedTrade]) -> ImportStats:
        stats = ImportStats(total=len(trades))
        for trade in trades:
            try:
                self.store.insert_trade(user_id, trade)
            except DuplicateImportError:
                stats.duplicates += 1
            except LedgerError as exc:
                stats.failed += 1
                logger.error("Error inserting trade %s on %s: %s", trade.symbol, trade.date, exc)
            else:
                stats.inserted += 1
        logger.info(
            "Import for user %s: total=%d inserted=%d duplicates=%d failed=%d",
            user_id,
            stats.total,
            stats.inserted,
            stats.duplicates,
            stats.failed,
        )
        return stats

    def import_transactions(self, user_id: str, source: CsvSource) -> ImportStats:
        return self.import_trades(user_id, parse_transactions(source))


__all__ = [
    "BrokerFormat",
    "GENERIC",
    "ImportService",
    "POSITIONS",
    "TASTYTRADE",
    "detect_format",
    "import_hash",
    "parse_positions",
    "parse_transactions",
    "read_csv_rows",
    "sanitize_currency",
]
