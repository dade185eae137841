"""
Broker CSV import.

Reads a broker trade statement with pandas and feeds each row to the ledger.
Columns are found by exact name, then by case-insensitive substring, so
most PSX broker exports work without mapping:

    date      'date'
    type      'type' or 'transaction'
    symbol    'symbol', 'stock' or 'scrip'
    quantity  'quantity', 'qty' or 'shares'
    price     'price' or 'rate'
    fee       'fee' (optional)

Rows are applied in trade-date order so a SELL listed above its BUY still
finds the lot. A bad row is reported and skipped; the rest still import.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pandas as pd

from psx_tax.core.errors import InsufficientHoldingsError, InvalidInputError
from psx_tax.decimal_utils import to_decimal

logger = logging.getLogger("psx_tax_engine")

COLUMN_PATTERNS = {
    'date': ('date',),
    'type': ('type', 'transaction'),
    'symbol': ('symbol', 'stock', 'scrip'),
    'quantity': ('quantity', 'qty', 'shares'),
    'price': ('price', 'rate'),
}


@dataclass
class ImportResult:
    success_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)


def _find_column(columns, needles) -> Optional[str]:
    """Exact header match first, then the first header containing a needle."""
    names = [(col, str(col).strip().lower()) for col in columns]
    for col, name in names:
        if name in needles:
            return col
    for col, name in names:
        if any(needle in name for needle in needles):
            return col
    return None


def detect_columns(columns) -> dict:
    """
    Map logical fields to the statement's column names.

    Raises:
        InvalidInputError: a required column is missing
    """
    mapping = {key: _find_column(columns, needles) for key, needles in COLUMN_PATTERNS.items()}
    missing = [key for key, col in mapping.items() if col is None]
    if missing:
        raise InvalidInputError(
            f"CSV must have columns: Date, Type, Symbol, Quantity, Price (missing {', '.join(missing)})"
        )
    mapping['fee'] = _find_column(columns, ('fee',))
    return mapping


def _cell(row, col):
    value = row[col]
    if pd.isna(value):
        return None
    return str(value).strip()


def import_broker_csv(ledger, path, fee_percent=None) -> ImportResult:
    """
    Import a broker CSV into the ledger.

    Args:
        ledger: FIFOLedger receiving the trades
        path: CSV file path
        fee_percent: fee applied to rows without their own fee column value

    Returns:
        ImportResult with per-line errors as "Line N: message"
    """
    fp = Path(path)
    if not fp.exists():
        raise FileNotFoundError(f"CSV file not found: {fp}")

    df = pd.read_csv(fp, dtype=str, skipinitialspace=True)
    if df.empty:
        raise InvalidInputError(f"CSV file is empty or invalid: {fp.name}")
    cols = detect_columns(df.columns)

    # Header is line 1, so data row i sits on line i + 2
    df['_line'] = range(2, len(df) + 2)
    df['_trade_date'] = pd.to_datetime(df[cols['date']], format='mixed', errors='coerce')
    df = df.sort_values('_trade_date', kind='mergesort', na_position='last')

    result = ImportResult()
    for _, row in df.iterrows():
        line = row['_line']
        try:
            tx_type = (_cell(row, cols['type']) or '').upper()
            if tx_type not in ('BUY', 'SELL'):
                raise InvalidInputError('Type must be BUY or SELL')
            fee = fee_percent
            if cols['fee'] is not None and _cell(row, cols['fee']) is not None:
                fee = to_decimal(_cell(row, cols['fee']), default=None)
            ledger.add_transaction(
                tx_type,
                _cell(row, cols['symbol']),
                _cell(row, cols['quantity']),
                _cell(row, cols['price']),
                _cell(row, cols['date']),
                fee,
            )
            result.success_count += 1
        except (InvalidInputError, InsufficientHoldingsError) as e:
            result.error_count += 1
            result.errors.append(f"Line {line}: {e}")
            logger.warning(f"[CSV] {fp.name} line {line}: {e}")

    logger.info(f"Imported {result.success_count} transactions from {fp.name} ({result.error_count} errors)")
    return result
