"""
Settlement-date arithmetic and holding-period computation.

Holding periods are always measured between two settlement dates: the lot's
purchase settlement and the sale's settlement.
"""

from datetime import date, datetime, timedelta

import pandas as pd

from psx_tax.core.errors import InvalidInputError
from psx_tax.core.models import HoldingPeriod
from psx_tax.utils.constants import LONG_TERM_HOLDING_DAYS, SETTLEMENT_BUSINESS_DAYS


def parse_date(value, field='date') -> date:
    """
    Coerce a date, datetime, pandas Timestamp or date string to a date.

    Strings go through pandas so broker formats ('2024-01-15', '15/01/2024',
    'Jan 15 2024') all parse.

    Raises:
        InvalidInputError: value is missing or unparseable
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInputError(f"Missing {field}")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        ts = pd.to_datetime(value, format='mixed')
    except (ValueError, TypeError, OverflowError) as e:
        raise InvalidInputError(f"Invalid {field}: {value!r}") from e
    if pd.isna(ts):
        raise InvalidInputError(f"Invalid {field}: {value!r}")
    return ts.date()


def calculate_settlement_date(trade_date, business_days=SETTLEMENT_BUSINESS_DAYS) -> date:
    """Advance a trade date by N business days, skipping Saturday and Sunday."""
    settlement = parse_date(trade_date, 'trade date')
    added = 0
    while added < business_days:
        settlement += timedelta(days=1)
        if settlement.weekday() < 5:
            added += 1
    return settlement


def get_holding_period(purchase_date, sale_date) -> HoldingPeriod:
    """
    Holding period between two settlement dates.

    Days are the plain calendar difference. Months/years come from calendar
    subtraction: a day-of-month underflow borrows a month, a negative month
    count borrows a year.
    """
    purchase = parse_date(purchase_date, 'purchase date')
    sale = parse_date(sale_date, 'sale date')
    days = (sale - purchase).days

    years = sale.year - purchase.year
    months = sale.month - purchase.month
    if sale.day < purchase.day:
        months -= 1
    if months < 0:
        years -= 1
        months += 12

    return HoldingPeriod(
        days=days,
        months=years * 12 + months,
        years=years,
        is_long_term=days >= LONG_TERM_HOLDING_DAYS,
    )


def earliest_trade_date_settling_by(target, business_days=SETTLEMENT_BUSINESS_DAYS) -> date:
    """Earliest trade date whose settlement falls on or after `target`."""
    target = parse_date(target, 'settlement date')
    trade = target
    while calculate_settlement_date(trade - timedelta(days=1), business_days) >= target:
        trade -= timedelta(days=1)
    return trade
