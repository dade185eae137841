"""
================================================================================
TAX CALCULATOR - PSX Capital Gains Tax (Section 37A)
================================================================================

Applies Pakistan's capital-gains regime to realized or simulated sales, one
consumed lot at a time.

Regimes:
    - Lots whose purchase settled on/after 1 July 2024: flat 15%
    - Older lots, non-filer: flat 15%
    - Older lots, filer (active taxpayer): by holding period
          < 1 year     15%
          1-2 years    12.5%
          2-3 years    10%
          3-4 years    7.5%
          >= 4 years   0%

Losses are never taxed. Super tax (Section 4C) is not charged here; the
aggregate only flags income above the threshold for the user's attention.
================================================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from psx_tax.core.models import RealizedSale
from psx_tax.core.settlement import parse_date
from psx_tax.decimal_utils import GAIN_EPSILON
from psx_tax.utils.constants import (
    FILER_TAX_BRACKETS,
    FLAT_TAX_RATE,
    SUPER_TAX_THRESHOLD,
    TAX_REGIME_CUTOFF,
)

logger = logging.getLogger("psx_tax_engine")

# (days reached, rate, label) ascending, derived from the filer table
_MILESTONES = tuple(sorted(FILER_TAX_BRACKETS))
_YEAR_LABELS = {365: '1 year', 730: '2 years', 1095: '3 years', 1460: '4 years'}


@dataclass(frozen=True)
class LotTax:
    quantity: Decimal
    cost_per_unit: Decimal
    purchase_date: date
    holding_days: int
    tax_rate: Decimal
    rate_label: str
    capital_gain: Decimal
    tax: Decimal


@dataclass(frozen=True)
class TaxBreakdown:
    total_tax: Decimal
    capital_gain: Decimal
    effective_tax_rate: Decimal
    net_profit: Decimal
    is_filer: bool
    tax_by_lot: Tuple[LotTax, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AggregateTax:
    total_gain: Decimal
    total_loss: Decimal
    net_gain: Decimal
    total_tax: Decimal
    total_proceeds: Decimal
    total_cost_basis: Decimal
    sale_count: int
    super_tax_advisory: bool


@dataclass(frozen=True)
class TaxMilestone:
    applicable: bool
    message: str
    holding_days: int = 0
    current_rate: Optional[Decimal] = None
    next_rate: Optional[Decimal] = None
    next_label: Optional[str] = None
    days_to_next: Optional[int] = None
    next_date: Optional[date] = None
    progress_percent: Decimal = Decimal(0)
    max_benefit: bool = False


def _pct(rate: Decimal) -> str:
    return f"{(rate * 100).normalize():f}%"


class TaxCalculator:
    def __init__(self, is_filer=False):
        self.is_filer = bool(is_filer)

    def set_filer_status(self, is_filer):
        self.is_filer = bool(is_filer)
        logger.info(f"Filer status set to {'filer' if self.is_filer else 'non-filer'}")

    def get_tax_rate(self, purchase_date, holding_days, is_filer=None) -> Tuple[Decimal, str]:
        """Rate and human-readable label for one lot."""
        filer = self.is_filer if is_filer is None else bool(is_filer)
        purchased = parse_date(purchase_date, 'purchase date')

        if purchased >= TAX_REGIME_CUTOFF:
            return FLAT_TAX_RATE, f"{_pct(FLAT_TAX_RATE)} (acquired on/after {TAX_REGIME_CUTOFF.isoformat()})"
        if not filer:
            return FLAT_TAX_RATE, f"{_pct(FLAT_TAX_RATE)} (non-filer)"

        for min_days, rate in FILER_TAX_BRACKETS:
            if holding_days >= min_days:
                years = min_days // 365
                held = f">= {years} year{'s' if years != 1 else ''}" if years else "< 1 year"
                return rate, f"{_pct(rate)} (filer, held {held})"
        return FLAT_TAX_RATE, f"{_pct(FLAT_TAX_RATE)} (filer)"

    def calculate_tax_for_sale(self, sale: RealizedSale, is_filer=None) -> TaxBreakdown:
        """
        Tax a sale lot by lot. Each consumed lot is taxed on its own gain
        (quantity * net sell price - lot cost basis) at its own rate; a lot
        sold at a loss contributes zero tax.

        Args:
            sale: realized or simulated sale
            is_filer: overrides the calculator's filer status for this call only
        """
        filer = self.is_filer if is_filer is None else bool(is_filer)
        total_tax = Decimal(0)
        lot_taxes = []

        for record in sale.lots_used:
            rate, label = self.get_tax_rate(record.purchase_date, record.holding_period.days, filer)
            gain = record.quantity * sale.sell_price - record.cost_basis
            tax = max(gain, Decimal(0)) * rate
            total_tax += tax
            lot_taxes.append(LotTax(
                quantity=record.quantity,
                cost_per_unit=record.cost_per_unit,
                purchase_date=record.purchase_date,
                holding_days=record.holding_period.days,
                tax_rate=rate,
                rate_label=label,
                capital_gain=gain,
                tax=tax,
            ))

        capital_gain = sale.capital_gain
        effective = total_tax / capital_gain if capital_gain > GAIN_EPSILON else Decimal(0)
        return TaxBreakdown(
            total_tax=total_tax,
            capital_gain=capital_gain,
            effective_tax_rate=effective,
            net_profit=capital_gain - total_tax,
            is_filer=filer,
            tax_by_lot=tuple(lot_taxes),
        )

    def calculate_aggregate_tax(self, sales: Iterable[RealizedSale], is_filer=None) -> AggregateTax:
        total_gain = Decimal(0)
        total_loss = Decimal(0)
        total_tax = Decimal(0)
        total_proceeds = Decimal(0)
        total_cost = Decimal(0)
        count = 0

        for sale in sales:
            gain = sale.capital_gain
            if gain > 0:
                total_gain += gain
            else:
                total_loss += -gain
            total_tax += self.calculate_tax_for_sale(sale, is_filer).total_tax
            total_proceeds += sale.sale_proceeds
            total_cost += sale.total_cost_basis
            count += 1

        net_gain = total_gain - total_loss
        advisory = net_gain > SUPER_TAX_THRESHOLD
        if advisory:
            logger.warning(f"Net gain {net_gain} exceeds super tax threshold {SUPER_TAX_THRESHOLD}; review Section 4C")
        return AggregateTax(
            total_gain=total_gain,
            total_loss=total_loss,
            net_gain=net_gain,
            total_tax=total_tax,
            total_proceeds=total_proceeds,
            total_cost_basis=total_cost,
            sale_count=count,
            super_tax_advisory=advisory,
        )

    def get_tax_milestone(self, purchase_date, as_of=None, is_filer=None) -> TaxMilestone:
        """Where a lot sits on the filer bracket ladder as of a date (default today)."""
        filer = self.is_filer if is_filer is None else bool(is_filer)
        purchased = parse_date(purchase_date, 'purchase date')
        today = parse_date(as_of, 'as-of date') if as_of is not None else date.today()

        if purchased >= TAX_REGIME_CUTOFF:
            return TaxMilestone(False, f"Flat 15% rate (acquired on/after {TAX_REGIME_CUTOFF.isoformat()})")
        if not filer:
            return TaxMilestone(False, "Non-filer: 15% rate (no tax bracket progression)")

        held = max((today - purchased).days, 0)
        current_days, current_rate = 0, FLAT_TAX_RATE
        for min_days, rate in _MILESTONES:
            if held >= min_days:
                current_days, current_rate = min_days, rate

        upcoming = [(d, r) for d, r in _MILESTONES if d > held]
        if not upcoming:
            return TaxMilestone(
                applicable=True,
                message="Maximum tax benefit achieved",
                holding_days=held,
                current_rate=current_rate,
                progress_percent=Decimal(100),
                max_benefit=True,
            )

        next_days, next_rate = upcoming[0]
        span = next_days - current_days
        progress = Decimal(held - current_days) / Decimal(span) * 100
        return TaxMilestone(
            applicable=True,
            message=f"{next_days - held} days to {_pct(next_rate)} tax",
            holding_days=held,
            current_rate=current_rate,
            next_rate=next_rate,
            next_label=_YEAR_LABELS.get(next_days),
            days_to_next=next_days - held,
            next_date=purchased + timedelta(days=next_days),
            progress_percent=progress,
        )

    def describe_brackets(self) -> List[Tuple[str, Decimal]]:
        """Filer bracket table, shortest holding first, for display."""
        rows = []
        bounds = [d for d, _ in _MILESTONES]
        for i, (min_days, rate) in enumerate(_MILESTONES):
            upper = bounds[i + 1] if i + 1 < len(bounds) else None
            span = f"{min_days}-{upper - 1} days" if upper else f">= {min_days} days"
            rows.append((span, rate))
        return rows
