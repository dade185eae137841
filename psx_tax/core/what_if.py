"""
What-if analysis on top of the ledger and tax calculator.

Nothing here mutates state: every scenario goes through
FIFOLedger.calculate_sale() and TaxCalculator with an explicit filer override.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from psx_tax.core.models import RealizedSale
from psx_tax.core.settlement import earliest_trade_date_settling_by, parse_date
from psx_tax.core.tax_calculator import TaxBreakdown, TaxCalculator
from psx_tax.decimal_utils import to_decimal
from psx_tax.utils.constants import BRACKET_BOUNDARY_DAYS

logger = logging.getLogger("psx_tax_engine")

# Tax above this share of the gain is called out as high
HIGH_TAX_SHARE = Decimal('0.3')


@dataclass(frozen=True)
class TimingScenario:
    label: str
    sale_date: date
    capital_gain: Decimal
    tax: Decimal
    net_profit: Decimal
    effective_tax_rate: Decimal


@dataclass(frozen=True)
class TimingAnalysis:
    symbol: str
    quantity: Decimal
    price: Decimal
    scenarios: Tuple[TimingScenario, ...]
    recommended: TimingScenario
    savings_vs_today: Decimal


@dataclass(frozen=True)
class FilerComparison:
    filer_tax: Decimal
    non_filer_tax: Decimal
    savings_by_being_filer: Decimal
    recommendation: str


@dataclass(frozen=True)
class SaleAnalysis:
    sale: RealizedSale
    tax: TaxBreakdown
    net_receipt: Decimal
    remaining_quantity: Decimal
    notes: Tuple[str, ...] = field(default_factory=tuple)


class WhatIfEngine:
    def __init__(self, ledger, calculator: TaxCalculator):
        self.ledger = ledger
        self.calculator = calculator

    def _scenario(self, label, trade_date, symbol, quantity, price, fee_percent) -> TimingScenario:
        sale = self.ledger.calculate_sale(symbol, quantity, price, trade_date, fee_percent)
        tax = self.calculator.calculate_tax_for_sale(sale)
        return TimingScenario(
            label=label,
            sale_date=trade_date,
            capital_gain=tax.capital_gain,
            tax=tax.total_tax,
            net_profit=tax.net_profit,
            effective_tax_rate=tax.effective_tax_rate,
        )

    def analyze_optimal_timing(self, symbol, quantity, price, as_of=None, fee_percent=None) -> TimingAnalysis:
        """
        Compare selling today against waiting for each upcoming bracket
        boundary of the lots the sale would consume. Price is held constant.
        """
        today = parse_date(as_of, 'as-of date') if as_of is not None else date.today()
        today_scenario = self._scenario('Today', today, symbol, quantity, price, fee_percent)

        consumed = self.ledger.calculate_sale(symbol, quantity, price, today, fee_percent).lots_used
        # Boundaries are settlement dates; trade early enough to settle on them
        boundaries = {}
        for record in consumed:
            for days in BRACKET_BOUNDARY_DAYS:
                boundary = record.purchase_date + timedelta(days=days)
                when = earliest_trade_date_settling_by(boundary, self.ledger.settlement_days)
                if when > today and when not in boundaries:
                    boundaries[when] = f"After {days // 365} year{'s' if days > 365 else ''} ({when.isoformat()})"

        scenarios = [today_scenario]
        for when in sorted(boundaries):
            scenarios.append(self._scenario(boundaries[when], when, symbol, quantity, price, fee_percent))

        # max() keeps the first of equals, and scenarios run nearest date first
        best = max(scenarios, key=lambda s: s.net_profit)
        savings = best.net_profit - today_scenario.net_profit
        logger.debug(f"Timing for {symbol}: {len(scenarios)} scenarios, best '{best.label}' saves {savings}")
        return TimingAnalysis(
            symbol=str(symbol).upper(),
            quantity=to_decimal(quantity),
            price=to_decimal(price),
            scenarios=tuple(scenarios),
            recommended=best,
            savings_vs_today=savings,
        )

    def compare_filer_status(self, sale: RealizedSale) -> FilerComparison:
        filer_tax = self.calculator.calculate_tax_for_sale(sale, is_filer=True).total_tax
        non_filer_tax = self.calculator.calculate_tax_for_sale(sale, is_filer=False).total_tax
        savings = non_filer_tax - filer_tax
        if savings > 0:
            recommendation = f"Becoming a filer would save Rs. {savings:,.2f} on this sale"
        else:
            recommendation = "Filer status makes no difference for this sale"
        return FilerComparison(
            filer_tax=filer_tax,
            non_filer_tax=non_filer_tax,
            savings_by_being_filer=savings,
            recommendation=recommendation,
        )

    def analyze_sale(self, symbol, quantity, price, sale_date, fee_percent=None) -> SaleAnalysis:
        sale = self.ledger.calculate_sale(symbol, quantity, price, sale_date, fee_percent)
        tax = self.calculator.calculate_tax_for_sale(sale)
        remaining = self.ledger.get_total_quantity(sale.symbol) - sale.quantity_sold
        return SaleAnalysis(
            sale=sale,
            tax=tax,
            net_receipt=sale.sale_proceeds - tax.total_tax,
            remaining_quantity=remaining,
            notes=tuple(self._notes(sale, tax, remaining)),
        )

    @staticmethod
    def _notes(sale: RealizedSale, tax: TaxBreakdown, remaining: Decimal) -> List[str]:
        notes = []
        gain = sale.capital_gain
        if gain > 0:
            if tax.total_tax > gain * HIGH_TAX_SHARE:
                notes.append(f"Tax is {tax.effective_tax_rate * 100:.0f}% of the gain; consider the timing")
            else:
                cost = sale.total_cost_basis
                profit_pct = gain / cost * 100 if cost else Decimal(0)
                notes.append(f"Profit of {profit_pct:.1f}%; after tax you keep Rs. {tax.net_profit:,.2f}")
        else:
            notes.append(f"This sale realizes a loss of Rs. {-gain:,.2f}; no tax is due on losses")
            notes.append("Tax-loss harvesting: this loss can offset gains on other stocks")

        if remaining > 0 and gain > 0:
            partial = int(sale.quantity_sold // 2)
            if partial > 0:
                notes.append(f"Selling only {partial} shares would lock in some profit with less tax now")
        return notes

    def oldest_lot_milestone(self, symbol) -> Optional[dict]:
        """Bracket progress of the oldest lot held in a symbol, or None."""
        lots = self.ledger.get_lots(symbol)
        if not lots:
            return None
        return {'purchase_date': lots[0].settlement_date,
                'milestone': self.calculator.get_tax_milestone(lots[0].settlement_date)}
