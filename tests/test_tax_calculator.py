"""
Capital gains tax tests: regimes, filer brackets, losses and aggregates.
"""

import unittest
from datetime import date
from decimal import Decimal

import pytest

from psx_tax.core.ledger import FIFOLedger
from psx_tax.core.tax_calculator import TaxCalculator


def _sale(buy_date, sell_date, buy=100, sell=150, qty=100, fee=0):
    ledger = FIFOLedger()
    ledger.add_transaction('BUY', 'OGDC', qty, buy, buy_date, fee)
    return ledger.add_transaction('SELL', 'OGDC', qty, sell, sell_date, fee)


class TestWorkedExampleTax(unittest.TestCase):
    def setUp(self):
        ledger = FIFOLedger()
        ledger.add_transaction('BUY', 'OGDC', 100, 100, '2024-01-01', 0.5)
        ledger.add_transaction('BUY', 'OGDC', 100, 120, '2024-01-11', 0.5)
        self.sale = ledger.add_transaction('SELL', 'OGDC', 150, 150, '2025-02-04', 0.5)
        self.calc = TaxCalculator()

    def test_non_filer(self):
        result = self.calc.calculate_tax_for_sale(self.sale)
        self.assertEqual(result.total_tax, Decimal('946.125'))
        self.assertEqual([lot.tax for lot in result.tax_by_lot], [Decimal('731.25'), Decimal('214.875')])
        self.assertEqual(result.effective_tax_rate, Decimal('0.15'))
        self.assertEqual(result.net_profit, Decimal('5361.375'))
        self.assertFalse(result.is_filer)

    def test_filer_uses_holding_brackets(self):
        self.calc.set_filer_status(True)
        result = self.calc.calculate_tax_for_sale(self.sale)
        self.assertEqual([lot.tax_rate for lot in result.tax_by_lot], [Decimal('0.125'), Decimal('0.125')])
        self.assertEqual(result.total_tax, Decimal('788.4375'))
        self.assertEqual(result.tax_by_lot[0].holding_days, 400)

    def test_override_does_not_change_state(self):
        result = self.calc.calculate_tax_for_sale(self.sale, is_filer=True)
        self.assertTrue(result.is_filer)
        self.assertFalse(self.calc.is_filer)


@pytest.mark.parametrize("days, rate", [
    (0, '0.15'),
    (364, '0.15'),
    (365, '0.125'),
    (729, '0.125'),
    (730, '0.10'),
    (1094, '0.10'),
    (1095, '0.075'),
    (1459, '0.075'),
    (1460, '0'),
    (5000, '0'),
])
def test_filer_bracket_boundaries(days, rate):
    calc = TaxCalculator(is_filer=True)
    got, label = calc.get_tax_rate(date(2019, 1, 1), days)
    assert got == Decimal(rate)
    assert 'filer' in label


def test_cutoff_forces_flat_rate():
    calc = TaxCalculator(is_filer=True)
    assert calc.get_tax_rate(date(2024, 7, 1), 2000)[0] == Decimal('0.15')
    assert calc.get_tax_rate(date(2024, 6, 30), 1460)[0] == Decimal('0')


def test_non_filer_always_flat():
    calc = TaxCalculator()
    rate, label = calc.get_tax_rate(date(2019, 1, 1), 3000)
    assert rate == Decimal('0.15')
    assert 'non-filer' in label


def test_exactly_365_days_through_settlement():
    # Buy settles Wed 2022-01-05; sell traded Tue 2023-01-03 settles Thu 2023-01-05
    calc = TaxCalculator(is_filer=True)
    on_boundary = calc.calculate_tax_for_sale(_sale('2022-01-03', '2023-01-03'))
    assert on_boundary.tax_by_lot[0].holding_days == 365
    assert on_boundary.tax_by_lot[0].tax_rate == Decimal('0.125')

    day_before = calc.calculate_tax_for_sale(_sale('2022-01-03', '2023-01-02'))
    assert day_before.tax_by_lot[0].holding_days == 364
    assert day_before.tax_by_lot[0].tax_rate == Decimal('0.15')


def test_loss_pays_no_tax():
    result = TaxCalculator().calculate_tax_for_sale(_sale('2024-01-01', '2024-06-01', buy=100, sell=90))
    assert result.capital_gain == Decimal(-1000)
    assert result.total_tax == Decimal(0)
    assert result.effective_tax_rate == Decimal(0)
    assert result.net_profit == Decimal(-1000)


def test_losing_lot_contributes_zero_tax():
    ledger = FIFOLedger()
    ledger.add_transaction('BUY', 'OGDC', 10, 100, '2024-01-01', 0)
    ledger.add_transaction('BUY', 'OGDC', 10, 200, '2024-01-02', 0)
    sale = ledger.add_transaction('SELL', 'OGDC', 20, 150, '2024-03-01', 0)
    result = TaxCalculator().calculate_tax_for_sale(sale)
    assert [lot.capital_gain for lot in result.tax_by_lot] == [Decimal(500), Decimal(-500)]
    assert result.tax_by_lot[1].tax == Decimal(0)
    assert result.total_tax == Decimal('75.00')
    assert result.capital_gain == Decimal(0)
    assert result.effective_tax_rate == Decimal(0)


def test_aggregate_tax():
    calc = TaxCalculator()
    gain = _sale('2024-01-01', '2024-06-03', buy=100, sell=150)
    loss = _sale('2024-01-01', '2024-06-03', buy=100, sell=80)
    agg = calc.calculate_aggregate_tax([gain, loss])
    assert agg.sale_count == 2
    assert agg.total_gain == Decimal(5000)
    assert agg.total_loss == Decimal(2000)
    assert agg.net_gain == Decimal(3000)
    assert agg.total_tax == Decimal('750.00')
    assert agg.total_proceeds == Decimal(23000)
    assert agg.total_cost_basis == Decimal(20000)
    assert agg.super_tax_advisory is False


def test_super_tax_is_advisory_only():
    calc = TaxCalculator()
    big = _sale('2024-08-01', '2025-01-02', buy=10, sell=200, qty=1_000_000)
    agg = calc.calculate_aggregate_tax([big])
    assert agg.net_gain == Decimal(190_000_000)
    assert agg.super_tax_advisory is True
    assert agg.total_tax == Decimal(190_000_000) * Decimal('0.15')


def test_empty_aggregate():
    agg = TaxCalculator().calculate_aggregate_tax([])
    assert agg.sale_count == 0
    assert agg.total_tax == Decimal(0)


class TestMilestone:
    def test_not_applicable_after_cutoff(self):
        milestone = TaxCalculator(is_filer=True).get_tax_milestone('2024-07-01', as_of='2025-01-01')
        assert milestone.applicable is False

    def test_not_applicable_for_non_filer(self):
        milestone = TaxCalculator().get_tax_milestone('2022-01-01', as_of='2023-01-01')
        assert milestone.applicable is False
        assert 'Non-filer' in milestone.message

    def test_first_year(self):
        milestone = TaxCalculator(is_filer=True).get_tax_milestone('2022-01-01', as_of='2022-07-02')
        assert milestone.applicable is True
        assert milestone.holding_days == 182
        assert milestone.current_rate == Decimal('0.15')
        assert milestone.next_rate == Decimal('0.125')
        assert milestone.days_to_next == 183
        assert milestone.next_date == date(2023, 1, 1)
        assert milestone.next_label == '1 year'
        assert milestone.progress_percent == Decimal(182) / Decimal(365) * 100

    def test_second_bracket(self):
        milestone = TaxCalculator(is_filer=True).get_tax_milestone(date(2020, 1, 1), as_of=date(2021, 2, 4))
        assert milestone.holding_days == 400
        assert milestone.current_rate == Decimal('0.125')
        assert milestone.next_rate == Decimal('0.10')
        assert milestone.days_to_next == 330

    def test_max_benefit(self):
        milestone = TaxCalculator(is_filer=True).get_tax_milestone('2019-01-01', as_of='2024-01-01')
        assert milestone.max_benefit is True
        assert milestone.current_rate == Decimal('0')


def test_describe_brackets():
    rows = TaxCalculator().describe_brackets()
    assert rows[0] == ('0-364 days', Decimal('0.15'))
    assert rows[-1] == ('>= 1460 days', Decimal('0'))
