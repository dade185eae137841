"""
Corporate action tests: ratio grammar, bonus shares, right issues, reversal.
"""

import logging
from datetime import date
from decimal import Decimal

import pytest

from psx_tax.core.corporate_actions import CorporateActionsManager, parse_ratio
from psx_tax.core.errors import (
    ActionNotFoundError,
    AlreadyReversedError,
    InvalidInputError,
    InvalidParametersError,
    UnknownSymbolError,
)
from psx_tax.core.ledger import FIFOLedger

TOLERANCE = Decimal('0.000001')


@pytest.fixture
def ledger():
    ledger = FIFOLedger()
    ledger.add_transaction('BUY', 'OGDC', 100, 100, '2024-01-01', 0.5)
    ledger.add_transaction('BUY', 'OGDC', 50, 120, '2024-01-11', 0.5)
    return ledger


@pytest.fixture
def manager(ledger):
    return CorporateActionsManager(ledger)


class TestParseRatio:
    @pytest.mark.parametrize("raw", ['20%', '1:5', ' 1 : 5 ', '0.2', 0.2, Decimal('0.2')])
    def test_forms(self, raw):
        assert parse_ratio(raw) == Decimal('0.2')

    def test_large_ratio(self):
        assert parse_ratio('1:1') == Decimal(1)
        assert parse_ratio('150%') == Decimal('1.5')

    @pytest.mark.parametrize("raw", [None, '', 'abc', '1:0', '0:0', '1:', '%', '0', '-1', '-20%', True])
    def test_invalid(self, raw):
        with pytest.raises(InvalidParametersError):
            parse_ratio(raw)

    def test_is_an_input_error(self):
        with pytest.raises(InvalidInputError):
            parse_ratio('nope')


class TestBonus:
    def test_bonus_adds_sub_lots_and_keeps_cost(self, manager, ledger):
        before_cost = ledger.get_holdings()['OGDC'].total_cost_basis
        record = manager.apply_bonus('ogdc', '1:5', '2025-03-03')

        summary = ledger.get_holdings()['OGDC']
        assert summary.total_quantity == Decimal(180)
        assert abs(summary.total_cost_basis - before_cost) < TOLERANCE
        assert record.result['shares_added'] == Decimal(30)
        assert record.applied is True
        assert record.symbol == 'OGDC'

        lots = ledger.get_lots('OGDC')
        assert [lot.quantity for lot in lots] == [Decimal(100), Decimal(50), Decimal(20), Decimal(10)]
        assert [lot.source for lot in lots] == ['BUY', 'BUY', 'BONUS', 'BONUS']
        assert lots[2].settlement_date == date(2025, 3, 3)
        assert lots[0].net_price == lots[2].net_price

    @pytest.mark.parametrize("ratio", ['20%', '0.2', 0.2])
    def test_equivalent_ratios(self, manager, ledger, ratio):
        manager.apply_bonus('OGDC', ratio, '2025-03-03')
        assert ledger.get_total_quantity('OGDC') == Decimal(180)

    def test_bonus_shares_are_floored(self, manager, ledger):
        manager.apply_bonus('OGDC', '1:3', '2025-03-03')
        # floor(100/3) + floor(50/3)
        assert ledger.get_total_quantity('OGDC') == Decimal(150 + 33 + 16)

    def test_zero_entitlement_rejected(self, manager, ledger):
        before = ledger.get_lots('OGDC')
        with pytest.raises(InvalidParametersError):
            manager.apply_bonus('OGDC', '0.001', '2025-03-03')
        assert ledger.get_lots('OGDC') == before
        assert manager.get_corporate_actions() == []

    def test_sale_after_bonus_uses_diluted_cost(self, manager, ledger):
        manager.apply_bonus('OGDC', '100%', '2025-03-03')
        sale = ledger.add_transaction('SELL', 'OGDC', 200, 100, '2025-04-01', 0)
        assert sale.lots_used[0].quantity == Decimal(100)
        assert sale.lots_used[1].quantity == Decimal(50)
        assert sale.lots_used[2].purchase_date == date(2025, 3, 3)
        assert abs(sale.lots_used[0].cost_per_unit - Decimal('50.25')) < TOLERANCE


class TestRightIssue:
    def test_right_lot_at_subscription_price(self, manager, ledger):
        record = manager.apply_right_issue('OGDC', '1:5', 50, '2025-03-03')
        lots = ledger.get_lots('OGDC')
        assert lots[-1].quantity == Decimal(30)
        assert lots[-1].net_price == Decimal(50)
        assert lots[-1].fee_percent == Decimal(0)
        assert lots[-1].source == 'RIGHT'
        assert lots[-1].settlement_date == date(2025, 3, 3)
        assert record.result['cost_added'] == Decimal(1500)

    def test_subscription_date_used_when_given(self, manager, ledger):
        manager.apply_right_issue('OGDC', '20%', 50, '2025-03-03', '2025-03-20')
        assert ledger.get_lots('OGDC')[-1].settlement_date == date(2025, 3, 20)

    def test_right_entitlement_floored(self, manager, ledger):
        manager.apply_right_issue('OGDC', '1:7', 50, '2025-03-03')
        assert ledger.get_lots('OGDC')[-1].quantity == Decimal(21)

    @pytest.mark.parametrize("price", [None, 0, -5, 'abc'])
    def test_bad_price(self, manager, price):
        with pytest.raises(InvalidParametersError):
            manager.apply_right_issue('OGDC', '1:5', price, '2025-03-03')


class TestValidation:
    def test_unknown_symbol(self, manager):
        with pytest.raises(UnknownSymbolError):
            manager.apply_bonus('HUBC', '1:5', '2025-03-03')

    def test_unknown_type(self, manager):
        with pytest.raises(InvalidParametersError):
            manager.apply_corporate_action('OGDC', 'SPLIT', {'ratio': '2:1', 'ex_date': '2025-03-03'})

    @pytest.mark.parametrize("details", [
        {},
        {'ratio': '1:5'},
        {'ex_date': '2025-03-03'},
        {'ratio': '1:5', 'ex_date': 'soon'},
    ])
    def test_missing_parameters(self, manager, details):
        with pytest.raises(InvalidParametersError):
            manager.apply_corporate_action('OGDC', 'BONUS', details)


class TestReversal:
    def test_reversal_is_exact_inverse(self, manager, ledger):
        before = ledger.get_lots('OGDC')
        record = manager.apply_bonus('OGDC', '1:5', '2025-03-03')
        manager.apply_right_issue('OGDC', '1:4', 40, '2025-04-01')
        manager.reverse_corporate_action(2)
        manager.reverse_corporate_action(record.id)
        assert ledger.get_lots('OGDC') == before
        assert record.applied is False
        assert record.reversed_at is not None

    def test_double_reverse(self, manager):
        record = manager.apply_bonus('OGDC', '1:5', '2025-03-03')
        manager.reverse_corporate_action(record.id)
        with pytest.raises(AlreadyReversedError):
            manager.reverse_corporate_action(record.id)

    @pytest.mark.parametrize("action_id", [99, 'x'])
    def test_unknown_action(self, manager, action_id):
        with pytest.raises(ActionNotFoundError):
            manager.reverse_corporate_action(action_id)
        with pytest.raises(KeyError):
            manager.reverse_corporate_action(action_id)

    def test_warns_when_lots_changed(self, manager, ledger, caplog):
        before = ledger.get_lots('OGDC')
        record = manager.apply_bonus('OGDC', '1:5', '2025-03-03')
        ledger.add_transaction('SELL', 'OGDC', 10, 150, '2025-04-01')
        with caplog.at_level(logging.WARNING, logger="psx_tax_engine"):
            manager.reverse_corporate_action(record.id)
        assert 'changed since action' in caplog.text
        assert ledger.get_lots('OGDC') == before


def test_summary(manager):
    manager.apply_bonus('OGDC', '1:5', '2025-03-03')
    manager.apply_right_issue('OGDC', '1:5', 50, '2025-04-01')
    manager.reverse_corporate_action(1)
    summary = manager.get_summary()
    assert summary == {'total': 2, 'applied': 1, 'reversed': 1, 'by_type': {'BONUS': 1, 'RIGHT': 1}}
    assert [r.id for r in manager.get_corporate_actions()] == [1, 2]


def test_export_import_then_reverse(manager, ledger):
    before = ledger.get_lots('OGDC')
    manager.apply_bonus('OGDC', '1:5', '2025-03-03')
    records = manager.export_data()

    restored = CorporateActionsManager(ledger)
    restored.import_data(records)
    assert restored.get_corporate_actions()[0].details['ratio'] == '1:5'
    restored.reverse_corporate_action(1)
    assert ledger.get_lots('OGDC') == before
    assert restored.apply_bonus('OGDC', '1:5', '2025-03-03').id == 2


def test_reset(manager):
    manager.apply_bonus('OGDC', '1:5', '2025-03-03')
    manager.reset()
    assert manager.get_corporate_actions() == []
