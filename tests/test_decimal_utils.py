"""
Unit tests for decimal utility functions.
Ensures accurate numeric handling across edge cases.
"""

import pytest
from decimal import Decimal
from psx_tax.decimal_utils import floor_shares, round_decimal, to_decimal


class TestToDecimal:
    """Test suite for to_decimal helper function."""

    def test_valid_int(self):
        assert to_decimal(42) == Decimal('42')

    def test_valid_float(self):
        """Floats go through str so 0.5 stays 0.5."""
        assert to_decimal(0.5) == Decimal('0.5')
        assert to_decimal(100.5) == Decimal('100.5')

    def test_valid_string(self):
        assert to_decimal(' 123.456 ') == Decimal('123.456')

    def test_valid_decimal(self):
        d = Decimal('999.99')
        assert to_decimal(d) is d

    def test_none_returns_default(self):
        assert to_decimal(None) == Decimal(0)
        assert to_decimal(None, None) is None

    def test_bool_is_not_a_number(self):
        assert to_decimal(True, None) is None

    def test_invalid_string_returns_default(self):
        assert to_decimal('not_a_number') == Decimal(0)
        assert to_decimal('12.34.56', Decimal('-1')) == Decimal('-1')
        assert to_decimal('', None) is None


class TestRounding:
    def test_round_half_up(self):
        assert round_decimal('946.125') == Decimal('946.13')
        assert round_decimal('0.005') == Decimal('0.01')

    def test_round_non_finite_is_zero(self):
        assert round_decimal(Decimal('NaN')) == Decimal('0')

    @pytest.mark.parametrize("value, expected", [
        ('20', '20'),
        ('20.999', '20'),
        ('0.2', '0'),
    ])
    def test_floor_shares(self, value, expected):
        assert floor_shares(Decimal(value)) == Decimal(expected)
