"""
Unit tests for number parsing.
"""
from decimal import Decimal

import pytest

from stockledger.utils.number_format import MONEY_MAX, QTY_MAX, parse_money, parse_quantity, to_number


class TestParseQuantity:
    """Quantities accept JSON numbers and numeric strings."""

    @pytest.mark.parametrize('raw,expected', [
        (5, Decimal('5')),
        ('5', Decimal('5')),
        ('2,5', Decimal('2.5')),
        (' 7.125 ', Decimal('7.125')),
        (0.1, Decimal('0.1')),
        (Decimal('1.0004'), Decimal('1.000')),
    ])
    def test_valid(self, raw, expected):
        assert parse_quantity(raw) == expected

    @pytest.mark.parametrize('raw', [None, True, '', 'abc', '1.2.3', '1e5', float('nan'), '-3', -1])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_quantity(raw)

    def test_error_names_the_field(self):
        with pytest.raises(ValueError, match='minStock must be a number'):
            parse_quantity('x', 'minStock')

    @pytest.mark.parametrize('raw', [1e30, Decimal('1E+40'), '1' + '0' * 40, 1000000000, '999999999.9996'])
    def test_beyond_column_range(self, raw):
        with pytest.raises(ValueError, match='quantity must be at most 999999999.999'):
            parse_quantity(raw)

    def test_column_maximum_is_accepted(self):
        assert parse_quantity('999999999.999') == QTY_MAX


class TestMoney:
    """Money keeps two decimal places."""

    def test_rounds_to_cents(self):
        assert parse_money('10,5') == Decimal('10.50')
        assert parse_money('3.456') == Decimal('3.46')
        assert parse_money(3) == Decimal('3.00')

    def test_money_range(self):
        assert parse_money('9999999999.99') == MONEY_MAX
        with pytest.raises(ValueError, match='price must be at most'):
            parse_money(1e11)

    @pytest.mark.parametrize('value,expected', [
        (Decimal('12.000'), 12),
        (Decimal('2.500'), 2.5),
        (None, None),
        (0, 0),
    ])
    def test_to_number(self, value, expected):
        result = to_number(value)
        assert result == expected
        assert type(result) is type(expected)
