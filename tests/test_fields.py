from decimal import Decimal

import pytest

from clinic_app.errors import InvalidInput
from clinic_app.utils.fields import as_int, as_money


@pytest.mark.parametrize('value, expected', [(3, 3), ('3', 3), (3.0, 3)])
def test_as_int_accepts_whole_numbers(value, expected):
    assert as_int(value) == expected


@pytest.mark.parametrize('value', [2.9, True, False, '2.9', None, 'two', float('inf')])
def test_as_int_rejects_non_integers(value):
    with pytest.raises(InvalidInput):
        as_int(value)


def test_as_money_accepts_column_maximum():
    assert as_money('9999999999.99') == Decimal('9999999999.99')


@pytest.mark.parametrize('value', ['1e30', '-1e30', '10000000000', 'NaN', 'Infinity', 'abc'])
def test_as_money_rejects_out_of_range_or_malformed(value):
    with pytest.raises(InvalidInput):
        as_money(value)
