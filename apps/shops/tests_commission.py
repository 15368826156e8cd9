from decimal import Decimal

import pytest

from apps.shops.exceptions import ValidationError
from apps.shops.services import commission


def test_commission_is_ten_percent():
    assert commission.commission(Decimal('60.00')) == Decimal('6.00')
    assert commission.net(Decimal('60.00')) == Decimal('54.00')


def test_split_rounds_half_up_and_adds_back_to_amount():
    cut, net = commission.split('0.05')
    assert cut == Decimal('0.01')
    assert net == Decimal('0.04')

    cut, net = commission.split(Decimal('123.45'))
    assert cut == Decimal('12.35')
    assert cut + net == Decimal('123.45')


def test_zero_amount_has_zero_commission():
    assert commission.split(0) == (Decimal('0.00'), Decimal('0.00'))


@pytest.mark.parametrize('bad', ['-1', Decimal('-0.01'), 'NaN', 'Infinity', 'abc', None, True])
def test_rejects_invalid_amounts(bad):
    with pytest.raises(ValidationError):
        commission.commission(bad)
