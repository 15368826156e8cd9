"""
Platform commission
The marketplace keeps a fixed 10% of every payout.
"""

from decimal import Decimal, InvalidOperation
from typing import Tuple

from ..exceptions import ValidationError
from .utils import quantize_money

COMMISSION_RATE = Decimal('0.10')


def _coerce_amount(amount) -> Decimal:
    if isinstance(amount, bool):
        raise ValidationError('Amount must be a number', amount=amount)

    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError('Amount must be a number', amount=amount)

    if not value.is_finite():
        raise ValidationError('Amount must be a finite number', amount=amount)
    if value < 0:
        raise ValidationError('Amount cannot be negative', amount=amount)

    return value


def commission(amount) -> Decimal:
    """Platform cut of ``amount``, rounded to cents"""
    return quantize_money(_coerce_amount(amount) * COMMISSION_RATE)


def net(amount) -> Decimal:
    """What the seller keeps of ``amount``"""
    value = _coerce_amount(amount)
    return quantize_money(value) - commission(value)


def split(amount) -> Tuple[Decimal, Decimal]:
    """
    Split an amount into platform commission and seller share

    Args:
        amount: Gross amount (Decimal, int or numeric string)

    Returns:
        Tuple of (commission, net). The two always add up to the
        gross amount rounded to cents.
    """
    value = _coerce_amount(amount)
    cut = commission(value)
    return cut, quantize_money(value) - cut
