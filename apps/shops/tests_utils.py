from decimal import Decimal

import pytest
from django.db import IntegrityError, OperationalError

from apps.shops.services import utils
from apps.shops.services.utils import (
    format_currency,
    is_transient_db_error,
    mask_card_number,
    quantize_money,
    retry_on_tx_failure,
)


class DriverError(Exception):
    sqlstate = '40P01'


@pytest.fixture
def delays(monkeypatch):
    slept = []
    monkeypatch.setattr(utils.time, 'sleep', slept.append)
    return slept


def _flaky(errors):
    """Raises the queued errors in turn, then returns the call count"""
    calls = []

    def operation():
        calls.append(1)
        if errors:
            raise errors.pop(0)
        return len(calls)

    return operation, calls


# ==========================================
# MONEY
# ==========================================

def test_money_helpers():
    assert quantize_money(Decimal('10.005')) == Decimal('10.01')
    assert quantize_money('3') == Decimal('3.00')
    assert format_currency(Decimal('10000')) == '$10,000.00'
    assert format_currency(Decimal('5'), 'NGN') == 'NGN5.00'


@pytest.mark.parametrize('raw, masked', [
    ('4111 1111 1111 1234', '****-****-****-1234'),
    ('4111-1111-1111-9876', '****-****-****-9876'),
    ('', ''),
    (None, ''),
])
def test_mask_card_number(raw, masked):
    assert mask_card_number(raw) == masked


# ==========================================
# TRANSACTION RETRIES
# ==========================================

def test_locked_database_is_retried_with_growing_delay(delays, settings):
    settings.LEDGER_TX_RETRY_ATTEMPTS = 3
    operation, calls = _flaky([OperationalError('database is locked'), OperationalError('database is locked')])

    assert retry_on_tx_failure()(operation)() == 3
    assert delays == [0.05, 0.1]


def test_retries_stop_at_the_limit(delays):
    operation, calls = _flaky([OperationalError('deadlock detected')] * 5)

    with pytest.raises(OperationalError):
        retry_on_tx_failure(max_attempts=2, backoff=0)(operation)()
    assert len(calls) == 2


def test_constraint_errors_are_not_retried(delays):
    operation, calls = _flaky([IntegrityError('duplicate key value')])

    with pytest.raises(IntegrityError):
        retry_on_tx_failure()(operation)()
    assert len(calls) == 1
    assert delays == []


@pytest.mark.django_db
def test_no_retry_inside_an_enclosing_transaction(delays):
    operation, calls = _flaky([OperationalError('database is locked')])

    with pytest.raises(OperationalError):
        retry_on_tx_failure()(operation)()
    assert len(calls) == 1


def test_sqlstate_is_read_from_the_wrapped_driver_error():
    try:
        try:
            raise DriverError('deadlock')
        except DriverError as e:
            raise OperationalError('transaction aborted') from e
    except OperationalError as wrapped:
        assert is_transient_db_error(wrapped)

    assert not is_transient_db_error(OperationalError('no such table: shops_shop'))
    assert not is_transient_db_error(RuntimeError('database is locked'))
