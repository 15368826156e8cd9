from decimal import Decimal

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db.models import Sum

from apps.shops.exceptions import InsufficientFunds, ReconciliationError
from apps.shops.models import Order, Shop, Transaction
from apps.shops.services import ledger
from apps.shops.services import orders as order_service
from apps.shops.services import withdrawals as withdrawal_service

pytestmark = pytest.mark.django_db


def test_credit_is_idempotent_by_reference(shop):
    first = ledger.credit(shop.pk, Decimal('12.50'), Transaction.TYPE_ORDER_PAYMENT, 'order:test:order_payment')
    second = ledger.credit(shop.pk, Decimal('12.50'), Transaction.TYPE_ORDER_PAYMENT, 'order:test:order_payment')

    shop.refresh_from_db()
    assert first is not None
    assert second is None
    assert shop.available_balance == Decimal('12.50')
    assert Transaction.objects.filter(shop=shop).count() == 1


def test_debit_refuses_to_overdraw(shop):
    ledger.credit(shop.pk, Decimal('10.00'), Transaction.TYPE_ORDER_PAYMENT, 'order:a:order_payment')

    with pytest.raises(InsufficientFunds):
        ledger.debit(shop.pk, Decimal('10.01'), Transaction.TYPE_REFUND, 'order:a:refund')

    shop.refresh_from_db()
    assert shop.available_balance == Decimal('10.00')


def test_missing_shop_raises_reconciliation_error(db):
    with pytest.raises(ReconciliationError):
        ledger.credit(987654, Decimal('1.00'), Transaction.TYPE_ORDER_PAYMENT, 'order:ghost:order_payment')
    assert not Transaction.objects.filter(reference='order:ghost:order_payment').exists()


def test_failed_ledger_write_rolls_back_status(place_order, operator):
    order = place_order('25.00')
    order_service.transition_order(operator, order.order_id, Order.STATUS_RECEIVED)

    # Drain the balance behind the ledger's back so the reversal cannot be covered
    Shop.objects.filter(pk=order.shop_id).update(available_balance=Decimal('0.00'))

    with pytest.raises(InsufficientFunds):
        order_service.cancel_order(operator, order.order_id, 'lost')

    order.refresh_from_db()
    assert order.status == Order.STATUS_RECEIVED


def test_reversal_without_credit_is_skipped(place_order, shop):
    order = place_order('25.00')
    entry = ledger.apply_order_transition(order, Order.STATUS_REFUND_REQUEST, Order.STATUS_REFUNDED)

    shop.refresh_from_db()
    assert entry is None
    assert shop.available_balance == Decimal('0.00')


def test_balance_is_fold_of_entries(place_order, operator, seller, shop, bank_account):
    for price in ('30.00', '45.50', '24.50'):
        order = place_order(price)
        order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)

    accepted = withdrawal_service.submit_withdrawal(seller, '40.00', bank_account.account_number)
    withdrawal_service.accept_withdrawal(operator, accepted.request_id)
    rejected = withdrawal_service.submit_withdrawal(seller, '10.00', bank_account.account_number)
    withdrawal_service.reject_withdrawal(operator, rejected.request_id, 'Wrong account')

    shop.refresh_from_db()
    folded = Transaction.objects.filter(shop=shop).aggregate(total=Sum('amount'))['total']
    assert shop.available_balance == folded == Decimal('60.00')

    report = ledger.reconcile_shop(shop)
    assert report['in_sync'] is True
    assert report['recomputed_balance'] == Decimal('60.00')


def test_reconcile_reports_drift(delivered_order, shop):
    Shop.objects.filter(pk=shop.pk).update(available_balance=Decimal('999.00'))

    report = ledger.reconcile_shop(shop)
    assert report['in_sync'] is False
    assert report['stored_balance'] == Decimal('999.00')
    assert report['ledger_balance'] == Decimal('50.00')


def test_reconcile_balances_command(delivered_order, shop):
    call_command('reconcile_balances')
    call_command('reconcile_balances', shop=str(shop.shop_id))

    Shop.objects.filter(pk=shop.pk).update(available_balance=Decimal('1.00'))
    with pytest.raises(CommandError, match='out of balance'):
        call_command('reconcile_balances')

    with pytest.raises(CommandError, match='Invalid shop id'):
        call_command('reconcile_balances', shop='nope')
