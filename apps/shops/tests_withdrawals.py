from decimal import Decimal

import pytest
from django.core import mail
from django.core.management import call_command
from django.urls import reverse

from apps.shops.exceptions import ValidationError, NotFound, InvalidState, Conflict, InsufficientFunds, Unauthorized
from apps.shops.models import AdminRevenue, Order, Transaction, WithdrawalRequest
from apps.shops.services import ledger
from apps.shops.services import orders as order_service
from apps.shops.services import withdrawals as withdrawal_service

pytestmark = pytest.mark.django_db


@pytest.fixture
def funded_shop(place_order, operator, shop):
    """Shop holding 100.00 from one delivered order"""
    order = place_order('100.00')
    order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)
    shop.refresh_from_db()
    return shop


def test_submit_debits_balance_into_processing(funded_shop, seller, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)

    funded_shop.refresh_from_db()
    assert funded_shop.available_balance == Decimal('40.00')
    assert withdrawal.status == WithdrawalRequest.STATUS_PROCESSING
    assert withdrawal.amount == Decimal('60.00')
    assert withdrawal.bank_name == 'First Bank'
    assert withdrawal.seller_email == funded_shop.email

    entry = Transaction.objects.get(withdrawal=withdrawal)
    assert entry.transaction_type == Transaction.TYPE_WITHDRAWAL
    assert entry.status == Transaction.STATUS_PROCESSING
    assert entry.amount == Decimal('-60.00')


def test_accept_books_commission_without_touching_balance(funded_shop, seller, operator, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)
    withdrawal = withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)

    funded_shop.refresh_from_db()
    assert withdrawal.status == WithdrawalRequest.STATUS_COMPLETED
    assert withdrawal.commission == Decimal('6.00')
    assert withdrawal.net_amount == Decimal('54.00')
    assert withdrawal.processed_by == operator
    assert funded_shop.available_balance == Decimal('40.00')
    assert AdminRevenue.load().total_commission == Decimal('6.00')

    entry = Transaction.objects.get(withdrawal=withdrawal)
    assert entry.status == Transaction.STATUS_COMPLETED
    assert entry.completed_at is not None


def test_reject_restores_balance(funded_shop, seller, operator, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)
    withdrawal = withdrawal_service.reject_withdrawal(operator, withdrawal.request_id, 'Account name mismatch')

    funded_shop.refresh_from_db()
    assert withdrawal.status == WithdrawalRequest.STATUS_REJECTED
    assert withdrawal.rejection_reason == 'Account name mismatch'
    assert funded_shop.available_balance == Decimal('100.00')
    assert AdminRevenue.load().total_commission == Decimal('0.00')

    debit = Transaction.objects.get(withdrawal=withdrawal, transaction_type=Transaction.TYPE_WITHDRAWAL)
    reversal = Transaction.objects.get(withdrawal=withdrawal, transaction_type=Transaction.TYPE_WITHDRAWAL_REVERSAL)
    assert debit.status == Transaction.STATUS_REVERSED
    assert reversal.amount == Decimal('60.00')


def test_over_balance_creates_nothing(funded_shop, seller, bank_account):
    with pytest.raises(InsufficientFunds):
        withdrawal_service.submit_withdrawal(seller, '100.01', bank_account.account_number)

    funded_shop.refresh_from_db()
    assert funded_shop.available_balance == Decimal('100.00')
    assert not WithdrawalRequest.objects.exists()
    assert not Transaction.objects.filter(transaction_type=Transaction.TYPE_WITHDRAWAL).exists()


def test_pending_withdrawals_count_against_balance(funded_shop, seller, bank_account):
    withdrawal_service.submit_withdrawal(seller, '70.00', bank_account.account_number)

    with pytest.raises(InsufficientFunds):
        withdrawal_service.submit_withdrawal(seller, '40.00', bank_account.account_number)

    funded_shop.refresh_from_db()
    assert funded_shop.available_balance == Decimal('30.00')


@pytest.mark.parametrize('amount', ['0', '-5', 'abc', None])
def test_submit_rejects_bad_amounts(funded_shop, seller, bank_account, amount):
    with pytest.raises(ValidationError):
        withdrawal_service.submit_withdrawal(seller, amount, bank_account.account_number)


def test_submit_requires_registered_account(funded_shop, seller, bank_account):
    with pytest.raises(ValidationError, match='registered bank account'):
        withdrawal_service.submit_withdrawal(seller, '10.00', '9999999999')


def test_only_sellers_submit(funded_shop, buyer, operator):
    for actor in (buyer, operator):
        with pytest.raises(Unauthorized):
            withdrawal_service.submit_withdrawal(actor, '10.00', '0123456789')


def test_decisions_need_processing_state(funded_shop, seller, operator, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '10.00', bank_account.account_number)
    withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)

    with pytest.raises(InvalidState):
        withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)
    with pytest.raises(InvalidState):
        withdrawal_service.reject_withdrawal(operator, withdrawal.request_id, 'late')

    assert AdminRevenue.load().total_commission == Decimal('1.00')


def test_decisions_are_operator_only(funded_shop, seller, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '10.00', bank_account.account_number)

    with pytest.raises(Unauthorized):
        withdrawal_service.accept_withdrawal(seller, withdrawal.request_id)
    with pytest.raises(Unauthorized):
        withdrawal_service.reject_withdrawal(seller, withdrawal.request_id, 'mine')


def test_reject_requires_reason(funded_shop, seller, operator, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '10.00', bank_account.account_number)
    with pytest.raises(ValidationError):
        withdrawal_service.reject_withdrawal(operator, withdrawal.request_id, '   ')


def test_unknown_request(operator):
    with pytest.raises(NotFound):
        withdrawal_service.accept_withdrawal(operator, '2f1b0a4e-0000-4000-8000-000000000000')
    with pytest.raises(NotFound):
        withdrawal_service.accept_withdrawal(operator, 'garbage')


def test_list_withdrawals_scoping(funded_shop, seller, other_seller, operator, bank_account):
    withdrawal_service.submit_withdrawal(seller, '10.00', bank_account.account_number)

    assert withdrawal_service.list_withdrawals(seller).count() == 1
    assert withdrawal_service.list_withdrawals(other_seller).count() == 0
    assert withdrawal_service.list_withdrawals(operator).count() == 1
    assert withdrawal_service.list_withdrawals(operator, status=WithdrawalRequest.STATUS_COMPLETED).count() == 0


def test_balance_never_negative(funded_shop, seller, operator, bank_account, buyer):
    withdrawal_service.submit_withdrawal(seller, '100.00', bank_account.account_number)
    order = Order.objects.get(shop=funded_shop)
    order_service.request_refund(buyer, order.order_id)

    with pytest.raises(InsufficientFunds):
        order_service.decide_refund(operator, order.order_id, approve=True)

    funded_shop.refresh_from_db()
    order.refresh_from_db()
    assert funded_shop.available_balance == Decimal('0.00')
    assert order.status == Order.STATUS_REFUND_REQUEST
    assert ledger.reconcile_shop(funded_shop)['in_sync'] is True


# ==========================================
# NOTIFICATIONS
# ==========================================

def test_withdrawal_emails_go_out_after_commit(
    funded_shop, seller, operator, bank_account, django_capture_on_commit_callbacks, settings
):
    settings.ADMIN_EMAILS = ['payouts@multimart.com']

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)
    assert len(callbacks) == 2
    assert [m.subject for m in mail.outbox][0] == 'Withdrawal Request Confirmation'
    assert mail.outbox[1].to == ['payouts@multimart.com']

    mail.outbox.clear()
    with django_capture_on_commit_callbacks(execute=True):
        withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)

    assert len(mail.outbox) == 1
    approved = mail.outbox[0]
    assert approved.subject == 'Withdrawal Request Approved - Payment Processed'
    assert approved.to == [funded_shop.email]
    assert '$6.00' in approved.body
    assert '$54.00' in approved.body


def test_every_admin_address_hears_of_a_new_withdrawal(
    funded_shop, seller, bank_account, django_capture_on_commit_callbacks, settings
):
    settings.ADMIN_EMAILS = ['payouts@multimart.com', 'finance@multimart.com']

    with django_capture_on_commit_callbacks(execute=True):
        withdrawal_service.submit_withdrawal(seller, '25.00', bank_account.account_number)

    review = mail.outbox[-1]
    assert review.subject == f'Withdrawal Pending Review - {funded_shop.name}'
    assert review.to == ['payouts@multimart.com', 'finance@multimart.com']


def test_rejection_email_carries_reason(funded_shop, seller, operator, bank_account, django_capture_on_commit_callbacks):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)

    with django_capture_on_commit_callbacks(execute=True):
        withdrawal_service.reject_withdrawal(operator, withdrawal.request_id, 'Account name mismatch')

    assert len(mail.outbox) == 1
    assert mail.outbox[0].subject == 'Withdrawal Request - Action Required'
    assert 'Account name mismatch' in mail.outbox[0].body


def test_failed_email_does_not_undo_payout(
    funded_shop, seller, operator, bank_account, django_capture_on_commit_callbacks, monkeypatch
):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)

    def refuse(*args, **kwargs):
        raise ConnectionRefusedError('smtp down')
    monkeypatch.setattr('apps.shops.services.notifications.send_marketplace_email', refuse)

    with django_capture_on_commit_callbacks(execute=True):
        withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)

    withdrawal.refresh_from_db()
    assert withdrawal.status == WithdrawalRequest.STATUS_COMPLETED


def test_send_test_notification_command():
    call_command('send_test_notification', 'ops@test.com', sms='+1 555 000 1111')

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ['ops@test.com']
    assert mail.outbox[0].subject == 'MultiMart test notification'


# ==========================================
# REVENUE REPORT & BANK ACCOUNTS
# ==========================================

def test_revenue_report_keeps_projection_separate(funded_shop, seller, operator, bank_account):
    withdrawal = withdrawal_service.submit_withdrawal(seller, '60.00', bank_account.account_number)
    withdrawal_service.accept_withdrawal(operator, withdrawal.request_id)

    report = withdrawal_service.admin_revenue_report(operator)

    assert report['total_revenue'] == Decimal('6.00')
    assert report['recognized_commission'] == Decimal('6.00')
    assert report['projected_commission'] == Decimal('10.00')
    assert report['paid_out_to_sellers'] == Decimal('54.00')
    assert report['withdrawals'][WithdrawalRequest.STATUS_COMPLETED] == 1
    assert report['withdrawals'][WithdrawalRequest.STATUS_REJECTED] == 0


def test_revenue_report_is_operator_only(seller):
    with pytest.raises(Unauthorized):
        withdrawal_service.admin_revenue_report(seller)


def test_bank_accounts_are_unique_per_shop(seller, other_seller):
    withdrawal_service.add_bank_account(seller, 'First Bank', 'Acme Goods Ltd', '0123456789')

    with pytest.raises(Conflict):
        withdrawal_service.add_bank_account(seller, 'Other Bank', 'Acme Goods Ltd', '0123456789')

    # Same number is fine for another shop
    withdrawal_service.add_bank_account(other_seller, 'First Bank', 'Beta Supplies', '0123456789')

    withdrawal_service.remove_bank_account(seller, '0123456789')
    assert withdrawal_service.list_bank_accounts(seller).count() == 0
    with pytest.raises(NotFound):
        withdrawal_service.remove_bank_account(seller, '0123456789')


def test_bank_account_fields_required(seller):
    with pytest.raises(ValidationError):
        withdrawal_service.add_bank_account(seller, '', 'Acme', '0123456789')


# ==========================================
# ADMIN ACTIONS
# ==========================================

def test_admin_actions_settle_withdrawals(funded_shop, seller, bank_account, admin_client):
    first = withdrawal_service.submit_withdrawal(seller, '30.00', bank_account.account_number)
    second = withdrawal_service.submit_withdrawal(seller, '20.00', bank_account.account_number)
    url = reverse('admin:shops_withdrawalrequest_changelist')

    response = admin_client.post(url, {'action': 'accept_withdrawals', '_selected_action': [first.pk]})
    assert response.status_code == 302
    response = admin_client.post(url, {'action': 'reject_withdrawals', '_selected_action': [second.pk]})
    assert response.status_code == 302

    first.refresh_from_db()
    second.refresh_from_db()
    funded_shop.refresh_from_db()
    assert first.status == WithdrawalRequest.STATUS_COMPLETED
    assert second.status == WithdrawalRequest.STATUS_REJECTED
    assert second.rejection_reason
    assert funded_shop.available_balance == Decimal('70.00')
    assert AdminRevenue.load().total_commission == Decimal('3.00')
