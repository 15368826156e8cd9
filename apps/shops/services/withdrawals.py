"""
Withdrawal Service
Seller payout requests, operator decisions, bank accounts and the
platform revenue report.

Submitting locks the shop row, so concurrent requests from one seller
are checked against the balance one at a time. The request amount is
debited at once (entry in Processing); accepting only settles that entry
and books the commission, rejecting credits the amount back.
"""

import uuid
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional

from django.db import transaction, IntegrityError
from django.db.models import Count, F, Sum
from django.utils import timezone

from ..exceptions import ValidationError, NotFound, InvalidState, Conflict, InsufficientFunds, Unauthorized
from ..models import Shop, BankAccount, Transaction, Order, WithdrawalRequest, AdminRevenue
from . import commission as commission_calc
from . import ledger
from .notifications import notification_service
from .orders import is_operator
from .utils import quantize_money, retry_on_tx_failure

logger = logging.getLogger(__name__)

STATUS_VALUES = {value for value, _ in WithdrawalRequest.STATUS_CHOICES}


# ==========================================
# HELPERS
# ==========================================

def get_seller_shop(actor) -> Shop:
    """The actor's own shop; only sellers have one"""
    if actor is None or not actor.is_authenticated or not actor.is_seller:
        raise Unauthorized('Only sellers can manage payouts')
    try:
        return Shop.objects.get(user=actor)
    except Shop.DoesNotExist:
        raise NotFound('Shop not found', user_id=actor.pk)


def _parse_amount(amount) -> Decimal:
    if amount in (None, '') or isinstance(amount, bool):
        raise ValidationError('Invalid withdrawal amount', amount=amount)
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError('Invalid withdrawal amount', amount=amount)
    if not value.is_finite() or value <= 0:
        raise ValidationError('Invalid withdrawal amount', amount=amount)

    value = quantize_money(value)
    if value <= 0:
        raise ValidationError('Invalid withdrawal amount', amount=amount)
    return value


def _lock_withdrawal(request_id) -> WithdrawalRequest:
    try:
        pk = uuid.UUID(str(request_id))
    except ValueError:
        raise NotFound('Withdrawal request not found', request_id=str(request_id))

    try:
        return WithdrawalRequest.objects.select_for_update().get(request_id=pk)
    except WithdrawalRequest.DoesNotExist:
        raise NotFound('Withdrawal request not found', request_id=str(pk))


# ==========================================
# SELLER SIDE
# ==========================================

@retry_on_tx_failure()
@transaction.atomic
def submit_withdrawal(actor, amount, account_number: str) -> WithdrawalRequest:
    """
    Request a payout of ``amount`` to one of the shop's bank accounts

    Raises:
        ValidationError: bad amount or unregistered account
        InsufficientFunds: amount exceeds the ledger balance
    """
    shop = get_seller_shop(actor)
    amount = _parse_amount(amount)

    account = BankAccount.objects.filter(shop=shop, account_number=str(account_number or '')).first()
    if account is None:
        raise ValidationError(
            'Please select a registered bank account',
            shop_id=str(shop.shop_id),
            account_number=account_number,
        )

    shop = Shop.objects.select_for_update().get(pk=shop.pk)
    balance = shop.available_balance

    if amount > balance:
        raise InsufficientFunds(
            'Insufficient balance for this withdrawal',
            shop_id=str(shop.shop_id),
            balance=str(balance),
            requested=str(amount),
        )

    recomputed = ledger.recomputed_balance(shop)
    if recomputed != balance:
        logger.warning(f'Shop {shop.shop_id} ledger balance {balance} differs from recomputed {recomputed}')

    withdrawal = WithdrawalRequest.objects.create(
        shop=shop,
        seller_name=shop.name,
        seller_email=shop.email,
        amount=amount,
        bank_name=account.bank_name,
        account_holder_name=account.account_holder_name,
        account_number=account.account_number,
    )

    ledger.debit(
        shop.pk,
        amount,
        Transaction.TYPE_WITHDRAWAL,
        ledger.withdrawal_reference(withdrawal, 'debit'),
        require_funds=False,
        status=Transaction.STATUS_PROCESSING,
        withdrawal=withdrawal,
        description=f'Withdrawal to {account.bank_name} ****{account.account_number[-4:]}',
    )

    transaction.on_commit(lambda: notification_service.send_withdrawal_submitted(withdrawal))
    transaction.on_commit(lambda: notification_service.notify_admin_withdrawal_request(withdrawal))

    logger.info(f'Withdrawal {withdrawal.request_id} of {amount} submitted for shop {shop.shop_id}')
    return withdrawal


def list_withdrawals(actor, status: Optional[str] = None):
    """Operators see every request, sellers their own shop's"""
    if status and status not in STATUS_VALUES:
        raise ValidationError(f'Invalid withdrawal status: {status}')

    if is_operator(actor):
        requests = WithdrawalRequest.objects.select_related('shop')
    else:
        requests = WithdrawalRequest.objects.filter(shop=get_seller_shop(actor))

    if status:
        requests = requests.filter(status=status)
    return requests


# ==========================================
# OPERATOR DECISIONS
# ==========================================

@retry_on_tx_failure()
@transaction.atomic
def accept_withdrawal(actor, request_id) -> WithdrawalRequest:
    """
    Pay out a pending request: book 10% commission to platform revenue
    and settle the debit entry. The shop balance is already reduced.
    """
    if not is_operator(actor):
        raise Unauthorized(request_id=str(request_id))

    withdrawal = _lock_withdrawal(request_id)
    if withdrawal.status != WithdrawalRequest.STATUS_PROCESSING:
        raise InvalidState(
            f'Withdrawal request is already {withdrawal.status}',
            request_id=str(withdrawal.request_id),
            from_status=withdrawal.status,
            to_status=WithdrawalRequest.STATUS_COMPLETED,
        )

    cut, net = commission_calc.split(withdrawal.amount)
    now = timezone.now()

    withdrawal.status = WithdrawalRequest.STATUS_COMPLETED
    withdrawal.commission = cut
    withdrawal.net_amount = net
    withdrawal.processed_by = actor
    withdrawal.processed_at = now
    withdrawal.save(update_fields=['status', 'commission', 'net_amount', 'processed_by', 'processed_at', 'updated_at'])

    AdminRevenue.load()
    AdminRevenue.objects.filter(pk=1).update(total_commission=F('total_commission') + cut, updated_at=now)

    ledger.settle_withdrawal_entry(withdrawal, Transaction.STATUS_COMPLETED)

    transaction.on_commit(lambda: notification_service.send_withdrawal_approved(withdrawal))

    logger.info(f'Withdrawal {withdrawal.request_id} accepted: commission {cut}, paid out {net}')
    return withdrawal


@retry_on_tx_failure()
@transaction.atomic
def reject_withdrawal(actor, request_id, reason: str) -> WithdrawalRequest:
    """Decline a pending request and credit the amount back to the shop"""
    if not is_operator(actor):
        raise Unauthorized(request_id=str(request_id))

    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('Rejection reason is required', request_id=str(request_id))

    withdrawal = _lock_withdrawal(request_id)
    if withdrawal.status != WithdrawalRequest.STATUS_PROCESSING:
        raise InvalidState(
            f'Withdrawal request is already {withdrawal.status}',
            request_id=str(withdrawal.request_id),
            from_status=withdrawal.status,
            to_status=WithdrawalRequest.STATUS_REJECTED,
        )

    withdrawal.status = WithdrawalRequest.STATUS_REJECTED
    withdrawal.rejection_reason = reason
    withdrawal.processed_by = actor
    withdrawal.processed_at = timezone.now()
    withdrawal.save(update_fields=['status', 'rejection_reason', 'processed_by', 'processed_at', 'updated_at'])

    ledger.settle_withdrawal_entry(withdrawal, Transaction.STATUS_REVERSED)
    ledger.credit(
        withdrawal.shop_id,
        withdrawal.amount,
        Transaction.TYPE_WITHDRAWAL_REVERSAL,
        ledger.withdrawal_reference(withdrawal, 'reversal'),
        withdrawal=withdrawal,
        description=f'Withdrawal #{str(withdrawal.request_id)[:8]} rejected',
    )

    transaction.on_commit(lambda: notification_service.send_withdrawal_rejected(withdrawal))

    logger.info(f'Withdrawal {withdrawal.request_id} rejected: {reason}')
    return withdrawal


# ==========================================
# REPORTING
# ==========================================

def admin_revenue_report(actor) -> Dict[str, Any]:
    """
    Platform revenue overview

    Recognized commission is what accepted withdrawals booked. The
    projection over delivered orders is informational and is not part
    of the revenue total.
    """
    if not is_operator(actor):
        raise Unauthorized()

    revenue = AdminRevenue.load()

    delivered_total = Order.objects.filter(
        status__in=ledger.CREDITED_STATUSES,
    ).aggregate(total=Sum('total_price'))['total'] or Decimal('0.00')

    counts = {status: 0 for status in STATUS_VALUES}
    for row in WithdrawalRequest.objects.values('status').annotate(count=Count('id')):
        counts[row['status']] = row['count']

    paid_out = WithdrawalRequest.objects.filter(
        status=WithdrawalRequest.STATUS_COMPLETED,
    ).aggregate(total=Sum('net_amount'))['total'] or Decimal('0.00')

    return {
        'total_revenue': revenue.total_commission,
        'recognized_commission': revenue.total_commission,
        'projected_commission': commission_calc.commission(delivered_total),
        'delivered_order_total': delivered_total,
        'paid_out_to_sellers': paid_out,
        'withdrawals': counts,
        'updated_at': revenue.updated_at,
    }


# ==========================================
# BANK ACCOUNTS
# ==========================================

def list_bank_accounts(actor):
    return get_seller_shop(actor).bank_accounts.all()


def add_bank_account(actor, bank_name: str, account_holder_name: str, account_number: str) -> BankAccount:
    shop = get_seller_shop(actor)

    bank_name = (bank_name or '').strip()
    account_holder_name = (account_holder_name or '').strip()
    account_number = (account_number or '').strip()
    if not bank_name or not account_holder_name or not account_number:
        raise ValidationError('Bank name, account holder name and account number are required')

    if shop.bank_accounts.filter(account_number=account_number).exists():
        raise Conflict('This bank account is already added', account_number=account_number)

    try:
        with transaction.atomic():
            account = BankAccount.objects.create(
                shop=shop,
                bank_name=bank_name,
                account_holder_name=account_holder_name,
                account_number=account_number,
            )
    except IntegrityError:
        raise Conflict('This bank account is already added', account_number=account_number)

    logger.info(f'Shop {shop.shop_id} added bank account ****{account_number[-4:]}')
    return account


def remove_bank_account(actor, account_number: str) -> None:
    shop = get_seller_shop(actor)
    deleted, _ = shop.bank_accounts.filter(account_number=account_number).delete()
    if not deleted:
        raise NotFound('Bank account not found', account_number=account_number)

    logger.info(f'Shop {shop.shop_id} removed bank account ****{str(account_number)[-4:]}')
