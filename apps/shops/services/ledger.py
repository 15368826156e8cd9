"""
Seller Balance Ledger
Every balance change is an atomic F() increment on the shop row plus one
appended Transaction entry, so the stored balance always equals the sum
of the shop's entries.

Entries are keyed by Transaction.reference. Posting an entry whose key
already exists is a no-op, which makes every ledger effect safe to replay.
"""

import logging
from decimal import Decimal
from typing import Dict, Any, Optional

from django.db import transaction, IntegrityError
from django.db.models import F, Sum
from django.utils import timezone

from ..exceptions import InsufficientFunds, ReconciliationError
from ..models import Shop, Transaction, Order, WithdrawalRequest

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

# Statuses whose order total currently sits in the seller balance
CREDITED_STATUSES = {Order.STATUS_DELIVERED, Order.STATUS_RECEIVED}
REVERSIBLE_STATUSES = {Order.STATUS_DELIVERED, Order.STATUS_RECEIVED, Order.STATUS_REFUND_REQUEST}
REVERSING_STATUSES = {Order.STATUS_REFUNDED, Order.STATUS_CANCELLED}


# ==========================================
# IDEMPOTENCY KEYS
# ==========================================

def order_reference(order, kind: str) -> str:
    return f"order:{order.order_id}:{kind}"


def withdrawal_reference(withdrawal, kind: str) -> str:
    return f"withdrawal:{withdrawal.request_id}:{kind}"


# ==========================================
# POSTING
# ==========================================

def _post_entry(
    shop_id: int,
    amount: Decimal,
    transaction_type: str,
    reference: str,
    status: str = Transaction.STATUS_COMPLETED,
    order: Optional[Order] = None,
    withdrawal: Optional[WithdrawalRequest] = None,
    description: str = '',
) -> Optional[Transaction]:
    """
    Apply a signed amount to the shop balance and append its entry.

    Returns:
        The new Transaction, or None when the reference was already posted
    """
    if Transaction.objects.filter(reference=reference).exists():
        logger.info(f'Ledger entry {reference} already posted; skipping')
        return None

    try:
        # Savepoint: a concurrent duplicate undoes the increment too
        with transaction.atomic():
            updated = Shop.objects.filter(pk=shop_id).update(
                available_balance=F('available_balance') + amount
            )
            if updated != 1:
                raise ReconciliationError(
                    'Shop not found for ledger entry',
                    shop_id=shop_id,
                    reference=reference,
                )

            balance_after = Shop.objects.filter(pk=shop_id).values_list('available_balance', flat=True).get()

            entry = Transaction.objects.create(
                shop_id=shop_id,
                transaction_type=transaction_type,
                amount=amount,
                status=status,
                reference=reference,
                description=description,
                order=order,
                withdrawal=withdrawal,
                balance_before=balance_after - amount,
                balance_after=balance_after,
                completed_at=timezone.now() if status == Transaction.STATUS_COMPLETED else None,
            )
    except IntegrityError:
        logger.info(f'Ledger entry {reference} posted concurrently; skipping')
        return None

    logger.info(
        f'Ledger {transaction_type} {amount} on shop {shop_id} ({reference}); balance now {balance_after}'
    )
    return entry


def _lock_shop(shop_id: int) -> Shop:
    try:
        return Shop.objects.select_for_update().get(pk=shop_id)
    except Shop.DoesNotExist:
        raise ReconciliationError('Shop not found for ledger entry', shop_id=shop_id)


@transaction.atomic
def credit(shop_id: int, amount: Decimal, transaction_type: str, reference: str, **kwargs) -> Optional[Transaction]:
    """Add ``amount`` (>= 0) to the shop balance"""
    if amount < 0:
        raise ValueError('credit amount cannot be negative')
    return _post_entry(shop_id, amount, transaction_type, reference, **kwargs)


@transaction.atomic
def debit(
    shop_id: int,
    amount: Decimal,
    transaction_type: str,
    reference: str,
    require_funds: bool = True,
    **kwargs
) -> Optional[Transaction]:
    """
    Subtract ``amount`` (>= 0) from the shop balance

    With ``require_funds`` the shop row is locked first and the debit is
    refused with InsufficientFunds when it would take the balance below zero.
    """
    if amount < 0:
        raise ValueError('debit amount cannot be negative')

    if require_funds and not Transaction.objects.filter(reference=reference).exists():
        shop = _lock_shop(shop_id)
        if shop.available_balance < amount:
            raise InsufficientFunds(
                'Insufficient balance',
                shop_id=shop_id,
                balance=str(shop.available_balance),
                requested=str(amount),
            )

    return _post_entry(shop_id, -amount, transaction_type, reference, **kwargs)


# ==========================================
# ORDER SIDE EFFECTS
# ==========================================

def apply_order_transition(order: Order, old_status: str, new_status: str) -> Optional[Transaction]:
    """
    Ledger effect of an order moving from ``old_status`` to ``new_status``

    Entering delivered/received credits the order total once. Leaving a
    credited state for refunded/cancelled debits it back, but only when
    the credit was actually posted. Everything else is a no-op.
    """
    payment_ref = order_reference(order, Transaction.TYPE_ORDER_PAYMENT)

    if new_status in CREDITED_STATUSES and old_status not in CREDITED_STATUSES:
        return credit(
            order.shop_id,
            order.total_price,
            Transaction.TYPE_ORDER_PAYMENT,
            payment_ref,
            order=order,
            description=f'Payment for order #{order.short_id}',
        )

    if new_status in REVERSING_STATUSES and old_status in REVERSIBLE_STATUSES:
        if not Transaction.objects.filter(reference=payment_ref).exists():
            logger.warning(f'Order {order.order_id} {old_status} -> {new_status}: no credit to reverse')
            return None

        return debit(
            order.shop_id,
            order.total_price,
            Transaction.TYPE_REFUND,
            order_reference(order, Transaction.TYPE_REFUND),
            order=order,
            description=f'Refund for order #{order.short_id} ({new_status})',
        )

    return None


# ==========================================
# WITHDRAWAL ENTRIES
# ==========================================

def settle_withdrawal_entry(withdrawal: WithdrawalRequest, status: str) -> int:
    """Move the withdrawal's debit entry out of Processing"""
    values = {'status': status, 'updated_at': timezone.now()}
    if status == Transaction.STATUS_COMPLETED:
        values['completed_at'] = timezone.now()

    return Transaction.objects.filter(
        reference=withdrawal_reference(withdrawal, 'debit'),
        status=Transaction.STATUS_PROCESSING,
    ).update(**values)


# ==========================================
# RECONCILIATION
# ==========================================

def ledger_balance(shop: Shop) -> Decimal:
    """Sum of the shop's ledger entries"""
    total = Transaction.objects.filter(shop=shop).aggregate(total=Sum('amount'))['total']
    return total if total is not None else ZERO


def recomputed_balance(shop: Shop) -> Decimal:
    """
    Balance rebuilt from the aggregates: totals of orders currently
    credited minus withdrawals that are pending or paid out
    """
    earned = Order.objects.filter(
        shop=shop,
        status__in=REVERSIBLE_STATUSES,
    ).aggregate(total=Sum('total_price'))['total'] or ZERO

    withdrawn = WithdrawalRequest.objects.filter(
        shop=shop,
        status__in=[WithdrawalRequest.STATUS_PROCESSING, WithdrawalRequest.STATUS_COMPLETED],
    ).aggregate(total=Sum('amount'))['total'] or ZERO

    return earned - withdrawn


def reconcile_shop(shop: Shop) -> Dict[str, Any]:
    """
    Compare the stored balance with the entry fold and the recomputation

    Returns:
        Dict with the three figures and an ``in_sync`` flag
    """
    shop.refresh_from_db(fields=['available_balance'])
    stored = shop.available_balance
    folded = ledger_balance(shop)
    recomputed = recomputed_balance(shop)

    in_sync = stored == folded == recomputed
    if not in_sync:
        logger.warning(
            f'Shop {shop.shop_id} balance drift: stored={stored} ledger={folded} recomputed={recomputed}'
        )

    return {
        'shop_id': str(shop.shop_id),
        'shop_name': shop.name,
        'stored_balance': stored,
        'ledger_balance': folded,
        'recomputed_balance': recomputed,
        'in_sync': in_sync,
    }
