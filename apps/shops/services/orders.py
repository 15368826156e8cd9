"""
Order Service
Checkout, the fulfilment state machine, cancellations and refunds.

Every write runs in one database transaction with the order row locked;
the status change and its ledger effect commit together or not at all.
Notifications go out only after commit.
"""

import uuid
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any

from django.core.paginator import Paginator
from django.db import transaction
from django.utils import timezone

from ..exceptions import ValidationError, NotFound, InvalidState, Conflict, InsufficientFunds, Unauthorized
from ..models import Shop, Order, OrderItem
from . import ledger
from .notifications import notification_service
from .utils import quantize_money, mask_card_number, retry_on_tx_failure

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
TOLERANCE = Decimal('0.01')

ALLOWED_TRANSITIONS = {
    Order.STATUS_PROCESSING: {
        Order.STATUS_TRANSFERRED, Order.STATUS_SHIPPING, Order.STATUS_ON_THE_WAY,
        Order.STATUS_RECEIVED, Order.STATUS_DELIVERED, Order.STATUS_CANCELLED,
    },
    Order.STATUS_TRANSFERRED: {
        Order.STATUS_SHIPPING, Order.STATUS_ON_THE_WAY, Order.STATUS_RECEIVED,
        Order.STATUS_DELIVERED, Order.STATUS_CANCELLED,
    },
    Order.STATUS_SHIPPING: {
        Order.STATUS_ON_THE_WAY, Order.STATUS_RECEIVED, Order.STATUS_DELIVERED, Order.STATUS_CANCELLED,
    },
    Order.STATUS_ON_THE_WAY: {
        Order.STATUS_RECEIVED, Order.STATUS_DELIVERED, Order.STATUS_CANCELLED,
    },
    Order.STATUS_RECEIVED: {Order.STATUS_DELIVERED, Order.STATUS_CANCELLED},
    Order.STATUS_DELIVERED: {Order.STATUS_REFUND_REQUEST},
    Order.STATUS_REFUND_REQUEST: {Order.STATUS_REFUNDED, Order.STATUS_DELIVERED},
    Order.STATUS_CANCELLED: set(),
    Order.STATUS_REFUNDED: set(),
}

STATUS_VALUES = {value for value, _ in Order.STATUS_CHOICES}
NOT_CANCELLABLE = {
    Order.STATUS_DELIVERED, Order.STATUS_REFUND_REQUEST, Order.STATUS_CANCELLED, Order.STATUS_REFUNDED,
}
# Left only through request_refund / decide_refund
REFUND_GATED = {Order.STATUS_DELIVERED, Order.STATUS_REFUND_REQUEST}
DELETABLE = {Order.STATUS_PROCESSING, Order.STATUS_CANCELLED}
PAYMENT_METHODS = {value for value, _ in Order.PAYMENT_METHOD_CHOICES}
PAYMENT_STATUSES = {value for value, _ in Order.PAYMENT_STATUS_CHOICES}

# Buyer gets an email when the order enters one of these
BUYER_NOTIFIED_STATUSES = {
    Order.STATUS_TRANSFERRED, Order.STATUS_SHIPPING, Order.STATUS_ON_THE_WAY,
    Order.STATUS_DELIVERED, Order.STATUS_REFUNDED, Order.STATUS_CANCELLED,
}


# ==========================================
# HELPERS
# ==========================================

def _field(data: Dict, *names, default=None):
    """First present key among snake_case / camelCase spellings"""
    for name in names:
        value = data.get(name)
        if value not in (None, ''):
            return value
    return default


def _to_decimal(value, message: str, **context) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(message, **context)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(message, **context)
    if not result.is_finite():
        raise ValidationError(message, **context)
    return result


def _parse_uuid(value, message: str, **context) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(message, **context)


def is_operator(actor) -> bool:
    return bool(actor and actor.is_authenticated and actor.is_operator)


def _owns_shop(actor, order: Order) -> bool:
    return bool(actor and actor.is_authenticated and order.shop.user_id == actor.pk)


def _owns_order(actor, order: Order) -> bool:
    return bool(actor and actor.is_authenticated and order.user_id == actor.pk)


def _lock_order(order_id) -> Order:
    pk = _parse_uuid(order_id, 'Invalid order ID', order_id=order_id)
    try:
        return Order.objects.select_for_update().get(order_id=pk)
    except Order.DoesNotExist:
        raise NotFound('Order not found', order_id=str(pk))


def _notify_status(order: Order):
    if order.status in BUYER_NOTIFIED_STATUSES:
        transaction.on_commit(lambda: notification_service.send_order_status_update(order))


# ==========================================
# CHECKOUT
# ==========================================

def _validate_items(items) -> List[Dict[str, Any]]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError('Missing items in order')

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f'Item at index {index} is malformed', index=index)

        product_id = _field(item, 'product_id', 'productId', '_id')
        shop_id = _field(item, 'shop_id', 'shopId')
        quantity = _field(item, 'quantity', 'qty')

        try:
            quantity = int(quantity) if quantity is not None and not isinstance(quantity, bool) else None
        except (TypeError, ValueError):
            quantity = None

        if not product_id or not shop_id or quantity is None or quantity < 1:
            raise ValidationError(
                f'Item at index {index} is missing required fields (product ID, shop ID, or quantity)',
                index=index,
            )

        message = f'Item at index {index} has invalid price'
        price = _to_decimal(_field(item, 'price'), message, index=index)
        discount_price = _to_decimal(_field(item, 'discount_price', 'discountPrice', default=price), message, index=index)
        if price <= 0 or discount_price <= 0:
            raise ValidationError(message, index=index)

        parsed.append({
            'product_id': str(product_id),
            'shop_id': shop_id,
            'quantity': quantity,
            'price': quantize_money(price),
            'discount_price': quantize_money(discount_price),
            'name': _field(item, 'name', default='Product'),
            'images': item.get('images') or [],
        })

    return parsed


def _validate_shipping(shipping_address) -> Dict[str, str]:
    if not isinstance(shipping_address, dict) or not shipping_address:
        raise ValidationError('Missing shipping address')

    address = _field(shipping_address, 'address')
    city = _field(shipping_address, 'city')
    zip_code = _field(shipping_address, 'zip_code', 'zipCode')
    if not address or not city or not zip_code:
        raise ValidationError('Shipping address must include address, city, and zipCode')

    return {
        'shipping_address': str(address),
        'shipping_city': str(city),
        'shipping_zip_code': str(zip_code),
        'shipping_state': str(_field(shipping_address, 'state', default='')),
        'shipping_country': str(_field(shipping_address, 'country', default='')),
        'shipping_phone': str(_field(shipping_address, 'phone_number', 'phoneNumber', default='')),
    }


def _payment_fields(payment_info) -> Dict[str, str]:
    payment_info = payment_info or {}
    method = _field(payment_info, 'payment_method', 'paymentMethod', default='cod')
    status = _field(payment_info, 'payment_status', 'paymentStatus', default='pending')

    if method not in PAYMENT_METHODS:
        raise ValidationError(f'Unsupported payment method: {method}')
    if status not in PAYMENT_STATUSES:
        raise ValidationError(f'Invalid payment status: {status}')

    # Expiry date and CVV are never stored
    return {
        'payment_method': method,
        'payment_status': status,
        'payment_reference': str(_field(payment_info, 'transaction_reference', 'transactionId', default='')),
        'card_number': mask_card_number(str(_field(payment_info, 'card_number', 'cardNumber', default=''))),
        'card_holder_name': str(_field(payment_info, 'card_holder_name', 'cardHolderName', default='')),
    }


@retry_on_tx_failure()
@transaction.atomic
def create_orders(
    actor,
    items,
    shipping_address,
    total_amount,
    payment_info: Optional[Dict] = None,
    coupon: Optional[Dict] = None,
) -> List[Order]:
    """
    Split a checkout into one order per shop

    Args:
        actor: Authenticated buyer placing the order
        items: Item snapshots ({productId, shopId, quantity, price, discountPrice, name, images})
        shipping_address: {address, city, zipCode, state?, country?, phoneNumber?}
        total_amount: Amount charged for the whole checkout
        payment_info: Settled payment facts (method, status, reference, card)
        coupon: {code, discount, discountPercentage} with an absolute discount

    Returns:
        Created orders, one per distinct shop, in item order
    """
    if actor is None or not actor.is_authenticated:
        raise ValidationError('Missing user information')

    parsed_items = _validate_items(items)
    shipping = _validate_shipping(shipping_address)

    if total_amount in (None, ''):
        raise ValidationError('Valid total amount is required')
    total_amount = _to_decimal(total_amount, 'Valid total amount is required')
    if total_amount <= 0:
        raise ValidationError('Valid total amount is required')

    payment = _payment_fields(payment_info)

    # Partition by shop, keeping first-seen order
    by_shop: Dict[uuid.UUID, List[Dict[str, Any]]] = {}
    for item in parsed_items:
        shop_uuid = _parse_uuid(item['shop_id'], f"Invalid shop ID: {item['shop_id']}", shop_id=item['shop_id'])
        by_shop.setdefault(shop_uuid, []).append(item)

    shops = {shop.shop_id: shop for shop in Shop.objects.filter(shop_id__in=list(by_shop))}
    for shop_uuid in by_shop:
        if shop_uuid not in shops:
            raise NotFound(f'Shop not found: {shop_uuid}', shop_id=str(shop_uuid))

    subtotals = {
        shop_uuid: sum((i['discount_price'] * i['quantity'] for i in shop_items), ZERO)
        for shop_uuid, shop_items in by_shop.items()
    }
    combined = sum(subtotals.values(), ZERO)

    coupon = coupon or {}
    discount = _to_decimal(_field(coupon, 'discount', default=0), 'Invalid coupon discount')
    if discount < 0 or discount > combined:
        raise ValidationError('Coupon discount must be between 0 and the order subtotal', discount=str(discount))
    discount_percent = _to_decimal(
        _field(coupon, 'discount_percent', 'discountPercentage', default=0), 'Invalid coupon discount'
    )
    coupon_code = str(_field(coupon, 'code', 'coupon_code', default='')) if discount > 0 else ''

    if abs(total_amount - (combined - discount)) > TOLERANCE:
        raise ValidationError(
            'Total amount does not match the items and coupon',
            total_amount=str(total_amount),
            expected=str(combined - discount),
        )

    created = []
    for shop_uuid, shop_items in by_shop.items():
        subtotal = subtotals[shop_uuid]
        share = quantize_money(discount * subtotal / combined) if discount > 0 else ZERO

        order = Order.objects.create(
            user=actor,
            shop=shops[shop_uuid],
            subtotal=subtotal,
            total_price=max(ZERO, subtotal - share),
            coupon_code=coupon_code,
            coupon_discount=share,
            coupon_discount_percent=discount_percent if discount > 0 else ZERO,
            **shipping,
            **payment,
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product_id=item['product_id'],
                name=item['name'],
                images=item['images'],
                quantity=item['quantity'],
                price=item['price'],
                discount_price=item['discount_price'],
                total=item['discount_price'] * item['quantity'],
            )
            for item in shop_items
        ])
        created.append(order)

    for order in created:
        transaction.on_commit(lambda order=order: notification_service.send_new_order(order))

    logger.info(f'User {actor.pk} placed {len(created)} order(s) totalling {total_amount}')
    return created


# ==========================================
# STATE MACHINE
# ==========================================

def _apply_transition(order: Order, new_status: str, cancellation_reason: str = '') -> Order:
    """Status write plus ledger effect; caller holds the order lock"""
    old_status = order.status

    if new_status == old_status:
        logger.info(f'Order {order.order_id} already {old_status}; replay ignored')
        return order

    if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise InvalidState(
            f'Cannot change order status from {old_status} to {new_status}',
            order_id=str(order.order_id),
            from_status=old_status,
            to_status=new_status,
        )

    now = timezone.now()
    order.status = new_status
    update_fields = ['status', 'updated_at']

    if new_status == Order.STATUS_DELIVERED:
        if old_status == Order.STATUS_REFUND_REQUEST:
            order.refund_rejected_at = now
            update_fields.append('refund_rejected_at')
        else:
            order.delivered_at = now
            update_fields.append('delivered_at')
        order.payment_status = 'paid'
        update_fields.append('payment_status')
    elif new_status == Order.STATUS_REFUND_REQUEST:
        order.refund_requested_at = now
        update_fields.append('refund_requested_at')
    elif new_status == Order.STATUS_REFUNDED:
        order.refunded_at = now
        order.payment_status = 'refunded'
        update_fields += ['refunded_at', 'payment_status']
    elif new_status == Order.STATUS_CANCELLED:
        order.cancelled_at = now
        order.cancellation_reason = cancellation_reason
        update_fields += ['cancelled_at', 'cancellation_reason']

    order.save(update_fields=update_fields)
    ledger.apply_order_transition(order, old_status, new_status)

    logger.info(f'Order {order.order_id}: {old_status} -> {new_status}')
    _notify_status(order)
    return order


@retry_on_tx_failure()
@transaction.atomic
def transition_order(actor, order_id, new_status: str) -> Order:
    """Move an order along the fulfilment flow (operator or owning seller)"""
    if new_status not in STATUS_VALUES:
        raise ValidationError(f'Invalid order status: {new_status}', order_id=str(order_id), to_status=new_status)

    order = _lock_order(order_id)
    if not (is_operator(actor) or _owns_shop(actor, order)):
        raise Unauthorized(order_id=str(order.order_id))

    if order.status in REFUND_GATED and new_status != order.status:
        raise InvalidState(
            f'Order is {order.status}; use the refund endpoints to change it',
            order_id=str(order.order_id),
            from_status=order.status,
            to_status=new_status,
        )

    return _apply_transition(order, new_status)


@retry_on_tx_failure()
@transaction.atomic
def cancel_order(actor, order_id, reason: str = '') -> Order:
    order = _lock_order(order_id)
    if not (is_operator(actor) or _owns_order(actor, order) or _owns_shop(actor, order)):
        raise Unauthorized(order_id=str(order.order_id))

    if order.status in NOT_CANCELLABLE:
        raise InvalidState(
            f'Cannot cancel order with status: {order.status}',
            order_id=str(order.order_id),
            from_status=order.status,
            to_status=Order.STATUS_CANCELLED,
        )

    return _apply_transition(order, Order.STATUS_CANCELLED, cancellation_reason=reason or '')


@retry_on_tx_failure()
@transaction.atomic
def request_refund(actor, order_id) -> Order:
    """Buyer asks for a refund of a delivered order"""
    order = _lock_order(order_id)
    if not _owns_order(actor, order):
        raise Unauthorized(order_id=str(order.order_id))

    if order.status == Order.STATUS_REFUNDED:
        raise Conflict('Order is already refunded', order_id=str(order.order_id))
    if order.status == Order.STATUS_REFUND_REQUEST:
        raise Conflict('Refund request already submitted', order_id=str(order.order_id))
    if order.status != Order.STATUS_DELIVERED:
        raise InvalidState(
            'Only delivered orders can be refunded',
            order_id=str(order.order_id),
            from_status=order.status,
            to_status=Order.STATUS_REFUND_REQUEST,
        )

    return _apply_transition(order, Order.STATUS_REFUND_REQUEST)


@retry_on_tx_failure()
@transaction.atomic
def decide_refund(actor, order_id, approve: bool) -> Order:
    """
    Operator decision on a pending refund request

    Approving debits the order total from the shop and fails with
    InsufficientFunds when the shop cannot cover it. Rejecting returns
    the order to delivered without touching the ledger.
    """
    if not is_operator(actor):
        raise Unauthorized(order_id=str(order_id))

    order = _lock_order(order_id)
    if order.status != Order.STATUS_REFUND_REQUEST:
        raise InvalidState(
            'No pending refund request for this order',
            order_id=str(order.order_id),
            from_status=order.status,
        )

    if not approve:
        return _apply_transition(order, Order.STATUS_DELIVERED)

    shop = Shop.objects.select_for_update().get(pk=order.shop_id)
    if shop.available_balance < order.total_price:
        raise InsufficientFunds(
            'Insufficient shop balance for refund',
            order_id=str(order.order_id),
            balance=str(shop.available_balance),
            requested=str(order.total_price),
        )

    return _apply_transition(order, Order.STATUS_REFUNDED)


@transaction.atomic
def delete_order(actor, order_id) -> None:
    order = _lock_order(order_id)
    if not (is_operator(actor) or _owns_shop(actor, order)):
        raise Unauthorized(order_id=str(order.order_id))

    if order.status not in DELETABLE:
        raise InvalidState(
            f'Cannot delete order with status: {order.status}',
            order_id=str(order.order_id),
            from_status=order.status,
        )

    logger.info(f'Order {order.order_id} deleted by user {actor.pk}')
    order.delete()


# ==========================================
# READ SIDE
# ==========================================

def get_order(actor, order_id) -> Order:
    pk = _parse_uuid(order_id, 'Invalid order ID', order_id=order_id)
    try:
        order = Order.objects.select_related('shop', 'user').prefetch_related('items').get(order_id=pk)
    except Order.DoesNotExist:
        raise NotFound('Order not found', order_id=str(pk))

    if not (is_operator(actor) or _owns_order(actor, order) or _owns_shop(actor, order)):
        raise Unauthorized(order_id=str(order.order_id))
    return order


def list_orders(actor, status: Optional[str] = None, page: int = 1, page_size: int = 20):
    """
    Orders visible to the actor: operators see all, sellers their
    shop's orders, buyers their own

    Returns:
        django.core.paginator.Page of orders
    """
    orders = Order.objects.select_related('shop', 'user').prefetch_related('items')

    if not is_operator(actor):
        if actor.is_seller and hasattr(actor, 'shop'):
            orders = orders.filter(shop=actor.shop)
        else:
            orders = orders.filter(user=actor)

    if status:
        if status not in STATUS_VALUES:
            raise ValidationError(f'Invalid order status: {status}')
        orders = orders.filter(status=status)

    return Paginator(orders, page_size).get_page(page)
