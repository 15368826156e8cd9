from decimal import Decimal

import pytest
from django.contrib.auth.models import AnonymousUser
from django.core import mail

from apps.shops.conftest import SHIPPING
from apps.shops.exceptions import ValidationError, NotFound, InvalidState, Conflict, InsufficientFunds, Unauthorized
from apps.shops.models import Order, OrderItem, Transaction
from apps.shops.services import orders as order_service
from apps.shops.services import withdrawals as withdrawal_service

pytestmark = pytest.mark.django_db


def _item(shop, price, quantity=1, product='sku-1'):
    return {
        'productId': product,
        'shopId': str(shop.shop_id),
        'quantity': quantity,
        'price': price,
        'discountPrice': price,
        'name': f'Item {product}',
        'images': ['https://cdn.example.com/item.jpg'],
    }


# ==========================================
# CHECKOUT
# ==========================================

def test_checkout_splits_one_order_per_shop_with_coupon_apportioned(buyer, shop, other_shop, make_user):
    third_shop = make_user('third@test.com', role='seller').shop

    orders = order_service.create_orders(
        buyer,
        items=[
            _item(shop, '33.33'),
            _item(other_shop, '33.33', product='sku-2'),
            _item(third_shop, '33.34', product='sku-3'),
        ],
        shipping_address=SHIPPING,
        total_amount='90.00',
        coupon={'code': 'SAVE10', 'discount': '10.00', 'discountPercentage': 10},
    )

    assert len(orders) == 3
    assert {o.shop_id for o in orders} == {shop.pk, other_shop.pk, third_shop.pk}

    total = sum(o.total_price for o in orders)
    assert abs(total - Decimal('90.00')) <= Decimal('0.03')

    first = next(o for o in orders if o.shop_id == shop.pk)
    assert first.subtotal == Decimal('33.33')
    assert first.coupon_discount == Decimal('3.33')
    assert first.total_price == Decimal('30.00')
    assert first.coupon_code == 'SAVE10'
    assert all(o.status == Order.STATUS_PROCESSING for o in orders)


def test_checkout_groups_items_of_the_same_shop(buyer, shop):
    orders = order_service.create_orders(
        buyer,
        items=[_item(shop, '10.00', quantity=2), _item(shop, '5.50', product='sku-2')],
        shipping_address=SHIPPING,
        total_amount='25.50',
    )

    assert len(orders) == 1
    order = orders[0]
    assert order.subtotal == Decimal('25.50')
    assert order.total_price == Decimal('25.50')
    assert OrderItem.objects.filter(order=order).count() == 2
    assert order.items.get(product_id='sku-1').total == Decimal('20.00')


def test_checkout_masks_card_and_drops_secrets(buyer, shop):
    order = order_service.create_orders(
        buyer,
        items=[_item(shop, '20.00')],
        shipping_address=SHIPPING,
        total_amount='20.00',
        payment_info={
            'paymentMethod': 'card',
            'paymentStatus': 'paid',
            'cardNumber': '4111 1111 1111 1234',
            'cardHolderName': 'Jane Buyer',
            'cvv': '999',
            'expiryDate': '12/30',
        },
    )[0]

    assert order.card_number == '****-****-****-1234'
    assert order.payment_method == 'card'
    assert order.payment_status == 'paid'
    assert not hasattr(order, 'cvv')


@pytest.mark.parametrize('overrides, message', [
    ({'items': []}, 'Missing items in order'),
    ({'shipping_address': {'address': '1 Road', 'city': 'Town'}}, 'Shipping address must include address, city, and zipCode'),
    ({'total_amount': '0'}, 'Valid total amount is required'),
    ({'total_amount': 'abc'}, 'Valid total amount is required'),
    ({'total_amount': '99.00'}, 'Total amount does not match the items and coupon'),
])
def test_checkout_validation(buyer, shop, overrides, message):
    kwargs = {
        'items': [_item(shop, '20.00')],
        'shipping_address': SHIPPING,
        'total_amount': '20.00',
    }
    kwargs.update(overrides)

    with pytest.raises(ValidationError) as exc:
        order_service.create_orders(buyer, **kwargs)

    assert exc.value.message == message
    assert Order.objects.count() == 0


def test_checkout_rejects_bad_item_fields(buyer, shop):
    bad_qty = _item(shop, '10.00')
    bad_qty['quantity'] = 0
    with pytest.raises(ValidationError):
        order_service.create_orders(buyer, items=[bad_qty], shipping_address=SHIPPING, total_amount='10.00')

    bad_price = _item(shop, '-1.00')
    with pytest.raises(ValidationError, match='invalid price'):
        order_service.create_orders(buyer, items=[bad_price], shipping_address=SHIPPING, total_amount='10.00')


def test_checkout_shop_ids(buyer, shop):
    item = _item(shop, '10.00')
    item['shopId'] = 'not-a-uuid'
    with pytest.raises(ValidationError, match='Invalid shop ID'):
        order_service.create_orders(buyer, items=[item], shipping_address=SHIPPING, total_amount='10.00')

    item['shopId'] = '2f1b0a4e-0000-4000-8000-000000000000'
    with pytest.raises(NotFound):
        order_service.create_orders(buyer, items=[item], shipping_address=SHIPPING, total_amount='10.00')


def test_checkout_is_all_or_nothing(buyer, shop):
    missing = _item(shop, '10.00', product='sku-2')
    missing['shopId'] = '2f1b0a4e-0000-4000-8000-000000000000'

    with pytest.raises(NotFound):
        order_service.create_orders(
            buyer, items=[_item(shop, '10.00'), missing], shipping_address=SHIPPING, total_amount='20.00'
        )
    assert Order.objects.count() == 0


def test_checkout_requires_user(shop):
    with pytest.raises(ValidationError, match='Missing user information'):
        order_service.create_orders(
            AnonymousUser(), items=[_item(shop, '10.00')], shipping_address=SHIPPING, total_amount='10.00'
        )


def test_coupon_larger_than_subtotal_is_rejected(buyer, shop):
    with pytest.raises(ValidationError):
        order_service.create_orders(
            buyer,
            items=[_item(shop, '10.00')],
            shipping_address=SHIPPING,
            total_amount='1.00',
            coupon={'code': 'HUGE', 'discount': '11.00'},
        )


def test_new_order_notifies_shop_after_commit(buyer, shop, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        order = order_service.create_orders(
            buyer, items=[_item(shop, '10.00')], shipping_address=SHIPPING, total_amount='10.00'
        )[0]

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [shop.email]
    assert order.short_id in mail.outbox[0].subject


# ==========================================
# STATE MACHINE & LEDGER
# ==========================================

def test_unknown_status_is_validation_error(place_order, operator):
    order = place_order()
    with pytest.raises(ValidationError):
        order_service.transition_order(operator, order.order_id, 'teleported')


def test_illegal_edge_is_invalid_state(place_order, operator):
    order = place_order()
    order_service.transition_order(operator, order.order_id, Order.STATUS_CANCELLED)

    with pytest.raises(InvalidState):
        order_service.transition_order(operator, order.order_id, Order.STATUS_SHIPPING)


def test_fulfilment_flow_credits_once_on_delivery(place_order, operator, shop):
    order = place_order('50.00')

    for status in (Order.STATUS_TRANSFERRED, Order.STATUS_SHIPPING, Order.STATUS_ON_THE_WAY):
        order_service.transition_order(operator, order.order_id, status)
        shop.refresh_from_db()
        assert shop.available_balance == Decimal('0.00')

    order = order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)
    shop.refresh_from_db()

    assert shop.available_balance == Decimal('50.00')
    assert order.delivered_at is not None
    assert order.payment_status == 'paid'

    entry = Transaction.objects.get(order=order)
    assert entry.transaction_type == Transaction.TYPE_ORDER_PAYMENT
    assert entry.status == Transaction.STATUS_COMPLETED
    assert entry.balance_before == Decimal('0.00')
    assert entry.balance_after == Decimal('50.00')


def test_replaying_delivered_credits_once(place_order, operator, shop):
    order = place_order('50.00')
    order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)
    order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)

    shop.refresh_from_db()
    assert shop.available_balance == Decimal('50.00')
    assert Transaction.objects.filter(order=order, transaction_type=Transaction.TYPE_ORDER_PAYMENT).count() == 1


def test_received_then_delivered_credits_once(place_order, operator, shop):
    order = place_order('50.00')
    order_service.transition_order(operator, order.order_id, Order.STATUS_RECEIVED)
    order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)

    shop.refresh_from_db()
    assert shop.available_balance == Decimal('50.00')
    assert Transaction.objects.filter(order=order).count() == 1


def test_owning_seller_may_transition_but_others_may_not(place_order, seller, other_seller, buyer):
    order = place_order()

    order_service.transition_order(seller, order.order_id, Order.STATUS_SHIPPING)

    for actor in (other_seller, buyer):
        with pytest.raises(Unauthorized):
            order_service.transition_order(actor, order.order_id, Order.STATUS_ON_THE_WAY)


@pytest.mark.parametrize('target', [Order.STATUS_CANCELLED, Order.STATUS_REFUND_REQUEST, Order.STATUS_REFUNDED])
def test_delivered_order_leaves_only_through_refund_flow(delivered_order, seller, operator, shop, target):
    for actor in (seller, operator):
        with pytest.raises(InvalidState):
            order_service.transition_order(actor, delivered_order.order_id, target)

    delivered_order.refresh_from_db()
    shop.refresh_from_db()
    assert delivered_order.status == Order.STATUS_DELIVERED
    assert shop.available_balance == Decimal('50.00')
    assert Transaction.objects.filter(order=delivered_order).count() == 1


@pytest.mark.parametrize('target', [Order.STATUS_REFUNDED, Order.STATUS_DELIVERED, Order.STATUS_CANCELLED])
def test_pending_refund_is_decided_only_by_operator_endpoint(delivered_order, buyer, seller, operator, shop, target):
    order_service.request_refund(buyer, delivered_order.order_id)

    for actor in (seller, operator):
        with pytest.raises(InvalidState):
            order_service.transition_order(actor, delivered_order.order_id, target)

    delivered_order.refresh_from_db()
    shop.refresh_from_db()
    assert delivered_order.status == Order.STATUS_REFUND_REQUEST
    assert delivered_order.refund_rejected_at is None
    assert shop.available_balance == Decimal('50.00')

    order = order_service.decide_refund(operator, delivered_order.order_id, approve=True)
    shop.refresh_from_db()
    assert order.status == Order.STATUS_REFUNDED
    assert shop.available_balance == Decimal('0.00')


def test_unknown_order(operator):
    with pytest.raises(NotFound):
        order_service.transition_order(operator, '2f1b0a4e-0000-4000-8000-000000000000', Order.STATUS_SHIPPING)
    with pytest.raises(ValidationError):
        order_service.transition_order(operator, 'nope', Order.STATUS_SHIPPING)


# ==========================================
# CANCEL
# ==========================================

def test_cancel_processing_order(place_order, buyer, shop):
    order = place_order()
    order = order_service.cancel_order(buyer, order.order_id, 'Changed my mind')

    assert order.status == Order.STATUS_CANCELLED
    assert order.cancellation_reason == 'Changed my mind'
    assert order.cancelled_at is not None
    assert not Transaction.objects.filter(shop=shop).exists()


@pytest.mark.parametrize('status', [Order.STATUS_DELIVERED, Order.STATUS_CANCELLED])
def test_cannot_cancel_delivered_or_cancelled(place_order, operator, buyer, status):
    order = place_order()
    order_service.transition_order(operator, order.order_id, status)

    with pytest.raises(InvalidState):
        order_service.cancel_order(buyer, order.order_id, 'too late')


def test_cannot_cancel_refunded(delivered_order, buyer, operator):
    order_service.request_refund(buyer, delivered_order.order_id)
    order_service.decide_refund(operator, delivered_order.order_id, approve=True)

    with pytest.raises(InvalidState):
        order_service.cancel_order(buyer, delivered_order.order_id, 'again')


def test_cannot_cancel_pending_refund(delivered_order, buyer, seller, shop):
    order_service.request_refund(buyer, delivered_order.order_id)

    for actor in (buyer, seller):
        with pytest.raises(InvalidState):
            order_service.cancel_order(actor, delivered_order.order_id, 'skip the review')

    shop.refresh_from_db()
    assert shop.available_balance == Decimal('50.00')


def test_cancel_after_receipt_reverses_credit(place_order, operator, buyer, shop):
    order = place_order('40.00')
    order_service.transition_order(operator, order.order_id, Order.STATUS_RECEIVED)
    shop.refresh_from_db()
    assert shop.available_balance == Decimal('40.00')

    order_service.cancel_order(buyer, order.order_id, 'damaged')

    shop.refresh_from_db()
    assert shop.available_balance == Decimal('0.00')
    refund = Transaction.objects.get(order=order, transaction_type=Transaction.TYPE_REFUND)
    assert refund.amount == Decimal('-40.00')


def test_stranger_cannot_cancel(place_order, other_buyer):
    order = place_order()
    with pytest.raises(Unauthorized):
        order_service.cancel_order(other_buyer, order.order_id, '')


# ==========================================
# REFUNDS
# ==========================================

def test_refund_request_only_from_delivered(place_order, buyer):
    order = place_order()
    with pytest.raises(InvalidState):
        order_service.request_refund(buyer, order.order_id)


def test_duplicate_refund_request_conflicts(delivered_order, buyer):
    order = order_service.request_refund(buyer, delivered_order.order_id)
    assert order.status == Order.STATUS_REFUND_REQUEST
    assert order.refund_requested_at is not None

    with pytest.raises(Conflict):
        order_service.request_refund(buyer, delivered_order.order_id)


def test_only_the_buyer_may_request_refund(delivered_order, seller):
    with pytest.raises(Unauthorized):
        order_service.request_refund(seller, delivered_order.order_id)


def test_approved_refund_debits_shop(delivered_order, buyer, operator, shop):
    order_service.request_refund(buyer, delivered_order.order_id)
    order = order_service.decide_refund(operator, delivered_order.order_id, approve=True)

    shop.refresh_from_db()
    assert order.status == Order.STATUS_REFUNDED
    assert order.payment_status == 'refunded'
    assert order.refunded_at is not None
    assert shop.available_balance == Decimal('0.00')

    types = list(Transaction.objects.filter(order=order).order_by('id').values_list('transaction_type', flat=True))
    assert types == [Transaction.TYPE_ORDER_PAYMENT, Transaction.TYPE_REFUND]


def test_refund_needs_shop_funds(delivered_order, buyer, operator, seller, shop, bank_account):
    withdrawal_service.submit_withdrawal(seller, '30.00', bank_account.account_number)
    order_service.request_refund(buyer, delivered_order.order_id)

    with pytest.raises(InsufficientFunds):
        order_service.decide_refund(operator, delivered_order.order_id, approve=True)

    delivered_order.refresh_from_db()
    shop.refresh_from_db()
    assert delivered_order.status == Order.STATUS_REFUND_REQUEST
    assert shop.available_balance == Decimal('20.00')


def test_rejected_refund_returns_to_delivered_without_ledger_effect(delivered_order, buyer, operator, shop):
    order_service.request_refund(buyer, delivered_order.order_id)
    order = order_service.decide_refund(operator, delivered_order.order_id, approve=False)

    shop.refresh_from_db()
    assert order.status == Order.STATUS_DELIVERED
    assert order.refund_rejected_at is not None
    assert shop.available_balance == Decimal('50.00')
    assert Transaction.objects.filter(order=order).count() == 1


def test_refund_decision_is_operator_only(delivered_order, buyer, seller):
    order_service.request_refund(buyer, delivered_order.order_id)
    with pytest.raises(Unauthorized):
        order_service.decide_refund(seller, delivered_order.order_id, approve=True)


def test_refund_decision_needs_pending_request(delivered_order, operator):
    with pytest.raises(InvalidState):
        order_service.decide_refund(operator, delivered_order.order_id, approve=True)


# ==========================================
# DELETE & READ SIDE
# ==========================================

def test_delete_only_processing_or_cancelled(place_order, seller, operator):
    order = place_order()
    order_service.delete_order(seller, order.order_id)
    assert not Order.objects.filter(pk=order.pk).exists()

    shipped = place_order()
    order_service.transition_order(operator, shipped.order_id, Order.STATUS_SHIPPING)
    with pytest.raises(InvalidState):
        order_service.delete_order(operator, shipped.order_id)


def test_buyer_cannot_delete(place_order, buyer):
    order = place_order()
    with pytest.raises(Unauthorized):
        order_service.delete_order(buyer, order.order_id)


def test_list_orders_is_role_scoped(place_order, buyer, other_buyer, seller, other_seller, operator, other_shop):
    place_order()
    place_order(user=other_buyer)
    place_order(target_shop=other_shop)

    assert order_service.list_orders(buyer).paginator.count == 2
    assert order_service.list_orders(other_buyer).paginator.count == 1
    assert order_service.list_orders(seller).paginator.count == 2
    assert order_service.list_orders(other_seller).paginator.count == 1
    assert order_service.list_orders(operator).paginator.count == 3
    assert order_service.list_orders(operator, status=Order.STATUS_DELIVERED).paginator.count == 0


def test_get_order_checks_access(place_order, buyer, other_buyer, seller):
    order = place_order()
    assert order_service.get_order(buyer, order.order_id) == order
    assert order_service.get_order(seller, str(order.order_id)) == order
    with pytest.raises(Unauthorized):
        order_service.get_order(other_buyer, order.order_id)
