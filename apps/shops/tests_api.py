from decimal import Decimal

import pytest
from django.urls import reverse

from apps.shops.models import Order, WithdrawalRequest
from apps.shops.services import orders as order_service

pytestmark = pytest.mark.django_db


@pytest.fixture
def as_user(client):
    def _login(user):
        client.force_login(user)
        return client
    return _login


def checkout_payload(shop, price='20.00', quantity=2):
    return {
        'items': [{
            'productId': 'sku-9',
            'shopId': str(shop.shop_id),
            'quantity': quantity,
            'price': price,
            'discountPrice': price,
            'name': 'Lamp',
        }],
        'shippingAddress': {'address': '4 Elm Road', 'city': 'Shelbyville', 'zipCode': '54321'},
        'totalAmount': str(Decimal(price) * quantity),
        'paymentInfo': {'paymentMethod': 'card', 'cardNumber': '4111111111111111', 'cardHolderName': 'B Buyer'},
    }


def test_requires_login(client):
    response = client.get(reverse('shops:orders'))
    assert response.status_code == 401
    assert response.json() == {'success': False, 'message': 'Authentication required'}


def test_checkout_creates_orders(as_user, buyer, shop):
    client = as_user(buyer)
    response = client.post(reverse('shops:orders'), checkout_payload(shop), content_type='application/json')

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    order = body['data']['orders'][0]
    assert order['status'] == Order.STATUS_PROCESSING
    assert Decimal(order['total_price']) == Decimal('40.00')
    assert order['payment_info']['card_number'] == '****-****-****-1111'


def test_checkout_validation_error_envelope(as_user, buyer, shop):
    payload = checkout_payload(shop)
    payload['totalAmount'] = '1.00'

    response = as_user(buyer).post(reverse('shops:orders'), payload, content_type='application/json')

    assert response.status_code == 400
    assert response.json()['success'] is False
    assert Order.objects.count() == 0


def test_malformed_json_is_a_validation_error(as_user, buyer):
    response = as_user(buyer).post(reverse('shops:orders'), '{not json', content_type='application/json')
    assert response.status_code == 400
    assert response.json()['message'] == 'Request body must be valid JSON'


def test_order_list_is_scoped(as_user, place_order, other_buyer):
    place_order('10.00')

    response = as_user(other_buyer).get(reverse('shops:orders'))
    assert response.status_code == 200
    assert response.json()['data']['count'] == 0


def test_seller_moves_order_to_delivered(as_user, place_order, seller, shop):
    order = place_order('30.00')
    url = reverse('shops:order_status_update', args=[order.order_id])

    response = as_user(seller).put(url, {'status': 'delivered'}, content_type='application/json')

    assert response.status_code == 200
    assert response.json()['data']['order']['status'] == Order.STATUS_DELIVERED
    shop.refresh_from_db()
    assert shop.available_balance == Decimal('30.00')


def test_seller_cannot_cancel_delivered_order_by_status(as_user, delivered_order, seller, shop):
    url = reverse('shops:order_status_update', args=[delivered_order.order_id])

    response = as_user(seller).put(url, {'status': 'cancelled'}, content_type='application/json')

    assert response.status_code == 400
    assert response.json()['success'] is False
    shop.refresh_from_db()
    assert shop.available_balance == Decimal('50.00')


def test_unknown_status_value(as_user, place_order, seller):
    order = place_order()
    url = reverse('shops:order_status_update', args=[order.order_id])

    response = as_user(seller).put(url, {'status': 'teleported'}, content_type='application/json')

    assert response.status_code == 400
    assert response.json()['message'].startswith('status:')


def test_buyer_cannot_change_status(as_user, place_order, buyer):
    order = place_order()
    url = reverse('shops:order_status_update', args=[order.order_id])

    response = as_user(buyer).put(url, {'status': 'shipping'}, content_type='application/json')
    assert response.status_code == 403


def test_unknown_order_is_404(as_user, operator):
    url = reverse('shops:order_detail', args=['8a1f4f5e-1111-4222-8333-444455556666'])
    response = as_user(operator).get(url)
    assert response.status_code == 404


def test_wrong_method_is_rejected(as_user, buyer):
    response = as_user(buyer).put(reverse('shops:orders'))
    assert response.status_code == 405


def test_duplicate_refund_request_is_conflict(as_user, delivered_order, buyer):
    client = as_user(buyer)
    url = reverse('shops:order_refund_request', args=[delivered_order.order_id])

    assert client.put(url).status_code == 200
    response = client.put(url)
    assert response.status_code == 409
    assert response.json()['message'] == 'Refund request already submitted'


def test_refund_decision_needs_operator(as_user, delivered_order, buyer, seller, operator, shop):
    order_service.request_refund(buyer, delivered_order.order_id)
    url = reverse('shops:order_refund_decision', args=[delivered_order.order_id])

    response = as_user(seller).post(url, {'action': 'approve'}, content_type='application/json')
    assert response.status_code == 403

    response = as_user(operator).post(url, {'action': 'approve'}, content_type='application/json')
    assert response.status_code == 200
    assert response.json()['message'] == 'Refund processed successfully'
    shop.refresh_from_db()
    assert shop.available_balance == Decimal('0.00')


def test_cancel_endpoint(as_user, place_order, buyer):
    order = place_order()
    url = reverse('shops:order_cancel', args=[order.order_id])

    response = as_user(buyer).post(url, {'reason': 'Changed my mind'}, content_type='application/json')

    assert response.status_code == 200
    assert response.json()['data']['order']['cancellation_reason'] == 'Changed my mind'


# ==========================================
# WITHDRAWALS
# ==========================================

def test_withdrawal_round_trip(as_user, delivered_order, seller, operator, bank_account):
    client = as_user(seller)
    response = client.post(
        reverse('shops:withdrawals'),
        {'amount': '20.00', 'account_number': bank_account.account_number},
        content_type='application/json',
    )

    assert response.status_code == 201
    data = response.json()['data']
    assert Decimal(data['available_balance']) == Decimal('30.00')
    request_id = data['withdrawal']['request_id']
    assert client.get(reverse('shops:admin_revenue')).status_code == 403

    client = as_user(operator)
    response = client.post(reverse('shops:withdrawal_accept', args=[request_id]))
    assert response.status_code == 200
    assert Decimal(response.json()['data']['admin_commission']) == Decimal('2.00')

    response = client.get(reverse('shops:admin_revenue'))
    assert Decimal(response.json()['data']['total_revenue']) == Decimal('2.00')


def test_withdrawal_over_balance(as_user, delivered_order, seller, bank_account):
    response = as_user(seller).post(
        reverse('shops:withdrawals'),
        {'amount': '500.00', 'account_number': bank_account.account_number},
        content_type='application/json',
    )

    assert response.status_code == 400
    assert response.json()['message'] == 'Insufficient balance for this withdrawal'
    assert not WithdrawalRequest.objects.exists()


def test_reject_requires_reason(as_user, delivered_order, seller, operator, bank_account):
    as_user(seller).post(
        reverse('shops:withdrawals'),
        {'amount': '20.00', 'account_number': bank_account.account_number},
        content_type='application/json',
    )
    withdrawal = WithdrawalRequest.objects.get()

    url = reverse('shops:withdrawal_reject', args=[withdrawal.request_id])
    response = as_user(operator).post(url, {}, content_type='application/json')
    assert response.status_code == 400

    response = as_user(operator).post(url, {'reason': 'Name mismatch'}, content_type='application/json')
    assert response.status_code == 200
    assert response.json()['data']['withdrawal']['status'] == WithdrawalRequest.STATUS_REJECTED


# ==========================================
# SHOP
# ==========================================

def test_balance_endpoint_is_seller_only(as_user, delivered_order, seller, buyer):
    assert as_user(buyer).get(reverse('shops:shop_balance')).status_code == 403

    response = as_user(seller).get(reverse('shops:shop_balance'))
    data = response.json()['data']
    assert Decimal(data['available_balance']) == Decimal('50.00')
    assert Decimal(data['ledger_balance']) == Decimal('50.00')
    assert data['transactions'][0]['type'] == 'order_payment'


def test_bank_account_endpoints(as_user, seller):
    client = as_user(seller)
    payload = {'bank_name': 'First Bank', 'account_holder_name': 'Acme Goods Ltd', 'account_number': '0123 4567 89'}

    response = client.post(reverse('shops:bank_accounts'), payload, content_type='application/json')
    assert response.status_code == 201
    assert response.json()['data']['bank_account']['account_number'] == '0123456789'

    response = client.post(reverse('shops:bank_accounts'), payload, content_type='application/json')
    assert response.status_code == 409

    response = client.delete(reverse('shops:bank_account_delete', args=['0123456789']))
    assert response.status_code == 200

    response = client.delete(reverse('shops:bank_account_delete', args=['0123456789']))
    assert response.status_code == 404
