from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from apps.shops.models import BankAccount, Order
from apps.shops.services import notification_service
from apps.shops.services import orders as order_service


@pytest.fixture(autouse=True)
def real_email_backend(monkeypatch, settings):
    """Send through Django's locmem backend so tests can read mail.outbox"""
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    monkeypatch.setattr(notification_service.email, 'use_mock', False)
    monkeypatch.setattr(notification_service.sms, 'use_mock', True)


@pytest.fixture
def make_user(db):
    def _make(email, role='buyer', **extra):
        return get_user_model().objects.create_user(email, 'pw-12345', role=role, **extra)
    return _make


@pytest.fixture
def buyer(make_user):
    return make_user('buyer@test.com')


@pytest.fixture
def other_buyer(make_user):
    return make_user('other-buyer@test.com')


@pytest.fixture
def seller(make_user):
    return make_user('seller@test.com', role='seller', username='Acme Goods', phone='+15550001111')


@pytest.fixture
def other_seller(make_user):
    return make_user('other-seller@test.com', role='seller', username='Beta Supplies')


@pytest.fixture
def operator(make_user):
    return make_user('ops@test.com', role='admin', is_staff=True)


@pytest.fixture
def shop(seller):
    return seller.shop


@pytest.fixture
def other_shop(other_seller):
    return other_seller.shop


@pytest.fixture
def bank_account(shop):
    return BankAccount.objects.create(
        shop=shop,
        bank_name='First Bank',
        account_holder_name='Acme Goods Ltd',
        account_number='0123456789',
    )


SHIPPING = {'address': '12 Market Street', 'city': 'Springfield', 'zipCode': '12345'}


@pytest.fixture
def place_order(buyer, shop):
    """Checkout of a single item at ``price`` from ``shop``"""
    def _place(price='50.00', quantity=1, user=None, target_shop=None):
        target_shop = target_shop or shop
        total = Decimal(price) * quantity
        orders = order_service.create_orders(
            user or buyer,
            items=[{
                'productId': 'sku-1',
                'shopId': str(target_shop.shop_id),
                'quantity': quantity,
                'price': price,
                'discountPrice': price,
                'name': 'Widget',
            }],
            shipping_address=SHIPPING,
            total_amount=str(total),
        )
        return orders[0]
    return _place


@pytest.fixture
def delivered_order(place_order, operator):
    order = place_order('50.00')
    return order_service.transition_order(operator, order.order_id, Order.STATUS_DELIVERED)
