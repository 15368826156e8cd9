"""
Shop App Views
JSON API for orders, refunds, withdrawals and seller balances.
Every response uses the envelope {success, message, data?}.
"""

import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from .decorators import api_endpoint, api_login_required, api_seller_required, api_operator_required
from .exceptions import ValidationError
from .forms import (
    validated, OrderStatusUpdateForm, CancelOrderForm, RefundDecisionForm,
    WithdrawalRequestForm, WithdrawalRejectForm, BankAccountForm,
)
from .services import ledger, orders as order_service, withdrawals as withdrawal_service

logger = logging.getLogger(__name__)


# ==========================================
# HELPERS
# ==========================================

def ok(message, data=None, status=200):
    body = {'success': True, 'message': message}
    if data is not None:
        body['data'] = data
    return JsonResponse(body, status=status)


def _body(request):
    """JSON body, or form data for non-JSON posts"""
    if request.content_type == 'application/json':
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except ValueError:
            raise ValidationError('Request body must be valid JSON')
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        return data
    return request.POST.dict()


def _page_number(request):
    try:
        return max(1, int(request.GET.get('page', 1)))
    except ValueError:
        return 1


def order_payload(order):
    return {
        'order_id': order.order_id,
        'user': order.user_id,
        'shop_id': order.shop.shop_id,
        'shop_name': order.shop.name,
        'status': order.status,
        'items': [
            {
                'product_id': item.product_id,
                'name': item.name,
                'images': item.images,
                'quantity': item.quantity,
                'price': item.price,
                'discount_price': item.discount_price,
                'total': item.total,
            }
            for item in order.items.all()
        ],
        'shipping_address': {
            'address': order.shipping_address,
            'city': order.shipping_city,
            'state': order.shipping_state,
            'country': order.shipping_country,
            'zip_code': order.shipping_zip_code,
            'phone_number': order.shipping_phone,
        },
        'payment_info': {
            'payment_method': order.payment_method,
            'payment_status': order.payment_status,
            'transaction_reference': order.payment_reference,
            'card_number': order.card_number,
            'card_holder_name': order.card_holder_name,
        },
        'coupon': {
            'code': order.coupon_code,
            'discount': order.coupon_discount,
            'discount_percent': order.coupon_discount_percent,
        },
        'subtotal': order.subtotal,
        'total_price': order.total_price,
        'cancellation_reason': order.cancellation_reason,
        'created_at': order.created_at,
        'delivered_at': order.delivered_at,
        'cancelled_at': order.cancelled_at,
        'refund_requested_at': order.refund_requested_at,
        'refund_rejected_at': order.refund_rejected_at,
        'refunded_at': order.refunded_at,
    }


def withdrawal_payload(withdrawal):
    return {
        'request_id': withdrawal.request_id,
        'shop_id': withdrawal.shop.shop_id,
        'seller_name': withdrawal.seller_name,
        'seller_email': withdrawal.seller_email,
        'amount': withdrawal.amount,
        'commission': withdrawal.commission,
        'net_amount': withdrawal.net_amount,
        'bank_account': {
            'bank_name': withdrawal.bank_name,
            'account_holder_name': withdrawal.account_holder_name,
            'account_number': withdrawal.account_number,
        },
        'status': withdrawal.status,
        'rejection_reason': withdrawal.rejection_reason,
        'created_at': withdrawal.created_at,
        'processed_at': withdrawal.processed_at,
    }


def transaction_payload(entry):
    return {
        'transaction_id': entry.transaction_id,
        'type': entry.transaction_type,
        'amount': entry.amount,
        'status': entry.status,
        'reference': entry.reference,
        'description': entry.description,
        'balance_before': entry.balance_before,
        'balance_after': entry.balance_after,
        'created_at': entry.created_at,
    }


def bank_account_payload(account):
    return {
        'bank_name': account.bank_name,
        'account_holder_name': account.account_holder_name,
        'account_number': account.account_number,
    }


# ==========================================
# ORDER VIEWS
# ==========================================

@require_http_methods(["GET", "POST"])
@api_login_required
@api_endpoint
def orders_collection(request):
    """
    GET: role-scoped order list, ?status= and ?page=
    POST: checkout, one order per shop
    """
    if request.method == 'GET':
        page = order_service.list_orders(
            request.user,
            status=request.GET.get('status') or None,
            page=_page_number(request),
        )
        return ok('Orders retrieved', {
            'orders': [order_payload(order) for order in page],
            'page': page.number,
            'pages': page.paginator.num_pages,
            'count': page.paginator.count,
        })

    data = _body(request)
    created = order_service.create_orders(
        request.user,
        items=data.get('items'),
        shipping_address=data.get('shipping_address') or data.get('shippingAddress'),
        total_amount=data.get('total_amount', data.get('totalAmount')),
        payment_info=data.get('payment_info') or data.get('paymentInfo'),
        coupon=data.get('coupon'),
    )
    return ok(
        f'{len(created)} order(s) created successfully',
        {'orders': [order_payload(order) for order in created]},
        status=201,
    )


@require_http_methods(["GET", "DELETE"])
@api_login_required
@api_endpoint
def order_detail(request, order_id):
    if request.method == 'DELETE':
        order_service.delete_order(request.user, order_id)
        return ok('Order deleted successfully')

    order = order_service.get_order(request.user, order_id)
    return ok('Order retrieved', {'order': order_payload(order)})


@require_http_methods(["PUT"])
@api_login_required
@api_endpoint
def order_status_update(request, order_id):
    data = validated(OrderStatusUpdateForm, _body(request))
    order = order_service.transition_order(request.user, order_id, data['status'])
    return ok('Order status updated successfully', {'order': order_payload(order)})


@require_http_methods(["POST"])
@api_login_required
@api_endpoint
def order_cancel(request, order_id):
    data = validated(CancelOrderForm, _body(request))
    order = order_service.cancel_order(request.user, order_id, data['reason'])
    return ok('Order cancelled successfully', {'order': order_payload(order)})


@require_http_methods(["PUT"])
@api_login_required
@api_endpoint
def order_refund_request(request, order_id):
    order = order_service.request_refund(request.user, order_id)
    return ok('Refund request submitted successfully', {'order': order_payload(order)})


@require_http_methods(["POST"])
@api_operator_required
@api_endpoint
def order_refund_decision(request, order_id):
    data = validated(RefundDecisionForm, _body(request))
    order = order_service.decide_refund(request.user, order_id, data['approve'])
    message = 'Refund processed successfully' if data['approve'] else 'Refund request rejected'
    return ok(message, {'order': order_payload(order)})


# ==========================================
# WITHDRAWAL VIEWS
# ==========================================

@require_http_methods(["GET", "POST"])
@api_login_required
@api_endpoint
def withdrawals_collection(request):
    if request.method == 'GET':
        requests = withdrawal_service.list_withdrawals(request.user, status=request.GET.get('status') or None)
        return ok('Withdrawal requests retrieved', {
            'withdrawals': [withdrawal_payload(w) for w in requests.select_related('shop')],
        })

    data = validated(WithdrawalRequestForm, _body(request))
    withdrawal = withdrawal_service.submit_withdrawal(request.user, data['amount'], data['account_number'])
    withdrawal.shop.refresh_from_db(fields=['available_balance'])
    return ok(
        'Withdrawal request submitted successfully. Confirmation email has been sent.',
        {
            'withdrawal': withdrawal_payload(withdrawal),
            'available_balance': withdrawal.shop.available_balance,
        },
        status=201,
    )


@require_http_methods(["POST"])
@api_operator_required
@api_endpoint
def withdrawal_accept(request, request_id):
    withdrawal = withdrawal_service.accept_withdrawal(request.user, request_id)
    return ok(
        'Withdrawal request accepted successfully. Payment processed and seller notified.',
        {
            'withdrawal': withdrawal_payload(withdrawal),
            'admin_commission': withdrawal.commission,
            'processed_amount': withdrawal.amount,
        },
    )


@require_http_methods(["POST"])
@api_operator_required
@api_endpoint
def withdrawal_reject(request, request_id):
    data = validated(WithdrawalRejectForm, _body(request))
    withdrawal = withdrawal_service.reject_withdrawal(request.user, request_id, data['reason'])
    return ok(
        'Withdrawal request rejected successfully. Seller has been notified.',
        {'withdrawal': withdrawal_payload(withdrawal)},
    )


# ==========================================
# SHOP LEDGER & BANK ACCOUNTS
# ==========================================

@require_http_methods(["GET"])
@api_seller_required
@api_endpoint
def shop_balance(request):
    """
    Balance overview with recent ledger entries
    """
    shop = withdrawal_service.get_seller_shop(request.user)
    recent = shop.transactions.all()[:10]

    return ok('Balance retrieved', {
        'shop_id': shop.shop_id,
        'available_balance': shop.available_balance,
        'ledger_balance': ledger.ledger_balance(shop),
        'pending_withdrawals': shop.withdrawal_requests.filter(status='Processing').count(),
        'transactions': [transaction_payload(entry) for entry in recent],
    })


@require_http_methods(["GET", "POST"])
@api_seller_required
@api_endpoint
def bank_accounts(request):
    if request.method == 'GET':
        accounts = withdrawal_service.list_bank_accounts(request.user)
        return ok('Bank accounts retrieved', {'bank_accounts': [bank_account_payload(a) for a in accounts]})

    data = validated(BankAccountForm, _body(request))
    account = withdrawal_service.add_bank_account(request.user, **data)
    return ok('Bank account added successfully', {'bank_account': bank_account_payload(account)}, status=201)


@require_http_methods(["DELETE"])
@api_seller_required
@api_endpoint
def bank_account_delete(request, account_number):
    withdrawal_service.remove_bank_account(request.user, account_number)
    return ok('Bank account removed successfully')


# ==========================================
# ADMIN VIEWS
# ==========================================

@require_http_methods(["GET"])
@api_operator_required
@api_endpoint
def admin_revenue(request):
    report = withdrawal_service.admin_revenue_report(request.user)
    return ok('Admin revenue retrieved', report)
