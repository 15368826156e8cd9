"""
Shop App Django Admin
Admin interface for shops, the ledger, orders, refunds and payouts.
Balances and ledger entries are read-only here; every money movement
goes through the services so the ledger stays consistent.
"""

from django.contrib import admin, messages

from .exceptions import MarketplaceError
from .models import Shop, BankAccount, Transaction, Order, OrderItem, WithdrawalRequest, AdminRevenue
from .services import orders as order_service, withdrawals as withdrawal_service

ADMIN_REJECTION_REASON = 'Declined by the MultiMart payouts team. Please contact support for details.'


# ==========================================
# INLINE ADMIN CLASSES
# ==========================================

class BankAccountInline(admin.TabularInline):
    model = BankAccount
    extra = 0
    fields = ['bank_name', 'account_holder_name', 'account_number', 'created_at']
    readonly_fields = ['created_at']


class TransactionInline(admin.TabularInline):
    """Latest ledger entries inside Shop admin"""
    model = Transaction
    extra = 0
    fields = ['transaction_type', 'amount', 'status', 'reference', 'balance_after', 'created_at']
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


class OrderItemInline(admin.TabularInline):
    """Show order items inside Order admin"""
    model = OrderItem
    extra = 0
    readonly_fields = ['product_id', 'name', 'quantity', 'price', 'discount_price', 'total']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


def _run_service(modeladmin, request, queryset, operation, label):
    """Apply a service call per object and report successes and failures"""
    done = 0
    for obj in queryset:
        try:
            operation(obj)
            done += 1
        except MarketplaceError as e:
            modeladmin.message_user(request, f'{obj}: {e.message}', messages.ERROR)
    if done:
        modeladmin.message_user(request, f'✓ {label} {done} item(s)', messages.SUCCESS)


# ==========================================
# SHOP & LEDGER ADMIN
# ==========================================

@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ['name', 'owner_email', 'available_balance', 'bank_account_count', 'created_at']
    search_fields = ['name', 'email', 'user__email', 'shop_id']
    readonly_fields = ['shop_id', 'available_balance', 'created_at', 'updated_at']

    fieldsets = (
        ('Shop', {
            'fields': ('shop_id', 'user', 'name', 'email', 'phone', 'address')
        }),
        ('Ledger (Read-only)', {
            'fields': ('available_balance',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    inlines = [BankAccountInline, TransactionInline]

    def owner_email(self, obj):
        return obj.user.email
    owner_email.short_description = 'Owner'

    def bank_account_count(self, obj):
        return obj.bank_accounts.count()
    bank_account_count.short_description = 'Bank Accounts'


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_id_short', 'shop', 'transaction_type',
        'amount', 'status', 'balance_after', 'created_at'
    ]
    list_filter = ['transaction_type', 'status', 'created_at']
    search_fields = ['transaction_id', 'shop__name', 'reference']
    readonly_fields = [
        'transaction_id', 'shop', 'transaction_type', 'amount', 'status',
        'reference', 'description', 'order', 'withdrawal',
        'balance_before', 'balance_after', 'created_at', 'updated_at', 'completed_at'
    ]

    def transaction_id_short(self, obj):
        return str(obj.transaction_id)[:8]
    transaction_id_short.short_description = 'Transaction ID'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ==========================================
# ORDERS & REFUNDS ADMIN
# ==========================================

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_id_short', 'shop', 'customer_email',
        'status', 'total_price', 'payment_status', 'created_at'
    ]
    list_filter = ['status', 'payment_status', 'payment_method', 'created_at']
    search_fields = ['order_id', 'shop__name', 'user__email', 'payment_reference']
    readonly_fields = [
        'order_id', 'user', 'shop', 'status', 'subtotal', 'total_price',
        'coupon_code', 'coupon_discount', 'coupon_discount_percent',
        'payment_method', 'payment_status', 'payment_reference', 'card_number', 'card_holder_name',
        'cancellation_reason', 'created_at', 'updated_at', 'delivered_at', 'cancelled_at',
        'refund_requested_at', 'refund_rejected_at', 'refunded_at'
    ]

    fieldsets = (
        ('Order Details', {
            'fields': ('order_id', 'user', 'shop', 'status', 'cancellation_reason')
        }),
        ('Pricing', {
            'fields': ('subtotal', 'coupon_code', 'coupon_discount', 'coupon_discount_percent', 'total_price')
        }),
        ('Payment', {
            'fields': ('payment_method', 'payment_status', 'payment_reference', 'card_number', 'card_holder_name')
        }),
        ('Shipping', {
            'fields': (
                'shipping_address', 'shipping_city', 'shipping_state',
                'shipping_country', 'shipping_zip_code', 'shipping_phone'
            )
        }),
        ('Timestamps', {
            'fields': (
                'created_at', 'updated_at', 'delivered_at', 'cancelled_at',
                'refund_requested_at', 'refund_rejected_at', 'refunded_at'
            ),
            'classes': ('collapse',)
        }),
    )

    inlines = [OrderItemInline]
    actions = ['approve_refunds', 'reject_refunds']

    def order_id_short(self, obj):
        return obj.short_id
    order_id_short.short_description = 'Order ID'

    def customer_email(self, obj):
        return obj.user.email
    customer_email.short_description = 'Customer'

    def has_add_permission(self, request):
        return False

    def approve_refunds(self, request, queryset):
        """Approve pending refund requests through the ledger"""
        _run_service(
            self, request, queryset.filter(status=Order.STATUS_REFUND_REQUEST),
            lambda order: order_service.decide_refund(request.user, order.order_id, approve=True),
            'Refunded',
        )
    approve_refunds.short_description = 'Approve selected refund requests'

    def reject_refunds(self, request, queryset):
        _run_service(
            self, request, queryset.filter(status=Order.STATUS_REFUND_REQUEST),
            lambda order: order_service.decide_refund(request.user, order.order_id, approve=False),
            'Rejected refund for',
        )
    reject_refunds.short_description = 'Reject selected refund requests'


# ==========================================
# WITHDRAWALS & REVENUE ADMIN
# ==========================================

@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(admin.ModelAdmin):
    list_display = [
        'request_id_short', 'seller_name', 'amount', 'commission',
        'net_amount', 'status', 'created_at', 'processed_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['request_id', 'seller_name', 'seller_email', 'account_number']
    readonly_fields = [
        'request_id', 'shop', 'seller_name', 'seller_email', 'amount', 'commission', 'net_amount',
        'bank_name', 'account_holder_name', 'account_number', 'status', 'rejection_reason',
        'processed_by', 'created_at', 'updated_at', 'processed_at'
    ]

    fieldsets = (
        ('Request', {
            'fields': ('request_id', 'shop', 'seller_name', 'seller_email', 'amount', 'status')
        }),
        ('Bank Account', {
            'fields': ('bank_name', 'account_holder_name', 'account_number')
        }),
        ('Settlement', {
            'fields': ('commission', 'net_amount', 'rejection_reason', 'processed_by', 'processed_at')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    actions = ['accept_withdrawals', 'reject_withdrawals']

    def request_id_short(self, obj):
        return str(obj.request_id)[:8]
    request_id_short.short_description = 'Request ID'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def accept_withdrawals(self, request, queryset):
        """Pay out pending requests and book commission"""
        _run_service(
            self, request, queryset.filter(status=WithdrawalRequest.STATUS_PROCESSING),
            lambda w: withdrawal_service.accept_withdrawal(request.user, w.request_id),
            'Accepted',
        )
    accept_withdrawals.short_description = 'Accept selected withdrawals'

    def reject_withdrawals(self, request, queryset):
        """Decline pending requests and restore the seller balance"""
        _run_service(
            self, request, queryset.filter(status=WithdrawalRequest.STATUS_PROCESSING),
            lambda w: withdrawal_service.reject_withdrawal(request.user, w.request_id, ADMIN_REJECTION_REASON),
            'Rejected',
        )
    reject_withdrawals.short_description = 'Reject selected withdrawals'


@admin.register(AdminRevenue)
class AdminRevenueAdmin(admin.ModelAdmin):
    list_display = ['total_commission', 'updated_at']
    readonly_fields = ['total_commission', 'updated_at']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
