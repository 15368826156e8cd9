"""
Shop App Models
Database schema for shops, the seller balance ledger, orders and payouts
"""

from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db.models import F, Q
from django.utils import timezone
from decimal import Decimal
import uuid


# ==========================================
# SHOP & BANK ACCOUNTS
# ==========================================

class Shop(models.Model):
    """
    Seller storefront - one per seller user
    Holds the withdrawable ledger balance
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='shop')
    shop_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    name = models.CharField(max_length=100)
    email = models.EmailField()
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    # Written only by services.ledger
    available_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Withdrawable ledger balance"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Shop"
        verbose_name_plural = "Shops"
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class BankAccount(models.Model):
    """
    Payout destinations registered by a seller (withdraw methods)
    """
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='bank_accounts')

    bank_name = models.CharField(max_length=100)
    account_holder_name = models.CharField(max_length=200)
    account_number = models.CharField(max_length=34)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Bank Account"
        verbose_name_plural = "Bank Accounts"
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['shop', 'account_number'], name='unique_shop_account_number'),
        ]

    def __str__(self):
        return f"{self.bank_name} ****{self.account_number[-4:]}"


# ==========================================
# LEDGER
# ==========================================

class Transaction(models.Model):
    """
    Append-only ledger entry. The shop balance is the sum of its entries.
    """

    TYPE_ORDER_PAYMENT = 'order_payment'
    TYPE_REFUND = 'refund'
    TYPE_WITHDRAWAL = 'withdrawal'
    TYPE_WITHDRAWAL_REVERSAL = 'withdrawal_reversal'

    TRANSACTION_TYPE_CHOICES = [
        (TYPE_ORDER_PAYMENT, 'Order Payment'),
        (TYPE_REFUND, 'Refund'),
        (TYPE_WITHDRAWAL, 'Withdrawal'),
        (TYPE_WITHDRAWAL_REVERSAL, 'Withdrawal Reversal'),
    ]

    STATUS_PROCESSING = 'Processing'
    STATUS_COMPLETED = 'Completed'
    STATUS_REVERSED = 'Reversed'

    STATUS_CHOICES = [
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REVERSED, 'Reversed'),
    ]

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='transactions')
    transaction_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPE_CHOICES)
    # Signed: credits positive, debits negative
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)

    # Idempotency key, one per ledger effect (e.g. "order:<uuid>:order_payment")
    reference = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    order = models.ForeignKey('Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries')
    withdrawal = models.ForeignKey(
        'WithdrawalRequest', on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries'
    )

    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['shop', 'transaction_type'], name='transaction_shop_type_idx'),
        ]

    def __str__(self):
        return f"{self.transaction_type} - {self.amount} - {self.status}"


# ==========================================
# ORDERS
# ==========================================

class Order(models.Model):
    """
    One shop's share of a checkout. Priced once at creation;
    afterwards only the status and its timestamps change.
    """

    STATUS_PROCESSING = 'processing'
    STATUS_TRANSFERRED = 'transferred to delivery partner'
    STATUS_SHIPPING = 'shipping'
    STATUS_ON_THE_WAY = 'on the way'
    STATUS_RECEIVED = 'received'
    STATUS_DELIVERED = 'delivered'
    STATUS_REFUND_REQUEST = 'refund request'
    STATUS_REFUNDED = 'refunded'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_TRANSFERRED, 'Transferred to delivery partner'),
        (STATUS_SHIPPING, 'Shipping'),
        (STATUS_ON_THE_WAY, 'On the way'),
        (STATUS_RECEIVED, 'Received'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_REFUND_REQUEST, 'Refund request'),
        (STATUS_REFUNDED, 'Refunded'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('card', 'Card'),
        ('cod', 'Cash on Delivery'),
        ('paypal', 'PayPal'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]

    order_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='orders')

    status = models.CharField(max_length=40, choices=STATUS_CHOICES, default=STATUS_PROCESSING)

    # Pricing
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])

    # Coupon (this shop's apportioned share)
    coupon_code = models.CharField(max_length=50, blank=True)
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    coupon_discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))

    # Shipping
    shipping_address = models.TextField()
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100, blank=True)
    shipping_country = models.CharField(max_length=100, blank=True)
    shipping_zip_code = models.CharField(max_length=20)
    shipping_phone = models.CharField(max_length=20, blank=True)

    # Payment (already settled elsewhere; only masked card data is kept)
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES, default='cod')
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
    payment_reference = models.CharField(max_length=100, blank=True)
    card_number = models.CharField(max_length=19, blank=True)
    card_holder_name = models.CharField(max_length=200, blank=True)

    cancellation_reason = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_requested_at = models.DateTimeField(null=True, blank=True)
    refund_rejected_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
            models.Index(fields=['shop', 'created_at'], name='order_shop_created_idx'),
            models.Index(fields=['status'], name='order_status_idx'),
            models.Index(fields=['payment_status'], name='order_payment_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(total_price__gte=0), name='order_total_price_non_negative'),
            models.CheckConstraint(condition=Q(total_price__lte=F('subtotal')), name='order_total_price_within_subtotal'),
        ]

    def __str__(self):
        return f"Order #{self.order_id} - {self.status}"

    @property
    def short_id(self):
        return str(self.order_id)[:8]


class OrderItem(models.Model):
    """
    Catalog snapshot taken at checkout
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')

    product_id = models.CharField(max_length=64)
    name = models.CharField(max_length=200)
    images = models.JSONField(default=list, blank=True)

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2)
    discount_price = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        verbose_name = "Order Item"
        verbose_name_plural = "Order Items"

    def __str__(self):
        return f"{self.name} x{self.quantity}"


# ==========================================
# WITHDRAWALS & PLATFORM REVENUE
# ==========================================

class WithdrawalRequest(models.Model):
    """
    Seller request to pay out ledger balance to a bank account
    """

    STATUS_PROCESSING = 'Processing'
    STATUS_COMPLETED = 'Completed'
    STATUS_REJECTED = 'Rejected'

    STATUS_CHOICES = [
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    request_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    shop = models.ForeignKey(Shop, on_delete=models.PROTECT, related_name='withdrawal_requests')

    # Seller snapshot
    seller_name = models.CharField(max_length=100)
    seller_email = models.EmailField()

    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    commission = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    net_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    # Bank account snapshot
    bank_name = models.CharField(max_length=100)
    account_holder_name = models.CharField(max_length=200)
    account_number = models.CharField(max_length=34)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PROCESSING)
    rejection_reason = models.TextField(blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='processed_withdrawals'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Withdrawal Request"
        verbose_name_plural = "Withdrawal Requests"
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='withdrawal_amount_positive'),
        ]

    def __str__(self):
        return f"Withdrawal #{str(self.request_id)[:8]} - {self.amount} - {self.status}"


class AdminRevenue(models.Model):
    """
    Singleton accumulator of recognized platform commission
    """
    total_commission = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Admin Revenue"
        verbose_name_plural = "Admin Revenue"

    def __str__(self):
        return f"Platform commission: {self.total_commission}"

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj
