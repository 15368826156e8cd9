"""
Notification Service
Email and SMS notifications for sellers, buyers and operators

Email: Django's configured mail backend (SMTP in production)
SMS: Termii API

Settings (read from the environment in MultiMart/settings.py):
- EMAIL_BACKEND, EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER, EMAIL_HOST_PASSWORD
- TERMII_API_KEY, TERMII_SENDER_ID, TERMII_BASE_URL
- USE_MOCK_NOTIFICATIONS (True to only log messages)

Every public method returns True/False and never raises: a failed
notification must not undo the operation that triggered it.
"""

import logging
from typing import List, Optional, Union

import requests
from django.conf import settings
from django.utils import timezone

from core.utils.email_service import send_marketplace_email

from .utils import format_currency

logger = logging.getLogger(__name__)

SIGNATURE = """
Best regards,
MultiMart Team"""

SMS_MAX_LENGTH = 160


class EmailService:
    """
    Seller, buyer and operator mail through the Django mail backend
    """

    def __init__(self):
        self.use_mock = getattr(settings, 'USE_MOCK_NOTIFICATIONS', False)
        self.from_email = getattr(settings, 'DEFAULT_FROM_EMAIL', 'noreply@multimart.com')

    def send_email(
        self,
        to_email: Union[str, List[str]],
        subject: str,
        message: str,
        html_message: Optional[str] = None,
    ) -> bool:
        """
        Args:
            to_email: Recipient email, or a list sent as one message
            subject: Email subject
            message: Plain text body
            html_message: HTML alternative (optional)

        Returns:
            True if the backend accepted the message
        """
        if isinstance(to_email, str):
            to_email = [to_email]
        recipients = [address for address in to_email or [] if address]
        if not recipients:
            logger.warning(f'No recipient for email "{subject}", skipped')
            return False

        if self.use_mock:
            logger.info(f'[MOCK EMAIL] {subject} -> {", ".join(recipients)}\n{message}')
            return True

        try:
            send_marketplace_email(
                subject,
                message,
                recipients,
                from_email=self.from_email,
                html_message=html_message,
            )
        except Exception as e:
            logger.error(f'Email "{subject}" to {", ".join(recipients)} failed: {e}')
            return False

        logger.info(f'Email "{subject}" sent to {", ".join(recipients)}')
        return True


class SMSService:
    """
    Short seller alerts through Termii
    Falls back to logging when no API key is configured.
    """

    def __init__(self):
        self.use_mock = getattr(settings, 'USE_MOCK_NOTIFICATIONS', False)
        self.api_key = getattr(settings, 'TERMII_API_KEY', '')
        self.sender_id = getattr(settings, 'TERMII_SENDER_ID', 'MultiMart')
        self.base_url = getattr(settings, 'TERMII_BASE_URL', 'https://api.ng.termii.com')

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/sms/send"

    @staticmethod
    def normalize_phone(phone: str) -> str:
        """Digits only, e.g. '+1 (555) 123-4567' -> '15551234567'"""
        return ''.join(ch for ch in (phone or '') if ch.isdigit())

    def send_sms(self, phone: str, message: str) -> bool:
        """
        Args:
            phone: Phone number in any common format
            message: Text, cut to one SMS segment

        Returns:
            True if Termii reports the message as sent
        """
        phone = self.normalize_phone(phone)
        if not phone:
            logger.warning('No phone number for SMS, skipped')
            return False

        message = message[:SMS_MAX_LENGTH]

        if self.use_mock or not self.api_key:
            if not self.use_mock:
                logger.warning('TERMII_API_KEY not configured, SMS only logged')
            logger.info(f'[MOCK SMS] {phone}: {message}')
            return True

        try:
            response = requests.post(
                self.api_url,
                json={
                    'api_key': self.api_key,
                    'to': phone,
                    'from': self.sender_id,
                    'sms': message,
                    'type': 'plain',
                    'channel': 'generic',
                },
                timeout=30,
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f'SMS to {phone} failed: {e}')
            return False

        if result.get('message') != 'Successfully Sent':
            logger.error(f'SMS to {phone} rejected by Termii: {result}')
            return False

        logger.info(f'SMS sent to {phone}')
        return True


class NotificationService:
    """
    Main notification service - combines email and SMS
    """

    def __init__(self):
        self.email = EmailService()
        self.sms = SMSService()

    @staticmethod
    def _seller_phone(shop) -> str:
        return shop.phone or getattr(shop.user, 'phone', '')

    # ==========================================
    # ORDER NOTIFICATIONS
    # ==========================================

    def send_new_order(self, order) -> bool:
        """
        Send email and SMS when a shop receives a new order

        Args:
            order: Order instance
        """
        shop = order.shop

        email_success = self.email.send_email(
            to_email=shop.email,
            subject=f'New Order Received - #{order.short_id}',
            message=f"""Hello {shop.name},

You have received a new order.

Order ID: #{order.short_id}
Items: {order.items.count()}
Total: {format_currency(order.total_price)}
Ship to: {order.shipping_city}

View details: {settings.SITE_URL}/api/orders/{order.order_id}/
{SIGNATURE}""",
        )

        phone = self._seller_phone(shop)
        if phone:
            self.sms.send_sms(
                phone,
                f'New order received! Order #{order.short_id} - {format_currency(order.total_price)}. Check your dashboard.'
            )

        return email_success

    def send_order_status_update(self, order) -> bool:
        """
        Send email to the buyer when the order status changes

        Args:
            order: Order instance
        """
        status_messages = {
            'transferred to delivery partner': 'Your order has been handed to our delivery partner.',
            'shipping': 'Your order has been shipped.',
            'on the way': 'Your order is on the way.',
            'delivered': 'Your order has been delivered. Enjoy your purchase!',
            'refunded': 'Your refund has been approved and processed.',
            'cancelled': 'Your order has been cancelled.',
        }

        message = status_messages.get(order.status, f'Your order status: {order.get_status_display()}')

        return self.email.send_email(
            to_email=order.user.email,
            subject=f'Order Update - #{order.short_id}',
            message=f"""Hello,

{message}

Order ID: #{order.short_id}
Total: {format_currency(order.total_price)}

Thank you for shopping on MultiMart!
{SIGNATURE}""",
        )

    # ==========================================
    # WITHDRAWAL NOTIFICATIONS
    # ==========================================

    def send_withdrawal_submitted(self, withdrawal) -> bool:
        """Confirm a new withdrawal request to the seller"""
        return self.email.send_email(
            to_email=withdrawal.seller_email,
            subject='Withdrawal Request Confirmation',
            message=f"""Hello {withdrawal.seller_name},

Your withdrawal request has been submitted successfully.

Withdrawal Details:
- Amount: {format_currency(withdrawal.amount)}
- Bank: {withdrawal.bank_name}
- Account Holder: {withdrawal.account_holder_name}
- Account Number: {withdrawal.account_number}
- Status: {withdrawal.status}
- Request ID: {withdrawal.request_id}

Your request will be processed within 3-7 business days. You will receive another email once the transfer is completed.

If you have any questions, please contact our support team.
{SIGNATURE}""",
        )

    def send_withdrawal_approved(self, withdrawal) -> bool:
        """
        Send email (and SMS when a phone is on file) once a payout is made

        Args:
            withdrawal: WithdrawalRequest instance in Completed status
        """
        processed_on = timezone.localtime(withdrawal.processed_at or timezone.now())

        email_success = self.email.send_email(
            to_email=withdrawal.seller_email,
            subject='Withdrawal Request Approved - Payment Processed',
            message=f"""Hello {withdrawal.seller_name},

Great news! Your withdrawal request has been approved and processed.

Withdrawal Details:
- Amount: {format_currency(withdrawal.amount)}
- Platform commission: {format_currency(withdrawal.commission)}
- Paid out: {format_currency(withdrawal.net_amount)}
- Status: {withdrawal.status}
- Request ID: {withdrawal.request_id}
- Processed On: {processed_on:%Y-%m-%d %H:%M}

Bank Details:
- Bank: {withdrawal.bank_name}
- Account Holder: {withdrawal.account_holder_name}
- Account Number: {withdrawal.account_number}

The payment has been transferred to your bank account and should reflect within 1-3 business days depending on your bank's processing time.

Thank you for being a valued seller on our platform!
{SIGNATURE}""",
        )

        phone = self._seller_phone(withdrawal.shop)
        if phone:
            self.sms.send_sms(
                phone,
                f'Payout successful! {format_currency(withdrawal.net_amount)} has been sent to your {withdrawal.bank_name} account.'
            )

        return email_success

    def send_withdrawal_rejected(self, withdrawal) -> bool:
        """Tell the seller why a withdrawal was declined"""
        processed_on = timezone.localtime(withdrawal.processed_at or timezone.now())

        return self.email.send_email(
            to_email=withdrawal.seller_email,
            subject='Withdrawal Request - Action Required',
            message=f"""Hello {withdrawal.seller_name},

We regret to inform you that your withdrawal request has been declined.

Withdrawal Details:
- Amount: {format_currency(withdrawal.amount)}
- Bank: {withdrawal.bank_name}
- Account Holder: {withdrawal.account_holder_name}
- Status: {withdrawal.status}
- Request ID: {withdrawal.request_id}
- Processed On: {processed_on:%Y-%m-%d %H:%M}

Reason for Rejection:
{withdrawal.rejection_reason}

The requested amount has been restored to your available balance. You can submit a new withdrawal request after addressing the above concerns.

If you have any questions or need clarification, please contact our support team.
{SIGNATURE}""",
        )

    # ==========================================
    # ADMIN NOTIFICATIONS
    # ==========================================

    def notify_admin_withdrawal_request(self, withdrawal) -> bool:
        """
        Notify admins that a withdrawal is waiting for review

        Args:
            withdrawal: WithdrawalRequest instance
        """
        admin_emails = getattr(settings, 'ADMIN_EMAILS', None) or ['admin@multimart.com']

        return self.email.send_email(
            to_email=admin_emails,
            subject=f'Withdrawal Pending Review - {withdrawal.seller_name}',
            message=f"""New withdrawal request pending review:

Shop: {withdrawal.seller_name}
Email: {withdrawal.seller_email}
Amount: {format_currency(withdrawal.amount)}
Bank: {withdrawal.bank_name}

Review in admin: {settings.SITE_URL}/admin/shops/withdrawalrequest/{withdrawal.pk}/change/

Best regards,
MultiMart System""",
        )


# Singleton instance
notification_service = NotificationService()
