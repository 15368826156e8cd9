"""
Outgoing mail for marketplace notifications and management commands
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives


def clean_recipients(recipient_list: Iterable[str]) -> List[str]:
    """Stripped, de-duplicated addresses in their original order"""
    if recipient_list is None or isinstance(recipient_list, str):
        raise ValueError("recipient_list must be a list of addresses")

    recipients = []
    for address in recipient_list:
        address = str(address or '').strip()
        if address and address not in recipients:
            recipients.append(address)
    return recipients


def send_marketplace_email(
    subject: str,
    message: str,
    recipient_list: Iterable[str],
    from_email: Optional[str] = None,
    html_message: Optional[str] = None,
) -> int:
    """
    Send one email through the configured backend

    An HTML body, when given, goes out as an alternative to the plain
    text. Failures raise; callers that must not fail catch them.

    Returns:
        Number of messages sent
    """
    if not subject or not isinstance(subject, str):
        raise ValueError("subject must be a non-empty string")
    if not isinstance(message, str):
        raise ValueError("message must be a string")

    recipients = clean_recipients(recipient_list)
    if not recipients:
        raise ValueError("recipient_list must contain at least one email address")

    email = EmailMultiAlternatives(
        subject=subject,
        body=message,
        from_email=from_email or settings.DEFAULT_FROM_EMAIL,
        to=recipients,
    )
    if html_message:
        email.attach_alternative(html_message, "text/html")

    sent_count = email.send(fail_silently=False)
    if sent_count < 1:
        raise RuntimeError("Email was not sent")

    return sent_count
