"""
Shop App Utility Functions
Helpers for money rounding, card masking and transaction retries
"""

import time
import logging
from decimal import Decimal, ROUND_HALF_UP
from functools import wraps
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, connection

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


# ==========================================
# MONEY
# ==========================================

def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, half-up"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal, currency: str = 'USD') -> str:
    """
    Format amount as currency string

    Args:
        amount: Amount to format
        currency: Currency code

    Returns:
        Formatted string (e.g., '$10,000.00')
    """
    symbol = '$' if currency == 'USD' else currency
    return f"{symbol}{amount:,.2f}"


# ==========================================
# PAYMENT DATA
# ==========================================

def mask_card_number(card_number: str) -> str:
    """
    Keep only the last four digits of a card number

    Returns:
        Masked string (e.g., '****-****-****-1234'), empty if no digits
    """
    digits = ''.join(filter(str.isdigit, card_number or ''))
    if not digits:
        return ''
    return f"****-****-****-{digits[-4:]}"


# ==========================================
# TRANSACTION RETRIES
# ==========================================

# SQLSTATE serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({'40001', '40P01'})

# Drivers that expose no SQLSTATE (SQLite) are matched on the message
RETRYABLE_MESSAGES = ('deadlock detected', 'could not serialize access', 'database is locked')


def _error_chain(exc: BaseException):
    """The error followed by the driver errors it wraps"""
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def is_transient_db_error(exc: BaseException) -> bool:
    """True when the database aborted the transaction and a fresh attempt may succeed"""
    if not isinstance(exc, DatabaseError):
        return False

    for error in _error_chain(exc):
        if (getattr(error, 'sqlstate', None) or getattr(error, 'pgcode', None)) in RETRYABLE_SQLSTATES:
            return True

    message = str(exc).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def retry_on_tx_failure(max_attempts: Optional[int] = None, backoff: float = 0.05, max_backoff: float = 1.0):
    """
    Run an atomic service call again when the database aborts it

    Goes above @transaction.atomic so every attempt gets a new
    transaction. Called inside someone else's atomic block the error is
    re-raised at once: only the outermost block can start over. Ledger
    entries are keyed by reference, so a repeated attempt never books
    twice.

    Args:
        max_attempts: Total tries (default: settings.LEDGER_TX_RETRY_ATTEMPTS)
        backoff: First delay in seconds, doubled on every retry
        max_backoff: Upper bound for a single delay
    """
    def decorator(func):
        @wraps(func)
        def inner(*args, **kwargs):
            limit = max(1, max_attempts or getattr(settings, 'LEDGER_TX_RETRY_ATTEMPTS', 3))

            for attempt in range(1, limit + 1):
                try:
                    return func(*args, **kwargs)
                except DatabaseError as e:
                    if attempt == limit or connection.in_atomic_block or not is_transient_db_error(e):
                        raise

                    delay = min(backoff * 2 ** (attempt - 1), max_backoff)
                    logger.warning(
                        f'{func.__qualname__} aborted by the database ({e}); '
                        f'attempt {attempt + 1}/{limit} in {delay:.2f}s'
                    )
                    time.sleep(delay)
        return inner
    return decorator
