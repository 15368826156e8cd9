"""
Shop Services Package
Centralized imports for all services
"""

from .notifications import notification_service
from . import commission, ledger, orders, withdrawals

__all__ = [
    'notification_service',
    'commission',
    'ledger',
    'orders',
    'withdrawals',
]
