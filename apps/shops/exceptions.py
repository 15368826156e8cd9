"""
Shop App Exceptions
Error taxonomy raised by the order, ledger and withdrawal services.
Each error carries the HTTP status the API layer answers with, plus
free-form context (aggregate ids, attempted transition) for the logs.
"""


class MarketplaceError(Exception):
    """Base class for all domain errors"""
    status_code = 500
    default_message = 'Something went wrong'

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class ValidationError(MarketplaceError):
    """Malformed or missing input"""
    status_code = 400
    default_message = 'Invalid input'


class NotFound(MarketplaceError):
    """Unknown order, withdrawal request or shop"""
    status_code = 404
    default_message = 'Not found'


class InvalidState(MarketplaceError):
    """Operation not legal from the aggregate's current state"""
    status_code = 400
    default_message = 'Operation not allowed in the current state'


class Conflict(MarketplaceError):
    """Duplicate submission"""
    status_code = 409
    default_message = 'Request conflicts with the current state'


class InsufficientFunds(MarketplaceError):
    """Withdrawal or refund exceeds the shop balance"""
    status_code = 400
    default_message = 'Insufficient balance'


class Unauthorized(MarketplaceError):
    """Principal lacks rights over the aggregate"""
    status_code = 403
    default_message = 'You do not have permission to perform this action'


class Transient(MarketplaceError):
    """Persistence timeout or lost connection; safe to retry"""
    status_code = 503
    default_message = 'Service temporarily unavailable. Please retry.'


class ReconciliationError(MarketplaceError):
    """A ledger write did not land where the status change expected it"""
    status_code = 500
    default_message = 'Ledger update failed; no changes were applied'
