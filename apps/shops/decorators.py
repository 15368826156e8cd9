"""
Shop App Decorators
Access control and error mapping for the JSON API views
"""

import logging
from functools import wraps

from django.conf import settings
from django.db import InterfaceError, OperationalError
from django.http import JsonResponse

from .exceptions import MarketplaceError, Transient

logger = logging.getLogger(__name__)


def json_error(message, status):
    return JsonResponse({'success': False, 'message': message}, status=status)


# ==========================================
# ERROR MAPPING
# ==========================================

def api_endpoint(view_func):
    """
    Turn domain errors raised by the services into the JSON envelope

    Usage:
        @api_endpoint
        def cancel_order(request, order_id):
            ...
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)

        except (OperationalError, InterfaceError) as e:
            error = Transient(view=view_func.__name__)
            logger.error(f'{view_func.__name__}: database unavailable: {e}')
            return json_error(error.message, error.status_code)

        except MarketplaceError as e:
            log = logger.error if e.status_code >= 500 else logger.warning
            log(f'{view_func.__name__}: {e.__class__.__name__}: {e.message} {e.context}')
            return json_error(e.message, e.status_code)

        except Exception as e:
            logger.exception(f'{view_func.__name__}: unexpected error')
            message = str(e) if settings.DEBUG else 'Something went wrong'
            return json_error(message, 500)

    return wrapper


# ==========================================
# ACCESS DECORATORS
# ==========================================

def api_login_required(view_func):
    """
    Returns 401 JSON instead of redirecting to a login page
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return json_error('Authentication required', 401)
        return view_func(request, *args, **kwargs)

    return wrapper


def api_seller_required(view_func):
    """
    Authenticated user with a shop
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return json_error('Authentication required', 401)

        if not request.user.is_seller or not hasattr(request.user, 'shop'):
            return json_error('Seller account required', 403)

        return view_func(request, *args, **kwargs)

    return wrapper


def api_operator_required(view_func):
    """
    Staff or admin-role users only
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return json_error('Authentication required', 401)

        if not request.user.is_operator:
            return json_error('Admin access required', 403)

        return view_func(request, *args, **kwargs)

    return wrapper
