# utils/context.py

"""
Thread-local request context for audit logging.

The middleware stores who is acting and from where; BaseModel.save and
utils.audit.log_activity read it back. Management commands and webhook
handlers that act without a logged-in user wrap their work in
RequestContext so audit rows still say where the change came from.
"""

from threading import local
import logging

logger = logging.getLogger(__name__)

_thread_locals = local()


def get_client_ip(request):
    """
    Extract the client's real IP address, honouring X-Forwarded-For.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def set_request_context(user=None, ip_address=None, user_agent=None, request_path=None):
    """
    Set the current request context for this thread.

    Args:
        user: The authenticated user (or None)
        ip_address: Client IP address
        user_agent: Browser user agent string
        request_path: The request path/URL
    """
    _thread_locals.request_context = {
        'user': user if user is not None and getattr(user, 'is_authenticated', False) else None,
        'ip_address': ip_address,
        'user_agent': user_agent or '',
        'request_path': request_path or '',
    }
    logger.debug(f"Set request context: user={user}, ip={ip_address}")


def get_request_context():
    """
    Returns:
        dict: user, ip_address, user_agent, request_path; None if unset.
    """
    return getattr(_thread_locals, 'request_context', None)


def clear_request_context():
    if hasattr(_thread_locals, 'request_context'):
        del _thread_locals.request_context


class RequestContext:
    """
    Context manager for temporarily setting request context.

    Example:
        with RequestContext(request_path='cron:expire_unpaid_requests'):
            DocumentRequestService().expire_overdue_requests()
    """

    def __init__(self, user=None, ip_address=None, user_agent=None, request_path=None):
        self.context = {
            'user': user,
            'ip_address': ip_address,
            'user_agent': user_agent or '',
            'request_path': request_path or '',
        }
        self.previous_context = None

    def __enter__(self):
        self.previous_context = get_request_context()
        _thread_locals.request_context = self.context
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context is not None:
            _thread_locals.request_context = self.previous_context
        else:
            clear_request_context()
