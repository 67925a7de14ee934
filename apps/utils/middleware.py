# utils/middleware.py

import logging
from utils.context import set_request_context, clear_request_context, get_client_ip

logger = logging.getLogger(__name__)


class AuditContextMiddleware:
    """
    Capture who is acting and from where so saves can be audited.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        set_request_context(
            user=user,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
            request_path=request.path,
        )

        try:
            response = self.get_response(request)
        finally:
            clear_request_context()

        return response
