# utils/middleware.py

from utils.context import set_request_context, clear_request_context


class AuditContextMiddleware:
    """
    Attributes every change made while serving a request to its user and address.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        set_request_context(request=request)
        try:
            return self.get_response(request)
        finally:
            clear_request_context()
