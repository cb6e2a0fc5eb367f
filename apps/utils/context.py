# utils/context.py

"""
Thread-local audit attribution.

Records who is acting, and from which address, while a request or a
management task runs, so ``BaseModel`` can stamp created_by / updated_by
without every service taking a request argument.
"""

from threading import local
import logging

logger = logging.getLogger(__name__)

_state = local()


def audit_context(user=None, ip_address=None):
    """
    Build the attribution dict stored for the current thread.

    Anonymous users are stored as ``None`` so they never end up in
    created_by.
    """
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None
    return {'user': user, 'ip_address': ip_address or None}


def set_request_context(user=None, ip_address=None, request=None):
    """
    Attribute changes on this thread to ``user`` at ``ip_address``.

    With ``request`` both are read from it instead.
    """
    if request is not None:
        user = getattr(request, 'user', None)
        ip_address = get_client_ip(request)

    _state.audit = audit_context(user, ip_address)
    logger.debug(f"Set audit context: user={_state.audit['user']}, ip={ip_address}")


def get_request_context():
    """The attribution dict for this thread, or None."""
    return getattr(_state, 'audit', None)


def clear_request_context():
    if hasattr(_state, 'audit'):
        del _state.audit


def get_current_user():
    context = get_request_context()
    return context['user'] if context else None


def get_client_ip(request):
    """First address of X-Forwarded-For when proxied, REMOTE_ADDR otherwise."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class RequestContext:
    """
    Attribute changes made inside the block, restoring the outer context on exit.

    Example:
        with RequestContext(user=bursar, ip_address='127.0.0.1'):
            StatusMachine.enable(assignment)
    """

    def __init__(self, user=None, ip_address=None):
        self.context = audit_context(user, ip_address)
        self.outer = None

    def __enter__(self):
        self.outer = get_request_context()
        _state.audit = self.context
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.outer is not None:
            _state.audit = self.outer
        else:
            clear_request_context()
