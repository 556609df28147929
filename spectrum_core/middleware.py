# spectrum_core/middleware.py
"""
Request-scoped acting user for audit rows written from signals.
"""

from .signals import set_current_user


def bind_request_user(user):
    """
    Record `user` as the actor for the rest of the request. Anonymous users
    are stored as None.
    """
    if user is None or not user.is_authenticated:
        user = None
    set_current_user(user)


class CurrentUserMiddleware:
    """
    Binds session users (admin, browsable API) once AuthenticationMiddleware
    has run. Bearer-token users only exist after DRF authentication, so
    AuditLogMixin.initial() binds those again. The binding is dropped when
    the response leaves, errors included.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        bind_request_user(getattr(request, "user", None))
        try:
            return self.get_response(request)
        finally:
            set_current_user(None)
