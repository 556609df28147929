import os

import pytest

os.environ.setdefault("DJANGO_ENV", "test")


@pytest.fixture(autouse=True)
def _test_environment(settings):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Outbound mail and workflow notifications stay in memory
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = False
    settings.PUBLIC_BASE_URL = "https://lims.example.test"


@pytest.fixture(autouse=True)
def _clear_cache():
    # Zoho access tokens are cached per lab
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
