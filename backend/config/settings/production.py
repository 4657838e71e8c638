"""
Production settings.

Security-hardened settings for deployed environments.
All secrets are read from environment variables.
"""

from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa: F403
from .base import settings

DEBUG = False
ALLOWED_HOSTS = settings.ALLOWED_HOSTS

if not settings.STRIPE_WEBHOOK_SECRET:
    raise ImproperlyConfigured("STRIPE_WEBHOOK_SECRET must be set in production")
if not settings.INTERNAL_API_TOKEN:
    raise ImproperlyConfigured("INTERNAL_API_TOKEN must be set in production")

# Security settings
SECURE_SSL_REDIRECT = True
SECURE_HSTS_SECONDS = 31536000  # 1 year
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
