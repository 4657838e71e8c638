"""
Core security - authentication classes for the internal API.
"""

import hmac

from ninja.security import HttpBearer

from config.settings.base import settings


class ServiceTokenAuth(HttpBearer):
    """
    Bearer token authentication for service-to-service calls.

    Collaborating services (AI assistant, media generation, signup) call the
    billing API with the shared INTERNAL_API_TOKEN. An unset token rejects
    every request rather than leaving the API open.
    """

    def authenticate(self, request, token: str) -> str | None:
        """
        Compare the presented token against the configured one.

        Returns the token if valid, None otherwise (triggers 401).
        """
        expected = settings.INTERNAL_API_TOKEN
        if not expected or not token:
            return None
        if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            return None
        return token
