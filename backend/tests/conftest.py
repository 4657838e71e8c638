"""
Shared pytest fixtures for all tests.

This module provides common fixtures used across multiple test modules.
Individual test modules can override these fixtures if needed.

Factories
---------
Import factories directly from their modules:

    from tests.organizations.factories import OrganizationFactory
    from tests.accounts.factories import UserFactory, MemberFactory
    from tests.billing.factories import BillingProfileFactory, CreditLedgerEntryFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        org = OrganizationFactory.create()
        ledger.grant_credits(org.id, 100, "manual", "Goodwill")
"""

import pytest
from django.test import Client

from config.settings.base import settings

TEST_API_TOKEN = "test-internal-token"
TEST_WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def _service_settings(monkeypatch):
    """Configure the internal API token and webhook secret for every test."""
    monkeypatch.setattr(settings, "INTERNAL_API_TOKEN", TEST_API_TOKEN)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")


@pytest.fixture
def api_client() -> Client:
    """Django test client."""
    return Client()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers carrying the internal service token."""
    return {"HTTP_AUTHORIZATION": f"Bearer {TEST_API_TOKEN}"}
