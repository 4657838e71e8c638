"""
Tests for the provisioning API endpoint.
"""

from unittest.mock import patch

import pytest
from django.test import Client

from apps.organizations.models import Organization
from tests.accounts.factories import UserFactory

PROVISION_URL = "/api/v1/organizations/provision"


@pytest.mark.django_db
class TestProvisionEndpoint:
    """Tests for POST /organizations/provision."""

    def test_requires_service_token(self, api_client: Client) -> None:
        response = api_client.post(
            PROVISION_URL,
            data={"business_name": "Acme", "owner_email": "owner@example.com"},
            content_type="application/json",
        )

        assert response.status_code == 401

    def test_provisions_tenant(self, api_client: Client, auth_headers: dict) -> None:
        response = api_client.post(
            PROVISION_URL,
            data={"business_name": "Acme Estates", "owner_email": "owner@example.com"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "acme-estates"
        assert data["trial_ends_at"] is not None
        assert data["warnings"] == []
        assert Organization.objects.filter(pk=data["organization_id"]).exists()

    def test_invalid_input_returns_400(self, api_client: Client, auth_headers: dict) -> None:
        response = api_client.post(
            PROVISION_URL,
            data={"business_name": "Acme Estates", "owner_email": "nope"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 400

    def test_existing_email_returns_409(self, api_client: Client, auth_headers: dict) -> None:
        UserFactory.create(email="taken@example.com")

        response = api_client.post(
            PROVISION_URL,
            data={"business_name": "Acme Estates", "owner_email": "taken@example.com"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 409
        assert not Organization.objects.exists()

    @patch("apps.organizations.services.assign_role", side_effect=RuntimeError("roles down"))
    def test_step_failure_returns_500(
        self, mock_assign, api_client: Client, auth_headers: dict
    ) -> None:
        response = api_client.post(
            PROVISION_URL,
            data={"business_name": "Acme Estates", "owner_email": "owner@example.com"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 500
        assert not Organization.objects.exists()
