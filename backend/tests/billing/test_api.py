"""
Tests for billing API endpoints.
"""

import pytest
from django.test import Client

from apps.billing import ledger
from apps.billing.models import CreditLedgerEntry
from apps.organizations.models import Organization
from tests.organizations.factories import OrganizationFactory

Source = CreditLedgerEntry.Source


def url(organization_id: int, resource: str) -> str:
    return f"/api/v1/billing/organizations/{organization_id}/{resource}"


@pytest.mark.django_db
class TestAuthentication:
    """Tests for service token authentication on billing endpoints."""

    def test_missing_token_returns_401(self, api_client: Client) -> None:
        org = OrganizationFactory.create()

        response = api_client.get(url(org.id, "balance"))

        assert response.status_code == 401

    def test_wrong_token_returns_401(self, api_client: Client) -> None:
        org = OrganizationFactory.create()

        response = api_client.get(url(org.id, "balance"), HTTP_AUTHORIZATION="Bearer wrong")

        assert response.status_code == 401


@pytest.mark.django_db
class TestGetBalance:
    """Tests for GET /billing/organizations/{id}/balance."""

    def test_returns_balance(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()
        ledger.grant_credits(org.id, 100, Source.TRIAL, "Trial")

        response = api_client.get(url(org.id, "balance"), **auth_headers)

        assert response.status_code == 200
        assert response.json() == {"organization_id": org.id, "balance": 100}

    def test_unknown_organization_returns_404(self, api_client: Client, auth_headers: dict) -> None:
        response = api_client.get(url(999_999, "balance"), **auth_headers)

        assert response.status_code == 404


@pytest.mark.django_db
class TestGetStatus:
    """Tests for GET /billing/organizations/{id}/status."""

    def test_returns_status(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create(
            account_status=Organization.AccountStatus.UNSUBSCRIBED,
            credit_spending_enabled=False,
            read_only_reason="Subscription canceled.",
        )

        response = api_client.get(url(org.id, "status"), **auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unsubscribed"
        assert data["spending_enabled"] is False
        assert data["read_only_reason"] == "Subscription canceled."
        assert data["is_comped"] is False
        assert data["balance"] == 0

    def test_unknown_organization_returns_404(self, api_client: Client, auth_headers: dict) -> None:
        response = api_client.get(url(999_999, "status"), **auth_headers)

        assert response.status_code == 404


@pytest.mark.django_db
class TestConsume:
    """Tests for POST /billing/organizations/{id}/consumptions."""

    def test_consumes_credits(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()
        ledger.grant_credits(org.id, 100, Source.TRIAL, "Trial")

        response = api_client.post(
            url(org.id, "consumptions"),
            data={"feature_type": "ai_assistant", "credit_cost": 5},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["credits_consumed"] == 5
        assert data["balance"] == 95
        assert data["entry_id"] is not None

    def test_insufficient_credits_returns_402(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()
        ledger.grant_credits(org.id, 3, Source.TRIAL, "Trial")

        response = api_client.post(
            url(org.id, "consumptions"),
            data={"feature_type": "video", "credit_cost": 5},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 402
        assert response.json()["code"] == "insufficient_credits"
        assert ledger.get_balance(org.id) == 3

    def test_spending_disabled_returns_403(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create(
            credit_spending_enabled=False, read_only_reason="Account suspended."
        )
        ledger.grant_credits(org.id, 100, Source.TRIAL, "Trial")

        response = api_client.post(
            url(org.id, "consumptions"),
            data={"feature_type": "video", "credit_cost": 5},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 403
        assert response.json() == {"detail": "Account suspended.", "code": "spending_disabled"}

    def test_invalid_cost_returns_422(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()

        response = api_client.post(
            url(org.id, "consumptions"),
            data={"feature_type": "video", "credit_cost": 0},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 422

    def test_unknown_organization_returns_404(self, api_client: Client, auth_headers: dict) -> None:
        response = api_client.post(
            url(999_999, "consumptions"),
            data={"feature_type": "video", "credit_cost": 1},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 404


@pytest.mark.django_db
class TestLedgerHistory:
    """Tests for GET /billing/organizations/{id}/ledger."""

    def test_lists_entries_most_recent_first(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()
        ledger.grant_credits(org.id, 100, Source.TRIAL, "Trial")
        ledger.consume_credits(org.id, 5, Source.USAGE, "AI reply", feature_type="ai_assistant")

        response = api_client.get(url(org.id, "ledger"), **auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [e["amount"] for e in data["entries"]] == [-5, 100]
        assert data["entries"][0]["feature_type"] == "ai_assistant"
        assert data["balance"] == 95
        assert data["limit"] == 50
        assert data["offset"] == 0

    def test_paging(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()
        for amount in (1, 2, 3):
            ledger.grant_credits(org.id, amount, Source.MANUAL, "Grant")

        response = api_client.get(url(org.id, "ledger") + "?limit=1&offset=1", **auth_headers)

        assert [e["amount"] for e in response.json()["entries"]] == [2]

    def test_limit_above_maximum_returns_422(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()

        response = api_client.get(url(org.id, "ledger") + "?limit=500", **auth_headers)

        assert response.status_code == 422


@pytest.mark.django_db
class TestGrant:
    """Tests for POST /billing/organizations/{id}/grants."""

    def test_grants_credits(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()

        response = api_client.post(
            url(org.id, "grants"),
            data={"amount": 50, "description": "Goodwill credit"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["amount"] == 50
        assert data["source"] == "manual"
        assert ledger.get_balance(org.id) == 50

    def test_idempotency_key_prevents_double_grant(
        self, api_client: Client, auth_headers: dict
    ) -> None:
        org = OrganizationFactory.create()
        payload = {"amount": 50, "description": "Goodwill", "idempotency_key": "ticket-42"}

        first = api_client.post(
            url(org.id, "grants"), data=payload, content_type="application/json", **auth_headers
        )
        second = api_client.post(
            url(org.id, "grants"), data=payload, content_type="application/json", **auth_headers
        )

        assert first.json()["id"] == second.json()["id"]
        assert ledger.get_balance(org.id) == 50

    def test_idempotency_key_of_another_organization_returns_400(
        self, api_client: Client, auth_headers: dict
    ) -> None:
        org_a = OrganizationFactory.create()
        org_b = OrganizationFactory.create()
        owner_entry = ledger.grant_credits(
            org_a.id, 200, Source.SUBSCRIPTION, "Starter", idempotency_key="evt_x"
        )

        response = api_client.post(
            url(org_b.id, "grants"),
            data={"amount": 50, "description": "Goodwill", "idempotency_key": "evt_x"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 400
        assert str(owner_entry.id) not in response.json()["detail"]
        assert ledger.get_balance(org_b.id) == 0
        assert ledger.get_balance(org_a.id) == 200

    def test_negative_amount_returns_422(self, api_client: Client, auth_headers: dict) -> None:
        org = OrganizationFactory.create()

        response = api_client.post(
            url(org.id, "grants"),
            data={"amount": -10, "description": "Nope"},
            content_type="application/json",
            **auth_headers,
        )

        assert response.status_code == 422


class TestHealth:
    def test_health_check(self, api_client: Client) -> None:
        response = api_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
