"""
Tests for Stripe webhook handler.

Tests signature verification, exactly-once dispatch, and error handling.
"""

import json
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest
import stripe

from apps.billing.models import AccountLifecycleLog, CreditLedgerEntry, FailedEventDispatch
from apps.billing.webhooks import process_stripe_event
from apps.core.models import ProcessedWebhook
from apps.organizations.models import Organization
from config.settings.base import settings
from tests.organizations.factories import OrganizationFactory

if TYPE_CHECKING:
    from django.test import Client


@pytest.fixture
def webhook_url() -> str:
    """Webhook endpoint URL (module-specific)."""
    return "/webhooks/stripe/"


def build_webhook_payload(
    event_type: str, data_object: dict, event_id: str = "evt_test_123"
) -> dict:
    """Build a Stripe webhook event payload."""
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": data_object},
    }


def post_event(client: "Client", url: str, event: dict):
    return client.post(
        url,
        data=json.dumps(event),
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE="t=1,v1=test",
    )


class TestStripeWebhookSignatureVerification:
    """Tests for webhook signature verification."""

    def test_missing_signature_header_returns_400(self, client: "Client", webhook_url: str) -> None:
        """Should return 400 when Stripe-Signature header is missing."""
        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
        )

        assert response.status_code == 400

    def test_missing_webhook_secret_returns_500(
        self, monkeypatch, client: "Client", webhook_url: str
    ) -> None:
        """Should return 500 when STRIPE_WEBHOOK_SECRET is not configured."""
        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "")

        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="test_signature",
        )

        assert response.status_code == 500

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_invalid_payload_returns_400(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        """Should return 400 when payload is invalid."""
        mock_construct.side_effect = ValueError("Invalid payload")

        response = client.post(
            webhook_url,
            data="invalid json",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="test_signature",
        )

        assert response.status_code == 400

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_invalid_signature_returns_400(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        """Should return 400 when signature verification fails."""
        mock_construct.side_effect = stripe.SignatureVerificationError(
            "Invalid signature", "sig_header"
        )

        response = client.post(
            webhook_url,
            data=json.dumps({"type": "test"}),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="invalid_signature",
        )

        assert response.status_code == 400

    @pytest.mark.django_db
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_rejected_event_is_not_claimed(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        """Unverified payloads must not touch the processed-event store."""
        mock_construct.side_effect = stripe.SignatureVerificationError("bad", "sig")

        post_event(client, webhook_url, build_webhook_payload("charge.refunded", {"id": "ch_1"}))

        assert not ProcessedWebhook.objects.exists()

    def test_get_not_allowed(self, client: "Client", webhook_url: str) -> None:
        response = client.get(webhook_url)

        assert response.status_code == 405


@pytest.mark.django_db
class TestStripeWebhookEventDispatching:
    """Tests for webhook event dispatching to handlers."""

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_dispatches_to_handler_and_claims(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        event = build_webhook_payload("charge.refunded", {"id": "ch_1"})
        mock_construct.return_value = event
        handler = MagicMock()

        with patch.dict("apps.billing.services.EVENT_HANDLERS", {"charge.refunded": handler}):
            response = post_event(client, webhook_url, event)

        assert response.status_code == 200
        handler.assert_called_once_with(event)
        assert ProcessedWebhook.objects.filter(source="stripe", event_id="evt_test_123").exists()

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_duplicate_delivery_runs_handler_once(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        event = build_webhook_payload("charge.refunded", {"id": "ch_1"})
        mock_construct.return_value = event
        handler = MagicMock()

        with patch.dict("apps.billing.services.EVENT_HANDLERS", {"charge.refunded": handler}):
            first = post_event(client, webhook_url, event)
            second = post_event(client, webhook_url, event)

        assert first.status_code == 200
        assert second.status_code == 200
        handler.assert_called_once()

    @patch("apps.billing.services.get_stripe")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_duplicate_checkout_grants_and_activates_once(
        self,
        mock_construct: MagicMock,
        mock_get_stripe: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """A redelivered subscription checkout is recorded, granted and logged exactly once."""
        org = OrganizationFactory.create()
        stripe_api = MagicMock()
        stripe_api.Subscription.retrieve.return_value = {"id": "sub_1", "status": "active"}
        mock_get_stripe.return_value = stripe_api
        event = build_webhook_payload(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "mode": "subscription",
                "subscription": "sub_1",
                "customer": "cus_1",
                "metadata": {"organization_id": str(org.id), "plan_name": "starter"},
            },
            event_id="evt_checkout_1",
        )
        mock_construct.return_value = event

        first = post_event(client, webhook_url, event)
        second = post_event(client, webhook_url, event)

        assert first.status_code == 200
        assert second.status_code == 200
        assert ProcessedWebhook.objects.filter(event_id="evt_checkout_1").count() == 1
        grants = CreditLedgerEntry.objects.filter(
            organization=org, action=CreditLedgerEntry.Action.GRANT
        )
        assert grants.count() == 1
        assert grants.get().idempotency_key == "evt_checkout_1"
        log = AccountLifecycleLog.objects.get(organization=org)
        assert log.previous_status == Organization.AccountStatus.TRIAL
        assert log.new_status == Organization.AccountStatus.ACTIVE
        org.refresh_from_db()
        assert org.account_status == Organization.AccountStatus.ACTIVE

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_unknown_event_type_acknowledged(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        event = build_webhook_payload("customer.created", {"id": "cus_1"})
        mock_construct.return_value = event

        response = post_event(client, webhook_url, event)

        assert response.status_code == 200
        assert not FailedEventDispatch.objects.exists()

    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_handler_failure_returns_500_and_keeps_claim(
        self, mock_construct: MagicMock, client: "Client", webhook_url: str
    ) -> None:
        event = build_webhook_payload("invoice.payment_failed", {"id": "in_1"})
        mock_construct.return_value = event
        handler = MagicMock(side_effect=RuntimeError("database unavailable"))

        with patch.dict("apps.billing.services.EVENT_HANDLERS", {"invoice.payment_failed": handler}):
            first = post_event(client, webhook_url, event)
            second = post_event(client, webhook_url, event)

        assert first.status_code == 500
        assert second.status_code == 200
        assert handler.call_count == 1
        failure = FailedEventDispatch.objects.get(event_id="evt_test_123")
        assert failure.event_type == "invoice.payment_failed"
        assert "database unavailable" in failure.error
        assert failure.resolved_at is None

    @patch("apps.billing.services.get_stripe")
    @patch("apps.billing.webhooks.stripe.Webhook.construct_event")
    def test_end_to_end_credit_pack_purchase(
        self,
        mock_construct: MagicMock,
        mock_get_stripe: MagicMock,
        client: "Client",
        webhook_url: str,
    ) -> None:
        """A duplicated checkout delivery grants the credit pack exactly once."""
        org = OrganizationFactory.create(active=True)
        event = build_webhook_payload(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "mode": "payment",
                "payment_intent": "pi_1",
                "metadata": {"organization_id": str(org.id), "credits": "500"},
            },
        )
        mock_construct.return_value = event

        post_event(client, webhook_url, event)
        post_event(client, webhook_url, event)

        entries = CreditLedgerEntry.objects.filter(organization=org)
        assert entries.count() == 1
        assert entries.get().amount == 500


@pytest.mark.django_db
class TestProcessStripeEvent:
    """Tests for process_stripe_event without the HTTP layer."""

    def test_returns_true_when_processed(self) -> None:
        event = build_webhook_payload("charge.refunded", {"id": "ch_1"}, event_id="evt_a")

        with patch.dict("apps.billing.services.EVENT_HANDLERS", {"charge.refunded": MagicMock()}):
            assert process_stripe_event(event) is True
            assert process_stripe_event(event) is False

    def test_repeated_failure_increments_attempts(self) -> None:
        event = build_webhook_payload("charge.refunded", {"id": "ch_1"}, event_id="evt_b")
        handler = MagicMock(side_effect=RuntimeError("boom"))

        with patch.dict("apps.billing.services.EVENT_HANDLERS", {"charge.refunded": handler}):
            with pytest.raises(RuntimeError):
                process_stripe_event(event)

        from apps.billing.webhooks import _record_failed_dispatch

        _record_failed_dispatch(event, RuntimeError("again"))

        failure = FailedEventDispatch.objects.get(event_id="evt_b")
        assert failure.attempts == 2
        assert failure.error == "again"
