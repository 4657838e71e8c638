"""
Tests for the processed-event store.
"""

import pytest
from django.db import IntegrityError

from apps.core.models import ProcessedWebhook
from apps.core.webhooks import claim_webhook


@pytest.mark.django_db
class TestProcessedWebhookModel:
    """Tests for ProcessedWebhook model."""

    def test_create_processed_webhook(self) -> None:
        webhook = ProcessedWebhook.objects.create(
            source="stripe",
            event_id="evt_123",
            event_type="invoice.payment_succeeded",
        )

        assert webhook.processed_at is not None
        assert str(webhook) == "stripe:evt_123"

    def test_unique_constraint_on_source_and_event_id(self) -> None:
        ProcessedWebhook.objects.create(source="stripe", event_id="evt_123")

        with pytest.raises(IntegrityError):
            ProcessedWebhook.objects.create(source="stripe", event_id="evt_123")

    def test_same_event_id_different_source_allowed(self) -> None:
        ProcessedWebhook.objects.create(source="stripe", event_id="evt_123")
        ProcessedWebhook.objects.create(source="other", event_id="evt_123")

        assert ProcessedWebhook.objects.filter(event_id="evt_123").count() == 2


@pytest.mark.django_db
class TestClaimWebhook:
    """Tests for claim_webhook."""

    def test_first_claim_wins(self) -> None:
        assert claim_webhook("stripe", "evt_new", "charge.refunded") is True

        record = ProcessedWebhook.objects.get(event_id="evt_new")
        assert record.event_type == "charge.refunded"

    def test_second_claim_is_rejected(self) -> None:
        claim_webhook("stripe", "evt_dup")

        assert claim_webhook("stripe", "evt_dup") is False
        assert ProcessedWebhook.objects.filter(event_id="evt_dup").count() == 1

    def test_rejected_claim_leaves_transaction_usable(self) -> None:
        """A duplicate claim must not poison the surrounding transaction."""
        claim_webhook("stripe", "evt_dup")
        claim_webhook("stripe", "evt_dup")

        assert claim_webhook("stripe", "evt_other") is True
