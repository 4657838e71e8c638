"""
Core models - shared base classes and the processed-event store.
"""

from django.db import models


class TimestampedModel(models.Model):
    """
    Abstract base model with created_at/updated_at timestamps.

    Use for current-state records that are updated in place
    (billing profiles, feature configuration).
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ProcessedWebhook(models.Model):
    """
    Record of an externally delivered event that has been claimed for processing.

    Inserted *before* any side effects run. The unique constraint on
    (source, event_id) is the deduplication lock: a second insert for the
    same event fails and the delivery is treated as a duplicate.

    Rows are never updated or deleted.
    """

    source = models.CharField(
        max_length=50,
        help_text="Webhook provider, e.g. 'stripe'",
    )
    event_id = models.CharField(
        max_length=255,
        help_text="Provider event ID, e.g. 'evt_xxx'",
    )
    event_type = models.CharField(
        max_length=100,
        blank=True,
        help_text="Provider event type, e.g. 'invoice.payment_succeeded'",
    )
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-processed_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["source", "event_id"],
                name="unique_processed_webhook",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.source}:{self.event_id}"
