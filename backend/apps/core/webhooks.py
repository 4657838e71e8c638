"""
Webhook utilities for exactly-once processing of at-least-once deliveries.
"""

from django.db import IntegrityError, transaction

from apps.core.logging import get_logger
from apps.core.models import ProcessedWebhook

logger = get_logger(__name__)


def claim_webhook(source: str, event_id: str, event_type: str = "") -> bool:
    """
    Claim a webhook event for processing.

    The INSERT is the lock: the unique constraint on (source, event_id)
    guarantees only one concurrent delivery wins. The claim is committed on
    its own savepoint so a later handler failure does not release it.

    Args:
        source: Webhook provider (e.g., 'stripe')
        event_id: Unique event identifier from the provider
        event_type: Provider event type, stored for reconciliation

    Returns:
        True if this call claimed the event, False if it was already claimed
    """
    try:
        with transaction.atomic():
            ProcessedWebhook.objects.create(
                source=source,
                event_id=event_id,
                event_type=event_type,
            )
        return True
    except IntegrityError:
        logger.info(
            "webhook_already_claimed",
            source=source,
            event_id=event_id,
            event_type=event_type,
        )
        return False

