"""
Stripe webhook handler.

Handles incoming webhooks from Stripe for billing events.
This is a separate view (not Django Ninja) for raw request handling
needed to verify Stripe signatures.

Delivery is at-least-once and unordered; processing is exactly-once:
1. Verify the signature (nothing is touched for unverified payloads).
2. Claim the event ID in the processed-event store.
3. Dispatch to the handler in apps.billing.services.
A claimed event whose handler fails stays claimed and is queued in
FailedEventDispatch for the reconcile_billing_events command.
"""

from typing import Any

import stripe
from django.db.models import F
from django.http import HttpRequest, HttpResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from apps.billing.events import parse_event_type
from apps.billing.exceptions import (
    AuthenticationError,
    DuplicateEventError,
    UnknownEventTypeError,
    WebhookSecretNotConfiguredError,
)
from apps.billing.models import FailedEventDispatch
from apps.billing.services import EVENT_HANDLERS
from apps.billing.stripe_client import get_stripe
from apps.core.logging import bind_contextvars, get_logger
from apps.core.webhooks import claim_webhook
from config.settings.base import settings

logger = get_logger(__name__)

WEBHOOK_SOURCE = "stripe"


def verify_stripe_event(payload: bytes, sig_header: str | None) -> Any:
    """
    Verify a webhook payload and build the Stripe event.

    Raises:
        WebhookSecretNotConfiguredError: STRIPE_WEBHOOK_SECRET is empty
        AuthenticationError: missing header, bad signature or unparseable payload
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise WebhookSecretNotConfiguredError("STRIPE_WEBHOOK_SECRET is not configured")

    if not sig_header:
        raise AuthenticationError("Missing Stripe-Signature header")

    get_stripe()  # Ensure Stripe is configured
    try:
        return stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.STRIPE_WEBHOOK_SECRET,
        )
    except ValueError as e:
        raise AuthenticationError(f"Invalid payload: {e}") from e
    except stripe.SignatureVerificationError as e:
        raise AuthenticationError(f"Invalid signature: {e}") from e


def dispatch_stripe_event(event: Any) -> None:
    """
    Run the handler for an event, without claiming it.

    Used directly by reconciliation, where the event was claimed on its
    original delivery.

    Raises:
        UnknownEventTypeError: no handler for the event type
    """
    event_type = parse_event_type(event["type"])
    EVENT_HANDLERS[event_type](event)


def _record_failed_dispatch(event: Any, error: Exception) -> None:
    updated = FailedEventDispatch.objects.filter(event_id=event["id"]).update(
        error=str(error),
        attempts=F("attempts") + 1,
        resolved_at=None,
        updated_at=timezone.now(),
    )
    if not updated:
        FailedEventDispatch.objects.create(
            event_id=event["id"],
            event_type=event["type"],
            error=str(error),
        )


def _claim(event: Any) -> None:
    if not claim_webhook(WEBHOOK_SOURCE, event["id"], event["type"]):
        raise DuplicateEventError(event["id"])


def process_stripe_event(event: Any) -> bool:
    """
    Claim and dispatch a verified Stripe event.

    Returns:
        True if this delivery processed the event, False if it was a
        duplicate or an event type with no handler.

    Raises:
        Exception: the handler failed. The event stays claimed and is
            recorded for reconciliation.
    """
    event_id = event["id"]
    event_type = event["type"]
    bind_contextvars(**{"stripe.event_id": event_id, "stripe.event_type": event_type})

    try:
        _claim(event)
    except DuplicateEventError:
        logger.info("stripe_webhook_duplicate", event_id=event_id, event_type=event_type)
        return False

    try:
        dispatch_stripe_event(event)
    except UnknownEventTypeError:
        logger.info("stripe_webhook_unhandled_event", event_id=event_id, event_type=event_type)
        return False
    except Exception as e:
        logger.exception("stripe_webhook_handler_error", event_id=event_id, event_type=event_type)
        _record_failed_dispatch(event, e)
        raise

    logger.info("stripe_webhook_processed", event_id=event_id, event_type=event_type)
    return True


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Handle Stripe webhook events.

    400 for anything that fails verification, 500 when the secret is missing
    or a handler failed (so Stripe retries with backoff), 200 otherwise,
    including duplicates and unhandled event types.
    """
    try:
        event = verify_stripe_event(request.body, request.headers.get("Stripe-Signature"))
    except WebhookSecretNotConfiguredError:
        logger.error("stripe_webhook_secret_not_configured")
        return HttpResponse(status=500)
    except AuthenticationError as e:
        logger.warning("stripe_webhook_rejected", error=str(e))
        return HttpResponse(status=400)

    logger.info("stripe_webhook_received", event_id=event["id"], event_type=event["type"])

    try:
        process_stripe_event(event)
    except Exception:
        # Return 500 so Stripe will retry with exponential backoff
        return HttpResponse(status=500)

    return HttpResponse(status=200)
