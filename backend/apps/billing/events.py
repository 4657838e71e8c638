"""
Stripe event vocabulary.

The closed set of Stripe event types the billing engine acts on. Anything
else Stripe sends is acknowledged and logged, never dispatched.
"""

from enum import StrEnum

from apps.billing.exceptions import UnknownEventTypeError


class BillingEventType(StrEnum):
    """Stripe event types with a handler in apps.billing.services."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"
    DISPUTE_CREATED = "charge.dispute.created"


def parse_event_type(event_type: str) -> BillingEventType:
    """
    Map a raw Stripe event type onto the billing vocabulary.

    Raises:
        UnknownEventTypeError: The type has no handler.
    """
    try:
        return BillingEventType(event_type)
    except ValueError as e:
        raise UnknownEventTypeError(event_type) from e
