"""
Stripe client configuration.

The billing engine only reads from Stripe: it verifies webhooks, looks up
subscriptions and checkout line items, and re-fetches events for
reconciliation. It never creates customers or charges.
"""

from types import ModuleType
from typing import Any

import stripe

from config.settings.base import settings

STRIPE_API_VERSION = "2025-06-30.basil"

# Lookups are read-only, so retrying on network errors is always safe.
STRIPE_MAX_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    """Configure the Stripe module from settings."""
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES


def get_stripe() -> ModuleType:
    """Configured Stripe module."""
    configure_stripe()
    return stripe


def retrieve_event(event_id: str) -> Any:
    """Fetch an event from Stripe by ID, for replaying a failed dispatch."""
    return get_stripe().Event.retrieve(event_id)
