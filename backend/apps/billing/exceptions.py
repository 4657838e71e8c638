"""
Billing exceptions.

Balance and spending errors are expected outcomes that callers must act on
(block the metered action, show the right banner). Authentication errors
reject a webhook outright before any state is touched.
"""


class BillingError(Exception):
    """Base exception for billing errors."""

    pass


class AuthenticationError(BillingError):
    """Webhook signature is missing or invalid."""

    pass


class WebhookSecretNotConfiguredError(AuthenticationError):
    """No webhook secret is configured, so nothing can be verified."""

    pass


class DuplicateEventError(BillingError):
    """The event ID was already claimed. Handled internally as success."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} already processed")
        self.event_id = event_id


class UnknownEventTypeError(BillingError):
    """The provider sent an event type this system does not handle."""

    def __init__(self, event_type: str):
        super().__init__(f"Unhandled event type: {event_type}")
        self.event_type = event_type


class OrganizationNotFoundError(BillingError):
    """No organization exists with the given ID."""

    pass


class LedgerError(BillingError):
    """A ledger operation was rejected."""

    pass


class LedgerImmutableError(LedgerError):
    """Attempted to update or delete an append-only record."""

    pass


class InsufficientBalanceError(LedgerError):
    """Consumption would drive the balance below zero."""

    def __init__(self, balance: int, requested: int):
        super().__init__(f"Insufficient credits: balance {balance}, requested {requested}")
        self.balance = balance
        self.requested = requested


class SpendingDisabledError(BillingError):
    """The organization may not spend credits, whatever its balance."""

    def __init__(self, reason: str = ""):
        super().__init__(reason or "Credit spending is disabled for this account")
        self.reason = reason
