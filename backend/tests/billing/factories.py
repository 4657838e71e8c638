"""
Factories for billing app models.

Ledger entries should normally be created through apps.billing.ledger so the
balance projection stays in step; CreditLedgerEntryFactory is for tests that
need an entry without touching the balance.
"""

import factory
from factory.django import DjangoModelFactory

from apps.billing.models import BillingProfile, CreditLedgerEntry, FailedEventDispatch
from tests.organizations.factories import OrganizationFactory


class BillingProfileFactory(DjangoModelFactory):
    """Factory for BillingProfile model."""

    class Meta:
        model = BillingProfile

    organization = factory.SubFactory(OrganizationFactory, active=True)
    stripe_customer_id = factory.Sequence(lambda n: f"cus_test_{n}")
    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n}")
    subscription_status = "active"
    subscription_plan = "starter"


class CreditLedgerEntryFactory(DjangoModelFactory):
    """Factory for CreditLedgerEntry model."""

    class Meta:
        model = CreditLedgerEntry

    organization = factory.SubFactory(OrganizationFactory)
    amount = 100
    action = CreditLedgerEntry.Action.GRANT
    source = CreditLedgerEntry.Source.MANUAL
    description = "Test grant"


class FailedEventDispatchFactory(DjangoModelFactory):
    """Factory for FailedEventDispatch model."""

    class Meta:
        model = FailedEventDispatch

    event_id = factory.Sequence(lambda n: f"evt_failed_{n}")
    event_type = "invoice.payment_succeeded"
    error = "Handler failed"
