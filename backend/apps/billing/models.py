"""
Billing models - credit ledger, billing profile and account lifecycle log.

Two storage disciplines live side by side here:
- Facts (ledger entries, lifecycle log) are append-only and never change.
- Projections (billing profile, credit balance) are current-state rows that
  are overwritten in place, keyed by organization.
"""

from django.db import models

from apps.billing.exceptions import LedgerImmutableError
from apps.organizations.models import Organization


class AppendOnlyQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of existing rows."""

    def update(self, **kwargs):
        raise LedgerImmutableError(f"{self.model.__name__} rows cannot be updated")

    def delete(self):
        raise LedgerImmutableError(f"{self.model.__name__} rows cannot be deleted")


class AppendOnlyModel(models.Model):
    """
    Abstract base for append-only records.

    Rows can be inserted once. Saving an existing row or deleting one raises
    LedgerImmutableError; corrections are made by appending a compensating row.
    """

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutableError(f"{self.__class__.__name__} rows cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError(f"{self.__class__.__name__} rows cannot be deleted")


class BillingProfile(models.Model):
    """
    Stripe customer and subscription state for an organization.

    Mirror of Stripe's view of the subscription, upserted by the lifecycle
    machine whenever a subscription-related webhook arrives. One row per
    organization, so repeated upserts are idempotent.
    """

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        related_name="billing_profile",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe customer ID, e.g. 'cus_xxx'",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
    )
    subscription_status = models.CharField(
        max_length=50,
        blank=True,
        help_text="Subscription status as reported by Stripe",
    )
    subscription_plan = models.CharField(max_length=50, blank=True)
    subscription_started_at = models.DateTimeField(null=True, blank=True)
    subscription_ends_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of current billing period",
    )
    unsubscribed_at = models.DateTimeField(null=True, blank=True)

    # Dunning
    last_payment_failed_at = models.DateTimeField(null=True, blank=True)
    payment_failure_count = models.PositiveIntegerField(default=0)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.organization.name} - {self.subscription_status or 'none'}"


class CreditLedgerEntry(AppendOnlyModel):
    """
    A signed movement of credits for an organization.

    The balance of an organization is the sum of its entries' amounts.
    Grants and reversals are positive; consumptions and refunds are negative.
    """

    class Action(models.TextChoices):
        GRANT = "grant", "Grant"
        CONSUME = "consume", "Consume"
        REFUND = "refund", "Refund"
        REVERSAL = "reversal", "Reversal"

    class Source(models.TextChoices):
        SUBSCRIPTION = "subscription", "Subscription"
        RENEWAL = "renewal", "Renewal"
        PURCHASE = "purchase", "Purchase"
        TRIAL = "trial", "Trial"
        MANUAL = "manual", "Manual"
        USAGE = "usage", "Usage"
        REFUND = "refund", "Refund"

    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="credit_entries",
    )
    amount = models.IntegerField(help_text="Signed credit amount")
    action = models.CharField(max_length=20, choices=Action.choices)
    source = models.CharField(max_length=20, choices=Source.choices)
    description = models.TextField(blank=True)
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Originating event ID or synthetic token; at most one entry per key",
    )
    feature_type = models.CharField(
        max_length=50,
        blank=True,
        help_text="Metered feature for consumptions, e.g. 'ai_assistant'",
    )
    reverses = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="compensations",
        help_text="Entry this refund or reversal compensates",
    )
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)
    stripe_checkout_session_id = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "credit ledger entries"
        indexes = [
            models.Index(fields=["organization", "created_at"], name="billing_entry_org_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.organization_id}: {self.action} {self.amount:+d}"


class CreditBalance(models.Model):
    """
    Running balance projection for an organization.

    Only apps.billing.ledger writes this row, always in the same transaction
    as the ledger entry it accounts for, so it always equals the sum of the
    organization's entries.
    """

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="credit_balance",
    )
    balance = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.organization_id}: {self.balance}"


class AccountLifecycleLog(AppendOnlyModel):
    """
    Audit trail of account status decisions.

    One row per lifecycle event applied, including events that left the
    status unchanged and the initial status recorded at signup.
    """

    class TriggeredBy(models.TextChoices):
        SIGNUP = "signup", "Signup"
        WEBHOOK = "webhook", "Webhook"
        CRON = "cron", "Cron"
        MANUAL = "manual", "Manual"

    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="lifecycle_log",
    )
    previous_status = models.CharField(
        max_length=20,
        choices=Organization.AccountStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(max_length=20, choices=Organization.AccountStatus.choices)
    event = models.CharField(
        max_length=50,
        blank=True,
        help_text="Lifecycle event that was applied, e.g. 'subscription_canceled'",
    )
    reason = models.TextField()
    triggered_by = models.CharField(max_length=20, choices=TriggeredBy.choices)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.organization_id}: {self.previous_status} -> {self.new_status}"

    @property
    def changed_status(self) -> bool:
        return self.previous_status != self.new_status


class FailedEventDispatch(models.Model):
    """
    A claimed webhook whose handler raised.

    The claim stays in place so redelivery is a no-op; the reconciliation job
    re-fetches these events from Stripe and re-runs their handlers.
    """

    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    error = models.TextField(blank=True)
    attempts = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.event_type} ({self.event_id})"
