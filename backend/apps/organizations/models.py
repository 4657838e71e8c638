"""
Organizations models - tenants and their account lifecycle state.
"""

from django.db import models

from apps.core.models import TimestampedModel


class Organization(models.Model):
    """
    A tenant of the platform.

    Created by the provisioning saga. Lifecycle fields (account_status, trial,
    grace period, spending gate) are written only by apps.billing.lifecycle.
    Once an organization owns ledger or lifecycle rows it can no longer be
    deleted; archival is a status, not a delete.
    """

    class AccountStatus(models.TextChoices):
        TRIAL = "trial", "Trial"
        ACTIVE = "active", "Active"
        TRIAL_EXPIRED = "trial_expired", "Trial Expired"
        UNSUBSCRIBED = "unsubscribed", "Unsubscribed"
        ARCHIVED = "archived", "Archived"

    # Organization info
    name = models.CharField(max_length=255)
    slug = models.SlugField(
        max_length=255,
        unique=True,
        help_text="URL-safe identifier, e.g. 'acme-estates'",
    )
    contact_email = models.EmailField(blank=True)

    # Account lifecycle
    account_status = models.CharField(
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.TRIAL,
        db_index=True,
    )
    trial_started_at = models.DateTimeField(null=True, blank=True)
    trial_ends_at = models.DateTimeField(null=True, blank=True, db_index=True)
    grace_period_ends_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When an unsubscribed or expired account will be archived",
    )
    archived_at = models.DateTimeField(null=True, blank=True)
    credit_spending_enabled = models.BooleanField(
        default=True,
        help_text="Gate checked by metered features, independent of balance",
    )
    read_only_reason = models.TextField(
        blank=True,
        help_text="Shown to users while spending is disabled",
    )
    is_comped = models.BooleanField(
        default=False,
        help_text="Exempt from billing; never transitions via payment events",
    )
    is_active = models.BooleanField(default=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_in_good_standing(self) -> bool:
        """Active (or comped) and allowed to spend credits."""
        if self.is_comped:
            return True
        return (
            self.account_status == self.AccountStatus.ACTIVE and self.credit_spending_enabled
        )


class FeatureConfiguration(TimestampedModel):
    """
    Default feature settings created at signup.

    Holds the AI assistant widget defaults; everything here can be edited
    later from the settings screens.
    """

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        related_name="feature_configuration",
    )
    widget_enabled = models.BooleanField(default=False)
    widget_color = models.CharField(max_length=7, default="#2563eb")
    welcome_message = models.TextField(blank=True)
    personality = models.CharField(max_length=50, default="professional")
    enabled_capabilities = models.JSONField(default=list, blank=True)

    def __str__(self) -> str:
        return f"Features for {self.organization.name}"
