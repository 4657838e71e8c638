"""Billing app configuration."""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Credit ledger, account lifecycle and Stripe webhook processing."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.billing"
    verbose_name = "Billing & Credits"
