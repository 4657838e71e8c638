"""Django admin for billing support and debugging."""

from django.contrib import admin

from apps.billing.models import (
    AccountLifecycleLog,
    BillingProfile,
    CreditBalance,
    CreditLedgerEntry,
    FailedEventDispatch,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    """Records written only by the billing engine."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CreditLedgerEntry)
class CreditLedgerEntryAdmin(ReadOnlyAdmin):
    """Ledger entries are append-only; corrections go through a manual grant."""

    list_display = [
        "id",
        "organization",
        "action",
        "source",
        "amount",
        "feature_type",
        "created_at",
    ]
    list_filter = ["action", "source", "created_at"]
    search_fields = [
        "idempotency_key",
        "stripe_payment_intent_id",
        "stripe_checkout_session_id",
        "organization__name",
    ]
    ordering = ["-created_at"]
    date_hierarchy = "created_at"


@admin.register(CreditBalance)
class CreditBalanceAdmin(ReadOnlyAdmin):
    list_display = ["organization", "balance", "updated_at"]
    search_fields = ["organization__name"]


@admin.register(AccountLifecycleLog)
class AccountLifecycleLogAdmin(ReadOnlyAdmin):
    list_display = [
        "organization",
        "previous_status",
        "new_status",
        "event",
        "triggered_by",
        "created_at",
    ]
    list_filter = ["new_status", "triggered_by", "event"]
    search_fields = ["organization__name", "reason"]
    ordering = ["-created_at"]


@admin.register(BillingProfile)
class BillingProfileAdmin(ReadOnlyAdmin):
    list_display = [
        "organization",
        "subscription_status",
        "subscription_plan",
        "subscription_ends_at",
        "payment_failure_count",
    ]
    list_filter = ["subscription_status", "subscription_plan"]
    search_fields = ["stripe_customer_id", "stripe_subscription_id", "organization__name"]


@admin.register(FailedEventDispatch)
class FailedEventDispatchAdmin(ReadOnlyAdmin):
    """Replayed by the reconcile_billing_events command."""

    list_display = ["event_id", "event_type", "attempts", "created_at", "resolved_at"]
    list_filter = ["event_type", "resolved_at"]
    search_fields = ["event_id"]
