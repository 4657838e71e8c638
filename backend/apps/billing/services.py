"""
Billing services - Stripe event handlers and the collaborator-facing API.

Handlers receive a verified, already-claimed Stripe event. Each one applies
its ledger mutation before its lifecycle mutation, and every ledger grant is
keyed by the Stripe event ID so a handler can be re-run by reconciliation
without granting twice.

Stripe API calls (subscription and line item lookups) are made before any
database transaction is opened.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import Any

from django.db.models import F
from django.utils import timezone

from apps.billing import ledger
from apps.billing.constants import CREDIT_PACK_SIZES, DEFAULT_PLAN, plan_credits
from apps.billing.events import BillingEventType
from apps.billing.exceptions import OrganizationNotFoundError, SpendingDisabledError
from apps.billing.lifecycle import LifecycleEvent, apply_lifecycle_event, upsert_billing_profile
from apps.billing.models import AccountLifecycleLog, BillingProfile, CreditLedgerEntry
from apps.billing.stripe_client import get_stripe
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

Source = CreditLedgerEntry.Source
WEBHOOK = AccountLifecycleLog.TriggeredBy.WEBHOOK


# =============================================================================
# Stripe object helpers
# =============================================================================


def _from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=dt_timezone.utc)


def _metadata(obj: Any) -> dict:
    return dict(obj.get("metadata") or {})


def _parse_organization_id(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _subscription_period_end(subscription: Any) -> datetime | None:
    """
    End of the current billing period.

    Newer Stripe API versions moved current_period_end from the subscription
    onto its items, so try both.
    """
    period_end = subscription.get("current_period_end")
    if not period_end:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    return _from_timestamp(period_end)


def _invoice_subscription_id(invoice: Any) -> str | None:
    """Subscription ID of an invoice, at either its old or its current location."""
    subscription_id = invoice.get("subscription")
    if not subscription_id:
        parent = invoice.get("parent") or {}
        subscription_id = (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(subscription_id, dict):
        subscription_id = subscription_id.get("id")
    return subscription_id or None


def _organization_for_customer(customer_id: str | None) -> int | None:
    if not customer_id:
        return None
    return (
        BillingProfile.objects.filter(stripe_customer_id=customer_id)
        .values_list("organization_id", flat=True)
        .first()
    )


def _profile_for_subscription(subscription_id: str | None) -> BillingProfile | None:
    if not subscription_id:
        return None
    return BillingProfile.objects.filter(stripe_subscription_id=subscription_id).first()


def _grant_for_payment_intent(payment_intent_id: str | None) -> CreditLedgerEntry | None:
    """The grant recorded for a payment, used to attribute refunds and disputes."""
    if not payment_intent_id:
        return None
    return (
        CreditLedgerEntry.objects.filter(
            stripe_payment_intent_id=payment_intent_id,
            action=CreditLedgerEntry.Action.GRANT,
        )
        .order_by("created_at", "id")
        .first()
    )


def _credit_pack_credits(session: Any) -> int | None:
    """
    Credits bought in a payment-mode checkout.

    Read from the session metadata, falling back to the metadata of the
    purchased line item's price.
    """
    credits = _metadata(session).get("credits")
    if credits is None:
        stripe = get_stripe()
        line_items = stripe.checkout.Session.list_line_items(
            session["id"], limit=1, expand=["data.price"]
        )
        items = line_items.get("data") or []
        if items:
            credits = _metadata(items[0].get("price") or {}).get("credits")

    try:
        credits = int(credits)
    except (TypeError, ValueError):
        return None

    if credits not in CREDIT_PACK_SIZES:
        logger.warning("stripe_credit_pack_nonstandard_size", credits=credits, session_id=session["id"])
    return credits if credits > 0 else None


# =============================================================================
# Event handlers
# =============================================================================


def handle_checkout_completed(event: Any) -> None:
    """
    Handle checkout.session.completed.

    Subscription mode: mirror the subscription, grant the plan's credits and
    activate the account. Payment mode: grant the purchased credit pack.
    """
    session = event["data"]["object"]
    metadata = _metadata(session)
    organization_id = _parse_organization_id(metadata.get("organization_id"))
    if organization_id is None:
        logger.warning("stripe_checkout_missing_organization", session_id=session["id"])
        return

    mode = session.get("mode")

    if mode == "subscription":
        subscription_id = session["subscription"]
        stripe = get_stripe()
        subscription = stripe.Subscription.retrieve(subscription_id)
        plan = metadata.get("plan_name") or _metadata(subscription).get("plan_name") or DEFAULT_PLAN
        credits = plan_credits(plan)

        upsert_billing_profile(
            organization_id,
            stripe_customer_id=session.get("customer") or "",
            stripe_subscription_id=subscription_id,
            subscription_status=subscription["status"],
            subscription_plan=plan,
            subscription_started_at=_from_timestamp(subscription.get("start_date")),
            subscription_ends_at=_subscription_period_end(subscription),
        )
        ledger.grant_credits(
            organization_id,
            credits,
            Source.SUBSCRIPTION,
            f"Monthly {plan} subscription credits ({credits} credits)",
            idempotency_key=event["id"],
            stripe_checkout_session_id=session["id"],
        )
        apply_lifecycle_event(
            organization_id,
            LifecycleEvent.SUBSCRIPTION_STARTED,
            reason=f"Subscription started ({plan} plan)",
            triggered_by=WEBHOOK,
            metadata={"stripe_event_id": event["id"], "stripe_subscription_id": subscription_id},
        )

    elif mode == "payment":
        credits = _credit_pack_credits(session)
        if credits is None:
            logger.warning("stripe_credit_pack_not_found", session_id=session["id"])
            return
        ledger.grant_credits(
            organization_id,
            credits,
            Source.PURCHASE,
            f"Credit pack purchase ({credits} credits)",
            idempotency_key=event["id"],
            stripe_checkout_session_id=session["id"],
            stripe_payment_intent_id=session.get("payment_intent") or "",
        )

    else:
        logger.info("stripe_checkout_mode_ignored", mode=mode, session_id=session["id"])


def handle_subscription_changed(event: Any) -> None:
    """
    Handle customer.subscription.created and customer.subscription.updated.

    Mirrors the subscription onto the billing profile. Credits are granted by
    checkout and renewal invoices, never here.
    """
    subscription = event["data"]["object"]
    metadata = _metadata(subscription)
    organization_id = _parse_organization_id(
        metadata.get("organization_id")
    ) or _organization_for_customer(subscription.get("customer"))
    if organization_id is None:
        logger.warning("stripe_subscription_organization_not_found", subscription_id=subscription["id"])
        return

    fields = {
        "stripe_subscription_id": subscription["id"],
        "subscription_status": subscription["status"],
        "subscription_started_at": _from_timestamp(subscription.get("start_date")),
        "subscription_ends_at": _subscription_period_end(subscription),
    }
    if subscription.get("customer"):
        fields["stripe_customer_id"] = subscription["customer"]
    if metadata.get("plan_name"):
        fields["subscription_plan"] = metadata["plan_name"]

    upsert_billing_profile(organization_id, **fields)
    apply_lifecycle_event(
        organization_id,
        LifecycleEvent.SUBSCRIPTION_UPDATED,
        reason=f"Subscription status is {subscription['status']}",
        triggered_by=WEBHOOK,
        metadata={"stripe_event_id": event["id"], "stripe_subscription_id": subscription["id"]},
    )


def handle_subscription_deleted(event: Any) -> None:
    """Handle customer.subscription.deleted: start the cancellation grace period."""
    subscription = event["data"]["object"]
    profile = _profile_for_subscription(subscription["id"])
    organization_id = (
        profile.organization_id
        if profile
        else _parse_organization_id(_metadata(subscription).get("organization_id"))
    )
    if organization_id is None:
        logger.warning("stripe_subscription_organization_not_found", subscription_id=subscription["id"])
        return

    upsert_billing_profile(
        organization_id,
        stripe_subscription_id=subscription["id"],
        subscription_status="canceled",
        unsubscribed_at=timezone.now(),
    )
    apply_lifecycle_event(
        organization_id,
        LifecycleEvent.SUBSCRIPTION_CANCELED,
        reason="Subscription canceled",
        triggered_by=WEBHOOK,
        metadata={"stripe_event_id": event["id"], "stripe_subscription_id": subscription["id"]},
    )


def handle_invoice_payment_succeeded(event: Any) -> None:
    """
    Handle invoice.payment_succeeded.

    Renewal invoices (billing_reason subscription_cycle) grant the plan's
    credits and renew the account. Any successful payment clears the
    payment failure count.
    """
    invoice = event["data"]["object"]
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        logger.debug("stripe_invoice_without_subscription", invoice_id=invoice["id"])
        return

    profile = _profile_for_subscription(subscription_id)
    if profile is not None:
        organization_id = profile.organization_id
        plan = profile.subscription_plan or DEFAULT_PLAN
    else:
        stripe = get_stripe()
        subscription = stripe.Subscription.retrieve(subscription_id)
        metadata = _metadata(subscription)
        organization_id = _parse_organization_id(metadata.get("organization_id"))
        plan = metadata.get("plan_name") or DEFAULT_PLAN

    if organization_id is None:
        logger.warning("stripe_invoice_organization_not_found", invoice_id=invoice["id"])
        return

    if invoice.get("billing_reason") == "subscription_cycle":
        credits = plan_credits(plan)
        ledger.grant_credits(
            organization_id,
            credits,
            Source.RENEWAL,
            f"Monthly {plan} subscription renewal credits ({credits} credits)",
            idempotency_key=event["id"],
            metadata={"invoice_id": invoice["id"]},
        )
        apply_lifecycle_event(
            organization_id,
            LifecycleEvent.SUBSCRIPTION_RENEWED,
            reason=f"Subscription renewed ({plan} plan)",
            triggered_by=WEBHOOK,
            metadata={"stripe_event_id": event["id"], "invoice_id": invoice["id"]},
        )

    if profile is not None and profile.payment_failure_count:
        upsert_billing_profile(organization_id, payment_failure_count=0, last_payment_failed_at=None)
        logger.info("stripe_payment_recovered", organization_id=organization_id)


def handle_invoice_payment_failed(event: Any) -> None:
    """Handle invoice.payment_failed: count the failure. The status is not changed."""
    invoice = event["data"]["object"]
    profile = _profile_for_subscription(_invoice_subscription_id(invoice))
    if profile is None:
        logger.warning("stripe_invoice_organization_not_found", invoice_id=invoice["id"])
        return

    BillingProfile.objects.filter(pk=profile.pk).update(
        payment_failure_count=F("payment_failure_count") + 1,
        last_payment_failed_at=timezone.now(),
        updated_at=timezone.now(),
    )
    profile.refresh_from_db(fields=["payment_failure_count"])

    apply_lifecycle_event(
        profile.organization_id,
        LifecycleEvent.PAYMENT_FAILED,
        reason=f"Payment failed (attempt #{profile.payment_failure_count})",
        triggered_by=WEBHOOK,
        metadata={
            "stripe_event_id": event["id"],
            "invoice_id": invoice["id"],
            "failure_count": profile.payment_failure_count,
        },
    )


def handle_charge_refunded(event: Any) -> None:
    """Handle charge.refunded: claw back the credits granted for the payment."""
    charge = event["data"]["object"]
    grant = _grant_for_payment_intent(charge.get("payment_intent"))
    if grant is None:
        logger.warning("stripe_refund_grant_not_found", charge_id=charge["id"])
        return

    refund = ledger.refund_credits(
        grant.organization_id,
        grant.id,
        description=f"Credit reversal due to refund (charge: {charge['id']})",
    )
    apply_lifecycle_event(
        grant.organization_id,
        LifecycleEvent.CHARGE_REFUNDED,
        reason=f"Charge refunded: {charge['id']} ({grant.amount} credits reversed)",
        triggered_by=WEBHOOK,
        metadata={
            "stripe_event_id": event["id"],
            "charge_id": charge["id"],
            "amount_refunded": charge.get("amount_refunded", 0),
            "credits_reversed": grant.amount,
            "refund_entry_id": refund.id,
        },
    )


def handle_dispute_created(event: Any) -> None:
    """Handle charge.dispute.created: suspend spending until support intervenes."""
    dispute = event["data"]["object"]
    charge_id = dispute.get("charge")
    if isinstance(charge_id, dict):
        charge_id = charge_id.get("id")

    grant = _grant_for_payment_intent(dispute.get("payment_intent"))
    if grant is None:
        logger.warning("stripe_dispute_grant_not_found", dispute_id=dispute["id"], charge_id=charge_id)
        return

    apply_lifecycle_event(
        grant.organization_id,
        LifecycleEvent.DISPUTE_OPENED,
        reason=f"Payment dispute created (charge: {charge_id})",
        triggered_by=WEBHOOK,
        metadata={
            "stripe_event_id": event["id"],
            "dispute_id": dispute["id"],
            "charge_id": charge_id,
            "amount": dispute.get("amount"),
            "reason": dispute.get("reason"),
        },
    )


EVENT_HANDLERS: dict[BillingEventType, Callable[[Any], None]] = {
    BillingEventType.CHECKOUT_COMPLETED: handle_checkout_completed,
    BillingEventType.SUBSCRIPTION_CREATED: handle_subscription_changed,
    BillingEventType.SUBSCRIPTION_UPDATED: handle_subscription_changed,
    BillingEventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    BillingEventType.INVOICE_PAYMENT_SUCCEEDED: handle_invoice_payment_succeeded,
    BillingEventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    BillingEventType.CHARGE_REFUNDED: handle_charge_refunded,
    BillingEventType.DISPUTE_CREATED: handle_dispute_created,
}


# =============================================================================
# Collaborator API
# =============================================================================


@dataclass(frozen=True)
class AccountStatusSnapshot:
    """What a collaborator needs to decide what an organization may do."""

    organization_id: int
    status: str
    trial_ends_at: datetime | None
    grace_period_ends_at: datetime | None
    spending_enabled: bool
    read_only_reason: str
    is_comped: bool
    balance: int


@dataclass(frozen=True)
class ConsumptionResult:
    organization_id: int
    feature_type: str
    credits_consumed: int
    balance: int
    entry_id: int | None = None


def _get_organization(organization_id: int) -> Organization:
    try:
        return Organization.objects.get(pk=organization_id)
    except Organization.DoesNotExist as e:
        raise OrganizationNotFoundError(f"Organization {organization_id} not found") from e


def get_account_status(organization_id: int) -> AccountStatusSnapshot:
    """
    Current lifecycle state and balance of an organization.

    Raises:
        OrganizationNotFoundError: organization does not exist
    """
    org = _get_organization(organization_id)
    return AccountStatusSnapshot(
        organization_id=org.id,
        status=org.account_status,
        trial_ends_at=org.trial_ends_at,
        grace_period_ends_at=org.grace_period_ends_at,
        spending_enabled=org.credit_spending_enabled,
        read_only_reason=org.read_only_reason,
        is_comped=org.is_comped,
        balance=ledger.get_balance(org.id),
    )


def request_consumption(organization_id: int, feature_type: str, credit_cost: int) -> ConsumptionResult:
    """
    Charge credits for a metered action, before the action runs.

    Comped organizations are never charged.

    Raises:
        OrganizationNotFoundError: organization does not exist
        SpendingDisabledError: spending is disabled, whatever the balance
        InsufficientBalanceError: balance is below credit_cost
    """
    org = _get_organization(organization_id)

    if org.is_comped:
        logger.debug("credit_consumption_comped", organization_id=org.id, feature_type=feature_type)
        return ConsumptionResult(
            organization_id=org.id,
            feature_type=feature_type,
            credits_consumed=0,
            balance=ledger.get_balance(org.id),
        )

    if not org.credit_spending_enabled:
        logger.info(
            "credit_consumption_blocked",
            organization_id=org.id,
            feature_type=feature_type,
            account_status=org.account_status,
        )
        raise SpendingDisabledError(org.read_only_reason)

    entry = ledger.consume_credits(
        org.id,
        credit_cost,
        Source.USAGE,
        f"{feature_type} usage",
        feature_type=feature_type,
        require_spending_enabled=True,
    )
    return ConsumptionResult(
        organization_id=org.id,
        feature_type=feature_type,
        credits_consumed=credit_cost,
        balance=ledger.get_balance(org.id),
        entry_id=entry.id,
    )
