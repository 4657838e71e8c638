"""
Account lifecycle state machine.

The only writer of an organization's lifecycle fields (account_status, grace
period, spending gate, archival). Every decision, including ones that leave
the status unchanged, is recorded in AccountLifecycleLog.

    trial ──started/renewed──▶ active ──canceled──▶ unsubscribed ──grace expired──▶ archived
      │                          ▲                       │
      └─trial expired─▶ trial_expired ──grace expired──▶ archived
                                 │                       │
                                 └──started/renewed──────┘ (back to active)

Events arrive unordered and duplicated from Stripe; the transition is always
decided against the status read under a row lock, never against what the
caller last saw.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from django.db import transaction
from django.utils import timezone

from apps.billing.constants import (
    ARCHIVED_REASON,
    CANCELED_REASON,
    CANCELLATION_GRACE_PERIOD,
    DISPUTE_REASON,
    TRIAL_EXPIRED_GRACE_PERIOD,
    TRIAL_EXPIRED_REASON,
)
from apps.billing.exceptions import OrganizationNotFoundError
from apps.billing.models import AccountLifecycleLog, BillingProfile
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

Status = Organization.AccountStatus
TriggeredBy = AccountLifecycleLog.TriggeredBy


class LifecycleEvent(StrEnum):
    """Everything that can move an account between statuses."""

    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_FAILED = "payment_failed"
    CHARGE_REFUNDED = "charge_refunded"
    DISPUTE_OPENED = "dispute_opened"
    TRIAL_EXPIRED = "trial_expired"
    GRACE_PERIOD_EXPIRED = "grace_period_expired"


# (current status, event) -> next status. Pairs not listed leave the status unchanged.
TRANSITIONS: dict[tuple[str, LifecycleEvent], str] = {
    (Status.TRIAL, LifecycleEvent.SUBSCRIPTION_STARTED): Status.ACTIVE,
    (Status.TRIAL, LifecycleEvent.SUBSCRIPTION_RENEWED): Status.ACTIVE,
    (Status.TRIAL_EXPIRED, LifecycleEvent.SUBSCRIPTION_STARTED): Status.ACTIVE,
    (Status.TRIAL_EXPIRED, LifecycleEvent.SUBSCRIPTION_RENEWED): Status.ACTIVE,
    (Status.ACTIVE, LifecycleEvent.SUBSCRIPTION_RENEWED): Status.ACTIVE,
    (Status.ACTIVE, LifecycleEvent.SUBSCRIPTION_CANCELED): Status.UNSUBSCRIBED,
    (Status.UNSUBSCRIBED, LifecycleEvent.SUBSCRIPTION_STARTED): Status.ACTIVE,
    (Status.TRIAL, LifecycleEvent.TRIAL_EXPIRED): Status.TRIAL_EXPIRED,
    (Status.UNSUBSCRIBED, LifecycleEvent.GRACE_PERIOD_EXPIRED): Status.ARCHIVED,
    (Status.TRIAL_EXPIRED, LifecycleEvent.GRACE_PERIOD_EXPIRED): Status.ARCHIVED,
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of applying one lifecycle event."""

    organization_id: int
    event: LifecycleEvent
    previous_status: str
    new_status: str
    log_entry_id: int | None = None
    skipped: bool = False

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status


def next_status(current: str, event: LifecycleEvent) -> str:
    """Pure lookup in the transition table."""
    return TRANSITIONS.get((current, event), current)


def _deadline_passed(org: Organization, event: LifecycleEvent, now: datetime) -> bool:
    """Time-based events only fire once their deadline has actually passed."""
    if event == LifecycleEvent.TRIAL_EXPIRED:
        return org.trial_ends_at is not None and org.trial_ends_at <= now
    if event == LifecycleEvent.GRACE_PERIOD_EXPIRED:
        return org.grace_period_ends_at is not None and org.grace_period_ends_at <= now
    return True


def _enter_status(org: Organization, status: str, now: datetime, metadata: dict[str, Any]) -> None:
    """Apply the entry effects of status to org (unsaved)."""
    org.account_status = status

    if status == Status.ACTIVE:
        org.credit_spending_enabled = True
        org.read_only_reason = ""
        org.grace_period_ends_at = None

    elif status == Status.UNSUBSCRIBED:
        org.grace_period_ends_at = now + CANCELLATION_GRACE_PERIOD
        org.credit_spending_enabled = False
        org.read_only_reason = CANCELED_REASON
        metadata["grace_period_ends_at"] = org.grace_period_ends_at.isoformat()
        metadata["grace_period_days"] = CANCELLATION_GRACE_PERIOD.days

    elif status == Status.TRIAL_EXPIRED:
        org.grace_period_ends_at = now + TRIAL_EXPIRED_GRACE_PERIOD
        org.credit_spending_enabled = False
        org.read_only_reason = TRIAL_EXPIRED_REASON
        metadata["grace_period_ends_at"] = org.grace_period_ends_at.isoformat()
        metadata["grace_period_days"] = TRIAL_EXPIRED_GRACE_PERIOD.days

    elif status == Status.ARCHIVED:
        org.is_active = False
        org.archived_at = now
        org.credit_spending_enabled = False
        org.read_only_reason = ARCHIVED_REASON
        metadata["archived_at"] = now.isoformat()


def apply_lifecycle_event(
    organization_id: int,
    event: LifecycleEvent | str,
    *,
    reason: str,
    triggered_by: str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """
    Apply one event to an organization's lifecycle.

    Locks the organization row, looks up the transition for its current
    status, applies the target status's entry effects when the status
    changes, and writes exactly one lifecycle log entry. Comped organizations
    are exempt: nothing is changed and nothing is logged.

    A dispute never changes the status but always disables spending.

    Args:
        organization_id: Organization the event belongs to
        event: LifecycleEvent (or its string value)
        reason: Human-readable reason stored in the log
        triggered_by: AccountLifecycleLog.TriggeredBy value
        metadata: Extra context stored in the log (Stripe IDs, amounts)
        now: Clock override for sweeps and tests

    Raises:
        OrganizationNotFoundError: organization does not exist
    """
    event = LifecycleEvent(event)
    now = now or timezone.now()
    log_metadata = dict(metadata or {})

    with transaction.atomic():
        try:
            org = Organization.objects.select_for_update().get(pk=organization_id)
        except Organization.DoesNotExist as e:
            raise OrganizationNotFoundError(f"Organization {organization_id} not found") from e

        previous_status = org.account_status

        if org.is_comped:
            logger.info(
                "lifecycle_event_skipped_comped",
                organization_id=organization_id,
                lifecycle_event=event.value,
            )
            return TransitionResult(
                organization_id=org.id,
                event=event,
                previous_status=previous_status,
                new_status=previous_status,
                skipped=True,
            )

        target_status = previous_status
        if _deadline_passed(org, event, now):
            target_status = next_status(previous_status, event)

        if target_status != previous_status:
            _enter_status(org, target_status, now, log_metadata)
            org.save()
        elif event == LifecycleEvent.DISPUTE_OPENED:
            org.credit_spending_enabled = False
            org.read_only_reason = DISPUTE_REASON
            org.save(update_fields=["credit_spending_enabled", "read_only_reason", "updated_at"])

        entry = AccountLifecycleLog.objects.create(
            organization=org,
            previous_status=previous_status,
            new_status=target_status,
            event=event.value,
            reason=reason,
            triggered_by=triggered_by,
            metadata=log_metadata,
        )

    result = TransitionResult(
        organization_id=org.id,
        event=event,
        previous_status=previous_status,
        new_status=target_status,
        log_entry_id=entry.id,
    )
    if result.changed:
        logger.info(
            "account_status_changed",
            organization_id=org.id,
            lifecycle_event=event.value,
            previous_status=previous_status,
            new_status=target_status,
            triggered_by=triggered_by,
        )
    else:
        logger.info(
            "lifecycle_event_recorded",
            organization_id=org.id,
            lifecycle_event=event.value,
            status=target_status,
            triggered_by=triggered_by,
        )
    return result


def upsert_billing_profile(organization_id: int, **fields: Any) -> BillingProfile:
    """
    Create or overwrite the organization's billing profile.

    Keyed by organization, so replaying the same Stripe event leaves a single
    profile with the same values.
    """
    profile, created = BillingProfile.objects.update_or_create(
        organization_id=organization_id,
        defaults=fields,
    )
    logger.debug(
        "billing_profile_upserted",
        organization_id=organization_id,
        created=created,
        fields=sorted(fields),
    )
    return profile


def record_initial_status(
    organization: Organization,
    reason: str,
    metadata: dict[str, Any] | None = None,
) -> AccountLifecycleLog:
    """Log the status an organization was created with (no previous status)."""
    return AccountLifecycleLog.objects.create(
        organization=organization,
        previous_status=None,
        new_status=organization.account_status,
        reason=reason,
        triggered_by=TriggeredBy.SIGNUP,
        metadata=metadata or {},
    )


def _sweep(
    event: LifecycleEvent,
    candidate_ids: list[int],
    reason: str,
    now: datetime,
) -> int:
    changed = 0
    for organization_id in candidate_ids:
        try:
            result = apply_lifecycle_event(
                organization_id,
                event,
                reason=reason,
                triggered_by=TriggeredBy.CRON,
                now=now,
            )
        except Exception:
            logger.exception(
                "lifecycle_sweep_failed",
                organization_id=organization_id,
                lifecycle_event=event.value,
            )
            continue
        if result.changed:
            changed += 1

    logger.info(
        "lifecycle_sweep_completed",
        lifecycle_event=event.value,
        candidates=len(candidate_ids),
        changed=changed,
    )
    return changed


def expire_trials(now: datetime | None = None) -> int:
    """
    Move trials past their end date to trial_expired.

    Returns:
        Number of organizations whose trial was expired.
    """
    now = now or timezone.now()
    candidate_ids = list(
        Organization.objects.filter(
            account_status=Status.TRIAL,
            trial_ends_at__lte=now,
            is_comped=False,
        ).values_list("id", flat=True)
    )
    return _sweep(LifecycleEvent.TRIAL_EXPIRED, candidate_ids, "Trial period ended", now)


def sweep_expired_grace_periods(now: datetime | None = None) -> int:
    """
    Archive unsubscribed and trial-expired organizations whose grace period ended.

    Candidates are re-checked under the row lock, so an organization that
    resubscribed after being selected stays active.

    Returns:
        Number of organizations archived.
    """
    now = now or timezone.now()
    candidate_ids = list(
        Organization.objects.filter(
            account_status__in=[Status.UNSUBSCRIBED, Status.TRIAL_EXPIRED],
            grace_period_ends_at__lte=now,
            is_comped=False,
        ).values_list("id", flat=True)
    )
    return _sweep(
        LifecycleEvent.GRACE_PERIOD_EXPIRED, candidate_ids, "Grace period ended", now
    )
