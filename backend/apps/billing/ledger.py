"""
Ledger service - the only writer of credit ledger entries and balances.

Every write appends one CreditLedgerEntry and moves the organization's
CreditBalance by the same amount inside a single transaction, so the
projection never drifts from the sum of the entries.

Usage:
    from apps.billing import ledger

    ledger.grant_credits(org.id, 200, "subscription", "Starter plan", idempotency_key=event_id)
    ledger.consume_credits(org.id, 5, "usage", "Listing description", feature_type="ai_assistant")
"""

from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from apps.billing.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    OrganizationNotFoundError,
    SpendingDisabledError,
)
from apps.billing.models import CreditBalance, CreditLedgerEntry
from apps.core.logging import get_logger
from apps.organizations.models import Organization

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 50


def _require_organization(organization_id: int) -> None:
    if not Organization.objects.filter(pk=organization_id).exists():
        raise OrganizationNotFoundError(f"Organization {organization_id} not found")


def _move_balance(organization_id: int, delta: int) -> None:
    """Apply delta to the balance projection. Must run inside the entry's transaction."""
    CreditBalance.objects.get_or_create(organization_id=organization_id)
    CreditBalance.objects.filter(organization_id=organization_id).update(
        balance=F("balance") + delta,
        updated_at=timezone.now(),
    )


def _keyed_entry(organization_id: int, entry: CreditLedgerEntry) -> CreditLedgerEntry:
    """Return a previously recorded entry, refusing keys owned by another organization."""
    if entry.organization_id != organization_id:
        logger.warning(
            "ledger_idempotency_key_conflict",
            organization_id=organization_id,
            owner_organization_id=entry.organization_id,
            idempotency_key=entry.idempotency_key,
        )
        raise LedgerError(
            f"Idempotency key {entry.idempotency_key!r} is already used by another organization"
        )
    return entry


def _append_entry(
    organization_id: int,
    amount: int,
    action: str,
    source: str,
    description: str,
    idempotency_key: str | None = None,
    **extra: Any,
) -> tuple[CreditLedgerEntry, bool]:
    """
    Append an entry idempotently.

    Returns:
        (entry, created). When the key was already used, the existing entry
        is returned and the balance is untouched.

    Raises:
        LedgerError: the key was already used by a different organization
    """
    if idempotency_key:
        existing = CreditLedgerEntry.objects.filter(idempotency_key=idempotency_key).first()
        if existing is not None:
            return _keyed_entry(organization_id, existing), False

    try:
        with transaction.atomic():
            entry = CreditLedgerEntry.objects.create(
                organization_id=organization_id,
                amount=amount,
                action=action,
                source=source,
                description=description,
                idempotency_key=idempotency_key or None,
                **extra,
            )
            _move_balance(organization_id, amount)
    except IntegrityError:
        # Lost an insert race on the idempotency key
        if not idempotency_key:
            raise
        existing = CreditLedgerEntry.objects.get(idempotency_key=idempotency_key)
        return _keyed_entry(organization_id, existing), False

    return entry, True


def grant_credits(
    organization_id: int,
    amount: int,
    source: str,
    description: str,
    idempotency_key: str | None = None,
    **extra: Any,
) -> CreditLedgerEntry:
    """
    Add credits to an organization.

    Idempotent on idempotency_key: a repeated key returns the entry recorded
    the first time instead of granting again.

    Args:
        organization_id: Organization receiving the credits
        amount: Positive number of credits
        source: CreditLedgerEntry.Source value
        description: Human-readable description shown in the ledger
        idempotency_key: Originating event ID or synthetic token
        **extra: Additional entry fields (stripe_payment_intent_id, metadata, ...)

    Raises:
        LedgerError: amount is not positive, or the key belongs to another organization
        OrganizationNotFoundError: organization does not exist
    """
    if amount <= 0:
        raise LedgerError(f"Grant amount must be positive, got {amount}")
    _require_organization(organization_id)

    entry, created = _append_entry(
        organization_id,
        amount,
        CreditLedgerEntry.Action.GRANT,
        source,
        description,
        idempotency_key,
        **extra,
    )

    if created:
        logger.info(
            "credits_granted",
            organization_id=organization_id,
            amount=amount,
            source=source,
            entry_id=entry.id,
        )
    else:
        logger.info(
            "credits_grant_duplicate",
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            entry_id=entry.id,
        )
    return entry


def consume_credits(
    organization_id: int,
    amount: int,
    source: str,
    description: str,
    feature_type: str = "",
    require_spending_enabled: bool = False,
) -> CreditLedgerEntry:
    """
    Spend credits if, and only if, the balance covers the amount.

    The conditional decrement on the balance row is the serialization point:
    two concurrent consumptions for the same organization cannot both pass
    the check, and other organizations are never blocked.

    With require_spending_enabled, the organization row is locked and its
    spending flag checked inside the same transaction. Lifecycle transitions
    lock that row too, so a cancellation or dispute committed after the
    caller's own check still blocks the charge.

    Raises:
        LedgerError: amount is not positive
        OrganizationNotFoundError: organization does not exist
        SpendingDisabledError: spending was required but is disabled; nothing was written
        InsufficientBalanceError: balance is below amount; nothing was written
    """
    if amount <= 0:
        raise LedgerError(f"Consumption amount must be positive, got {amount}")
    _require_organization(organization_id)

    with transaction.atomic():
        if require_spending_enabled:
            org = Organization.objects.select_for_update().get(pk=organization_id)
            if not org.credit_spending_enabled:
                logger.info("credits_spending_disabled", organization_id=organization_id)
                raise SpendingDisabledError(org.read_only_reason)

        updated = CreditBalance.objects.filter(
            organization_id=organization_id,
            balance__gte=amount,
        ).update(
            balance=F("balance") - amount,
            updated_at=timezone.now(),
        )
        if not updated:
            balance = get_balance(organization_id)
            logger.info(
                "credits_insufficient",
                organization_id=organization_id,
                balance=balance,
                requested=amount,
            )
            raise InsufficientBalanceError(balance=balance, requested=amount)

        entry = CreditLedgerEntry.objects.create(
            organization_id=organization_id,
            amount=-amount,
            action=CreditLedgerEntry.Action.CONSUME,
            source=source,
            description=description,
            feature_type=feature_type,
        )

    logger.info(
        "credits_consumed",
        organization_id=organization_id,
        amount=amount,
        feature_type=feature_type,
        entry_id=entry.id,
    )
    return entry


def _get_entry(organization_id: int, entry_id: int) -> CreditLedgerEntry:
    try:
        return CreditLedgerEntry.objects.get(pk=entry_id, organization_id=organization_id)
    except CreditLedgerEntry.DoesNotExist as e:
        raise LedgerError(
            f"Ledger entry {entry_id} not found for organization {organization_id}"
        ) from e


def refund_credits(
    organization_id: int,
    original_entry_id: int,
    description: str = "",
) -> CreditLedgerEntry:
    """
    Claw back a grant whose payment was refunded.

    Appends a negative refund entry equal to the original grant. The balance
    may go negative if the credits were already spent. Refunding the same
    grant twice returns the first refund entry.

    Raises:
        LedgerError: entry not found, or not a grant
    """
    original = _get_entry(organization_id, original_entry_id)
    if original.action != CreditLedgerEntry.Action.GRANT:
        raise LedgerError(f"Only grants can be refunded, entry {original.id} is a {original.action}")

    entry, created = _append_entry(
        organization_id,
        -original.amount,
        CreditLedgerEntry.Action.REFUND,
        CreditLedgerEntry.Source.REFUND,
        description or f"Refund of {original.description or 'credit grant'}",
        idempotency_key=f"refund:{original.id}",
        reverses=original,
        stripe_payment_intent_id=original.stripe_payment_intent_id,
    )

    if created:
        logger.info(
            "credits_refunded",
            organization_id=organization_id,
            amount=original.amount,
            original_entry_id=original.id,
            entry_id=entry.id,
        )
    return entry


def reverse_consumption(organization_id: int, consumption_entry_id: int) -> CreditLedgerEntry:
    """
    Return the credits of a consumption whose metered action failed.

    Idempotent per consumption entry.

    Raises:
        LedgerError: entry not found, or not a consumption
    """
    original = _get_entry(organization_id, consumption_entry_id)
    if original.action != CreditLedgerEntry.Action.CONSUME:
        raise LedgerError(
            f"Only consumptions can be reversed, entry {original.id} is a {original.action}"
        )

    entry, created = _append_entry(
        organization_id,
        -original.amount,
        CreditLedgerEntry.Action.REVERSAL,
        CreditLedgerEntry.Source.USAGE,
        f"Reversal of {original.description or 'credit consumption'}",
        idempotency_key=f"reversal:{original.id}",
        reverses=original,
        feature_type=original.feature_type,
    )

    if created:
        logger.info(
            "credits_reversed",
            organization_id=organization_id,
            amount=-original.amount,
            original_entry_id=original.id,
            entry_id=entry.id,
        )
    return entry


def get_balance(organization_id: int) -> int:
    """Current balance from the projection row. Organizations without entries have 0."""
    balance = (
        CreditBalance.objects.filter(organization_id=organization_id)
        .values_list("balance", flat=True)
        .first()
    )
    return balance or 0


def compute_ledger_balance(organization_id: int) -> int:
    """Balance recomputed from the entries themselves, for verification."""
    return CreditLedgerEntry.objects.filter(organization_id=organization_id).aggregate(
        total=Coalesce(Sum("amount"), 0)
    )["total"]


def get_ledger_history(
    organization_id: int,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
) -> list[CreditLedgerEntry]:
    """Most recent entries first."""
    return list(
        CreditLedgerEntry.objects.filter(organization_id=organization_id).order_by(
            "-created_at", "-id"
        )[offset : offset + limit]
    )
