"""
Billing API endpoints.

Read and write surface for collaborating services: balance, account status,
credit consumption and manual grants. Authenticated with the internal
service token.
"""

from django.http import HttpRequest
from ninja import Query, Router
from ninja.errors import HttpError

from apps.billing import ledger
from apps.billing.exceptions import (
    InsufficientBalanceError,
    LedgerError,
    OrganizationNotFoundError,
    SpendingDisabledError,
)
from apps.billing.models import CreditLedgerEntry
from apps.billing.schemas import (
    AccountStatusResponse,
    BalanceResponse,
    ConsumptionRequest,
    ConsumptionResponse,
    GrantRequest,
    LedgerEntryResponse,
    LedgerHistoryParams,
    LedgerHistoryResponse,
)
from apps.billing.services import get_account_status, request_consumption
from apps.core.logging import bind_contextvars, get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import ServiceTokenAuth
from apps.organizations.models import Organization

logger = get_logger(__name__)

router = Router(tags=["billing"])
service_auth = ServiceTokenAuth()


def _require_organization(organization_id: int) -> None:
    bind_contextvars(**{"organization.id": str(organization_id)})
    if not Organization.objects.filter(pk=organization_id).exists():
        raise HttpError(404, "Organization not found")


def _entry_to_response(entry: CreditLedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        amount=entry.amount,
        action=entry.action,
        source=entry.source,
        description=entry.description,
        feature_type=entry.feature_type,
        created_at=entry.created_at,
    )


@router.get(
    "/organizations/{organization_id}/balance",
    response={200: BalanceResponse, 401: ErrorResponse, 404: ErrorResponse},
    auth=service_auth,
    operation_id="getCreditBalance",
    summary="Get credit balance",
)
def get_balance(request: HttpRequest, organization_id: int) -> BalanceResponse:
    """Current credit balance of an organization."""
    _require_organization(organization_id)
    return BalanceResponse(
        organization_id=organization_id,
        balance=ledger.get_balance(organization_id),
    )


@router.get(
    "/organizations/{organization_id}/status",
    response={200: AccountStatusResponse, 401: ErrorResponse, 404: ErrorResponse},
    auth=service_auth,
    operation_id="getAccountStatus",
    summary="Get account status",
)
def get_status(request: HttpRequest, organization_id: int) -> AccountStatusResponse:
    """Lifecycle status, spending gate and balance of an organization."""
    bind_contextvars(**{"organization.id": str(organization_id)})
    try:
        snapshot = get_account_status(organization_id)
    except OrganizationNotFoundError as e:
        raise HttpError(404, "Organization not found") from e

    return AccountStatusResponse(
        organization_id=snapshot.organization_id,
        status=snapshot.status,
        trial_ends_at=snapshot.trial_ends_at,
        grace_period_ends_at=snapshot.grace_period_ends_at,
        spending_enabled=snapshot.spending_enabled,
        read_only_reason=snapshot.read_only_reason,
        is_comped=snapshot.is_comped,
        balance=snapshot.balance,
    )


@router.post(
    "/organizations/{organization_id}/consumptions",
    response={
        200: ConsumptionResponse,
        401: ErrorResponse,
        402: ErrorResponse,
        403: ErrorResponse,
        404: ErrorResponse,
    },
    auth=service_auth,
    operation_id="consumeCredits",
    summary="Consume credits for a metered action",
)
def consume(request: HttpRequest, organization_id: int, payload: ConsumptionRequest):
    """
    Charge credits before running a metered action.

    402 when the balance is too low, 403 when spending is disabled for the
    account. Nothing is charged in either case.
    """
    bind_contextvars(**{"organization.id": str(organization_id)})
    try:
        result = request_consumption(organization_id, payload.feature_type, payload.credit_cost)
    except OrganizationNotFoundError as e:
        raise HttpError(404, "Organization not found") from e
    except SpendingDisabledError as e:
        return 403, ErrorResponse(
            detail=e.reason or "Credit spending is disabled for this account",
            code="spending_disabled",
        )
    except InsufficientBalanceError as e:
        return 402, ErrorResponse(
            detail=f"Not enough credits: {e.balance} available, {e.requested} required",
            code="insufficient_credits",
        )

    return 200, ConsumptionResponse(
        organization_id=result.organization_id,
        feature_type=result.feature_type,
        credits_consumed=result.credits_consumed,
        balance=result.balance,
        entry_id=result.entry_id,
    )


@router.get(
    "/organizations/{organization_id}/ledger",
    response={200: LedgerHistoryResponse, 401: ErrorResponse, 404: ErrorResponse},
    auth=service_auth,
    operation_id="getLedgerHistory",
    summary="List ledger entries",
)
def get_ledger(
    request: HttpRequest,
    organization_id: int,
    params: Query[LedgerHistoryParams],
) -> LedgerHistoryResponse:
    """Ledger entries of an organization, most recent first."""
    _require_organization(organization_id)
    entries = ledger.get_ledger_history(organization_id, limit=params.limit, offset=params.offset)
    return LedgerHistoryResponse(
        entries=[_entry_to_response(entry) for entry in entries],
        balance=ledger.get_balance(organization_id),
        limit=params.limit,
        offset=params.offset,
    )


@router.post(
    "/organizations/{organization_id}/grants",
    response={201: LedgerEntryResponse, 400: ErrorResponse, 401: ErrorResponse, 404: ErrorResponse},
    auth=service_auth,
    operation_id="grantCredits",
    summary="Grant credits manually",
)
def grant(
    request: HttpRequest, organization_id: int, payload: GrantRequest
) -> tuple[int, LedgerEntryResponse]:
    """
    Grant credits outside of Stripe (support credit, goodwill).

    Repeating a request with the same idempotency key returns the original
    entry without granting again.
    """
    _require_organization(organization_id)
    try:
        entry = ledger.grant_credits(
            organization_id,
            payload.amount,
            CreditLedgerEntry.Source.MANUAL,
            payload.description,
            idempotency_key=payload.idempotency_key,
        )
    except LedgerError as e:
        raise HttpError(400, str(e)) from e

    return 201, _entry_to_response(entry)
