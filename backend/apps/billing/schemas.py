"""
Billing API schemas - request/response types for billing endpoints.
"""

from datetime import datetime

from ninja import Field, Schema


class BalanceResponse(Schema):
    """Current credit balance."""

    organization_id: int
    balance: int


class AccountStatusResponse(Schema):
    """Lifecycle state collaborators use to gate features and show banners."""

    organization_id: int
    status: str  # 'trial', 'active', 'trial_expired', 'unsubscribed', 'archived'
    trial_ends_at: datetime | None
    grace_period_ends_at: datetime | None
    spending_enabled: bool
    read_only_reason: str
    is_comped: bool
    balance: int


class ConsumptionRequest(Schema):
    """Request to charge credits for a metered action."""

    feature_type: str = Field(..., min_length=1, max_length=50)
    credit_cost: int = Field(..., gt=0)


class ConsumptionResponse(Schema):
    """Result of a successful consumption."""

    organization_id: int
    feature_type: str
    credits_consumed: int
    balance: int
    entry_id: int | None


class GrantRequest(Schema):
    """Request to grant credits manually (support, goodwill)."""

    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    idempotency_key: str | None = Field(default=None, max_length=255)


class LedgerHistoryParams(Schema):
    """Query parameters for the ledger endpoint."""

    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class LedgerEntryResponse(Schema):
    """A single credit ledger entry."""

    id: int
    amount: int
    action: str
    source: str
    description: str
    feature_type: str
    created_at: datetime


class LedgerHistoryResponse(Schema):
    """Page of ledger entries, most recent first."""

    entries: list[LedgerEntryResponse]
    balance: int
    limit: int
    offset: int
