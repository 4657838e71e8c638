"""
Organizations API schemas - request/response types for provisioning.
"""

from datetime import datetime

from ninja import Field, Schema


class ProvisionRequest(Schema):
    """Signup form submitted by the marketing site."""

    business_name: str = Field(..., min_length=1, max_length=255)
    owner_email: str = Field(..., max_length=254)
    owner_name: str = Field(default="", max_length=255)
    contact_email: str | None = Field(default=None, max_length=254)
    plan_name: str | None = None
    is_comped: bool = False


class ProvisionResponse(Schema):
    """The tenant that was created."""

    organization_id: int
    slug: str
    user_id: int
    trial_ends_at: datetime | None
    warnings: list[str] = []
