"""
Organizations services - tenant provisioning.

Signup creates records in several independent places (tenancy, identity,
roles, the credit ledger). The mandatory part runs as a saga so a failure
anywhere leaves no half-created tenant behind; the optional part is
best-effort and only logged when it fails.
"""

from dataclasses import dataclass
from datetime import datetime

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone
from django.utils.text import slugify

from apps.accounts.models import UserRole
from apps.accounts.services import (
    assign_role,
    create_owner_user,
    delete_user,
    link_member,
    revoke_role,
    unlink_member,
)
from apps.billing import ledger
from apps.billing.constants import TRIAL_CREDITS, TRIAL_LENGTH
from apps.billing.lifecycle import record_initial_status
from apps.billing.models import CreditLedgerEntry
from apps.core.logging import get_logger
from apps.core.saga import Saga, SagaContext, SagaStep, SagaStepError
from apps.organizations.exceptions import ProvisioningStepError, ProvisioningValidationError
from apps.organizations.models import FeatureConfiguration, Organization

logger = get_logger(__name__)

MIN_BUSINESS_NAME_LENGTH = 2

DEFAULT_CAPABILITIES = ["property_search", "lead_capture", "schedule_viewing"]


@dataclass(frozen=True)
class ProvisioningResult:
    organization_id: int
    slug: str
    user_id: int
    trial_ends_at: datetime | None
    warnings: tuple[str, ...] = ()


def generate_unique_slug(name: str) -> str:
    """
    URL-safe slug for a business name, unique among organizations.

    Collisions get a numeric suffix: "acme", "acme-1", "acme-2", ...
    """
    base_slug = slugify(name)
    if not base_slug:
        raise ProvisioningValidationError("Business name must contain valid characters")

    slug = base_slug
    counter = 1
    while Organization.objects.filter(slug=slug).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _validate(business_name: str, owner_email: str, contact_email: str) -> None:
    if len(business_name) < MIN_BUSINESS_NAME_LENGTH:
        raise ProvisioningValidationError(
            f"Business name must be at least {MIN_BUSINESS_NAME_LENGTH} characters"
        )
    if not slugify(business_name):
        raise ProvisioningValidationError("Business name must contain valid characters")
    for email in (owner_email, contact_email):
        try:
            validate_email(email)
        except ValidationError as e:
            raise ProvisioningValidationError(f"Invalid email format: {email}") from e


# =============================================================================
# Mandatory saga steps
# =============================================================================


def _create_organization(context: SagaContext) -> None:
    now = timezone.now()
    is_comped = context["is_comped"]
    status = Organization.AccountStatus.ACTIVE if is_comped else Organization.AccountStatus.TRIAL
    with transaction.atomic():
        context["organization"] = Organization.objects.create(
            name=context["business_name"],
            slug=generate_unique_slug(context["business_name"]),
            contact_email=context["contact_email"],
            account_status=status,
            trial_started_at=None if is_comped else now,
            trial_ends_at=None if is_comped else now + TRIAL_LENGTH,
            credit_spending_enabled=True,
            is_comped=is_comped,
        )


def _delete_organization(context: SagaContext) -> None:
    Organization.objects.filter(pk=context["organization"].pk).delete()


def _create_user(context: SagaContext) -> None:
    context["user"] = create_owner_user(context["owner_email"], name=context["owner_name"])


def _delete_user(context: SagaContext) -> None:
    delete_user(context["user"].pk)


def _assign_admin_role(context: SagaContext) -> None:
    assign_role(context["user"], UserRole.Role.ADMIN)


def _revoke_admin_role(context: SagaContext) -> None:
    revoke_role(context["user"].pk, UserRole.Role.ADMIN)


def _link_member(context: SagaContext) -> None:
    link_member(context["user"], context["organization"], role="admin")


def _unlink_member(context: SagaContext) -> None:
    unlink_member(context["user"].pk, context["organization"].pk)


PROVISIONING_STEPS = [
    SagaStep("create_organization", _create_organization, _delete_organization),
    SagaStep("create_user", _create_user, _delete_user),
    SagaStep("assign_admin_role", _assign_admin_role, _revoke_admin_role),
    SagaStep("link_member", _link_member, _unlink_member),
]


# =============================================================================
# Optional steps
# =============================================================================


def _create_feature_configuration(organization: Organization) -> None:
    FeatureConfiguration.objects.create(
        organization=organization,
        welcome_message=f"Hi! I'm the {organization.name} assistant. How can I help you today?",
        enabled_capabilities=list(DEFAULT_CAPABILITIES),
    )


def _grant_trial_credits(organization: Organization) -> None:
    ledger.grant_credits(
        organization.id,
        TRIAL_CREDITS,
        CreditLedgerEntry.Source.TRIAL,
        "Trial credits on signup",
        idempotency_key=f"signup:{organization.id}",
        metadata={"type": "trial_signup"},
    )


def _record_initial_status(organization: Organization) -> None:
    if organization.is_comped:
        reason = "New comped organization signup"
    else:
        reason = f"New organization signup - {TRIAL_LENGTH.days}-day trial started"
    record_initial_status(
        organization,
        reason,
        metadata={
            "trial_credits": TRIAL_CREDITS,
            "trial_ends_at": organization.trial_ends_at.isoformat() if organization.trial_ends_at else None,
            "is_comped": organization.is_comped,
        },
    )


OPTIONAL_STEPS = [
    ("create_feature_configuration", _create_feature_configuration),
    ("grant_trial_credits", _grant_trial_credits),
    ("record_initial_status", _record_initial_status),
]


def provision_tenant(
    business_name: str,
    owner_email: str,
    owner_name: str = "",
    contact_email: str | None = None,
    plan_name: str | None = None,
    is_comped: bool = False,
) -> ProvisioningResult:
    """
    Create a new tenant: organization, owner, admin role and membership.

    Then, best-effort: default feature configuration, trial credits and the
    initial lifecycle log entry.

    Args:
        business_name: Display name; also the source of the slug
        owner_email: Login email of the owner account
        owner_name: Display name of the owner
        contact_email: Organization contact email (defaults to owner_email)
        plan_name: Plan the signup came in for, recorded for reporting
        is_comped: Exempt the tenant from billing (starts active, no trial)

    Raises:
        ProvisioningValidationError: input is invalid; nothing was created
        ProvisioningStepError: a mandatory step failed; completed steps
            were compensated
    """
    business_name = (business_name or "").strip()
    owner_email = (owner_email or "").strip().lower()
    contact_email = (contact_email or owner_email).strip().lower()
    _validate(business_name, owner_email, contact_email)

    context: SagaContext = {
        "business_name": business_name,
        "owner_email": owner_email,
        "owner_name": (owner_name or "").strip(),
        "contact_email": contact_email,
        "is_comped": is_comped,
    }

    try:
        Saga("provision_tenant", PROVISIONING_STEPS).run(context)
    except SagaStepError as e:
        logger.error(
            "tenant_provisioning_failed",
            step=e.step,
            error=str(e.cause),
            compensation_failures=e.compensation_failures,
        )
        raise ProvisioningStepError(
            e.step, f"Provisioning failed at {e.step}: {e.cause}", cause=e.cause
        ) from e

    organization: Organization = context["organization"]
    user = context["user"]

    warnings = []
    for name, step in OPTIONAL_STEPS:
        try:
            with transaction.atomic():
                step(organization)
        except Exception as e:
            logger.warning(
                "tenant_provisioning_optional_step_failed",
                organization_id=organization.id,
                step=name,
                error=str(e),
            )
            warnings.append(name)

    logger.info(
        "tenant_provisioned",
        organization_id=organization.id,
        slug=organization.slug,
        user_id=user.id,
        plan_name=plan_name,
        is_comped=is_comped,
    )

    return ProvisioningResult(
        organization_id=organization.id,
        slug=organization.slug,
        user_id=user.id,
        trial_ends_at=organization.trial_ends_at,
        warnings=tuple(warnings),
    )
