"""
Organizations API endpoints.

Tenant provisioning, called by the signup flow with the internal service token.
"""

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.accounts.services import UserAlreadyExistsError
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.core.security import ServiceTokenAuth
from apps.organizations.exceptions import ProvisioningStepError, ProvisioningValidationError
from apps.organizations.schemas import ProvisionRequest, ProvisionResponse
from apps.organizations.services import provision_tenant

logger = get_logger(__name__)

router = Router(tags=["organizations"])
service_auth = ServiceTokenAuth()


@router.post(
    "/provision",
    response={
        201: ProvisionResponse,
        400: ErrorResponse,
        401: ErrorResponse,
        409: ErrorResponse,
        500: ErrorResponse,
    },
    auth=service_auth,
    operation_id="provisionOrganization",
    summary="Provision a new organization",
)
def provision(request: HttpRequest, payload: ProvisionRequest) -> tuple[int, ProvisionResponse]:
    """
    Create an organization with its owner account and start its trial.

    Either the whole tenant is created or nothing is: a failure in any
    mandatory step rolls back the steps before it.
    """
    try:
        result = provision_tenant(
            business_name=payload.business_name,
            owner_email=payload.owner_email,
            owner_name=payload.owner_name,
            contact_email=payload.contact_email,
            plan_name=payload.plan_name,
            is_comped=payload.is_comped,
        )
    except ProvisioningValidationError as e:
        raise HttpError(400, str(e)) from e
    except ProvisioningStepError as e:
        if isinstance(e.cause, UserAlreadyExistsError):
            raise HttpError(409, "An account already exists for this email.") from e
        raise HttpError(500, "Failed to create organization.") from e

    return 201, ProvisionResponse(
        organization_id=result.organization_id,
        slug=result.slug,
        user_id=result.user_id,
        trial_ends_at=result.trial_ends_at,
        warnings=list(result.warnings),
    )
