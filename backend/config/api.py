"""
Django Ninja API configuration.
"""

from django.http import HttpRequest
from ninja import NinjaAPI

from apps.billing.api import router as billing_router
from apps.organizations.api import router as organizations_router

api = NinjaAPI(
    title="Billing Ledger API",
    version="1.0.0",
    description="Credit ledger, account lifecycle and tenant provisioning for internal services.",
    openapi_extra={
        "info": {
            "contact": {"name": "API Support"},
        },
        "tags": [
            {
                "name": "billing",
                "description": "Credit balances, consumption and account status",
            },
            {
                "name": "organizations",
                "description": "Tenant provisioning",
            },
            {
                "name": "health",
                "description": "Service health and readiness checks",
            },
        ],
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "description": "Internal service token (INTERNAL_API_TOKEN). Include as: Authorization: Bearer <token>",
                }
            }
        },
    },
)

# Register routers
api.add_router("/billing", billing_router)
api.add_router("/organizations", organizations_router)


@api.get("/health", tags=["health"], operation_id="healthCheck", summary="Health check")
def health_check(request: HttpRequest) -> dict:
    """Health check endpoint for load balancer."""
    return {"status": "ok"}
