"""
Django Ninja API configuration.
"""

from django.http import HttpRequest
from ninja import NinjaAPI

from apps.accounts.api import router as auth_router
from apps.billing.api import router as billing_router

api = NinjaAPI(
    title="OpsDeck API",
    version="1.0.0",
    description="OpsDeck tenant signup, billing and account confirmation.",
    openapi_extra={
        "info": {
            "contact": {"name": "API Support"},
        },
        "tags": [
            {
                "name": "auth",
                "description": "Email confirmation for provisioned accounts",
            },
            {
                "name": "billing",
                "description": "Signup and add-on checkout via Stripe",
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
                    "bearerFormat": "JWT",
                    "description": "Session JWT signed with JWT_SECRET. Include as: Authorization: Bearer <token>",
                }
            }
        },
    },
)

api.add_router("/auth", auth_router)
api.add_router("/billing", billing_router)


@api.get("/health", tags=["health"], operation_id="healthCheck", summary="Health check")
def health_check(request: HttpRequest) -> dict:
    """Health check endpoint for load balancer."""
    return {"status": "ok"}
