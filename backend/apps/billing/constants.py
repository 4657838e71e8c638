"""
Billing policy constants.

Plan allotments and lifecycle windows. Changing these affects only events
processed after the change; existing ledger entries are never rewritten.
"""

from datetime import timedelta

# Trial
TRIAL_LENGTH = timedelta(days=14)
TRIAL_CREDITS = 100

# Grace periods before archival
CANCELLATION_GRACE_PERIOD = timedelta(days=30)
TRIAL_EXPIRED_GRACE_PERIOD = timedelta(days=14)

# Credits granted per billing period, by plan name
PLAN_CREDITS: dict[str, int] = {
    "starter": 200,
    "pro": 500,
}
DEFAULT_PLAN = "starter"

# One-off credit packs sold through Checkout in payment mode
CREDIT_PACK_SIZES = (100, 500, 2000, 5000)

# User-facing read-only reasons
CANCELED_REASON = (
    "Subscription canceled. You have 30 days to reactivate before your account is archived."
)
TRIAL_EXPIRED_REASON = (
    "Your 14-day trial has ended. Subscribe to a plan to continue using all features."
)
ARCHIVED_REASON = "Account archived. Contact support to restore your account."
DISPUTE_REASON = "Account suspended due to payment dispute. Please contact support."


def plan_credits(plan_name: str | None) -> int:
    """Credits for a billing period of the given plan; unknown plans get the default."""
    return PLAN_CREDITS.get(plan_name or DEFAULT_PLAN, PLAN_CREDITS[DEFAULT_PLAN])
