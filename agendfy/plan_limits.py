"""
Plan limits and entitlement policy.

Pure functions only: callers resolve the trial flag (and the clock, when
they need it) before asking what a plan allows.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from .domain.billing.errors import PlanLimitExceeded
from .models import ProfessionalAccount, SubscriptionStatus

# None means unlimited
UNLIMITED = None

FREE_PLAN_LIMITS = {"services": 3, "clients": 15, "appointmentsPerMonth": 30}

FREE_CALENDAR_VIEWS = frozenset({"day"})
PREMIUM_CALENDAR_VIEWS = frozenset({"day", "week", "month"})

PLAN_FEATURES = {
    "free": {"financial": False, "analytics": False, "bulkActions": False},
    "premium": {"financial": True, "analytics": True, "bulkActions": True},
}

RESOURCE_LABELS = {
    "services": "active services",
    "clients": "clients",
    "appointmentsPerMonth": "appointments this month",
}


@dataclass(frozen=True)
class PlanLimits:
    services: Optional[int]
    clients: Optional[int]
    appointments_per_month: Optional[int]
    calendar_views: frozenset

    def limit_for(self, resource: str) -> Optional[int]:
        return {
            "services": self.services,
            "clients": self.clients,
            "appointmentsPerMonth": self.appointments_per_month,
        }[resource]

    def to_dict(self) -> dict:
        return {
            "services": self.services,
            "clients": self.clients,
            "appointmentsPerMonth": self.appointments_per_month,
            "calendarViews": sorted(self.calendar_views),
        }


PREMIUM_LIMITS = PlanLimits(
    services=UNLIMITED,
    clients=UNLIMITED,
    appointments_per_month=UNLIMITED,
    calendar_views=PREMIUM_CALENDAR_VIEWS,
)

FREE_LIMITS = PlanLimits(
    services=FREE_PLAN_LIMITS["services"],
    clients=FREE_PLAN_LIMITS["clients"],
    appointments_per_month=FREE_PLAN_LIMITS["appointmentsPerMonth"],
    calendar_views=FREE_CALENDAR_VIEWS,
)


def has_premium_access(status: Optional[str], trial_active: Optional[bool]) -> bool:
    """Premium, or a trial whose flag is still set. Anything else is free."""
    if status == SubscriptionStatus.PREMIUM.value:
        return True
    return status == SubscriptionStatus.PREMIUM_TRIAL.value and trial_active is True


def resource_limits(has_premium: bool) -> PlanLimits:
    return PREMIUM_LIMITS if has_premium else FREE_LIMITS


def account_has_premium(account: Optional[ProfessionalAccount]) -> bool:
    if account is None:
        return False
    return has_premium_access(account.subscription_status, account.trial_active)


def limits_for_account(account: Optional[ProfessionalAccount]) -> PlanLimits:
    return resource_limits(account_has_premium(account))


def can_access_feature(account: Optional[ProfessionalAccount], feature: str) -> bool:
    plan = "premium" if account_has_premium(account) else "free"
    return PLAN_FEATURES[plan].get(feature, False)


def can_use_calendar_view(limits: PlanLimits, view: str) -> bool:
    return view in limits.calendar_views


def can_add_more(current_count: int, limit: Optional[int]) -> bool:
    if limit is UNLIMITED:
        return True
    return current_count < limit


def get_remaining_count(current_count: int, limit: Optional[int]) -> Optional[int]:
    """Remaining capacity; None for unlimited plans"""
    if limit is UNLIMITED:
        return None
    return max(0, limit - current_count)


def ensure_can_add(resource: str, current_count: int, limits: PlanLimits) -> None:
    """Reject a create that would go past the plan limit for `resource`"""
    limit = limits.limit_for(resource)
    if can_add_more(current_count, limit):
        return
    label = RESOURCE_LABELS.get(resource, resource)
    raise PlanLimitExceeded(
        f"You've reached your plan limit of {limit} {label}. Please upgrade to add more.",
        details={"resource": resource, "limit": limit, "current": current_count},
    )


def current_month_range(now: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing `now`"""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = start + relativedelta(months=1) - timedelta(microseconds=1)
    return start, end


# Explicit plan variant; the store keeps the two-field shape
# (subscriptionStatus + trial.active) for compatibility with the web client.
@dataclass(frozen=True)
class FreePlan:
    name = "free"


@dataclass(frozen=True)
class TrialPlan:
    ends_at: Optional[datetime]
    name = "premium_trial"


@dataclass(frozen=True)
class PremiumPlan:
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool = False
    name = "premium"


PlanState = Union[FreePlan, TrialPlan, PremiumPlan]


def resolve_plan_state(account: ProfessionalAccount) -> PlanState:
    """Premium wins over any trial fields; a trial counts only while its flag is set"""
    if account.subscription_status == SubscriptionStatus.PREMIUM.value:
        subscription = account.subscription
        return PremiumPlan(
            current_period_end=subscription.current_period_end if subscription else None,
            cancel_at_period_end=subscription.cancel_at_period_end if subscription else False,
        )
    if account.subscription_status == SubscriptionStatus.PREMIUM_TRIAL.value and account.trial_active:
        return TrialPlan(ends_at=account.trial.ends_at)
    return FreePlan()


def plan_state_fields(state: PlanState) -> dict:
    """Serialize a plan variant to the stored merge shape"""
    if isinstance(state, PremiumPlan):
        return {"subscriptionStatus": SubscriptionStatus.PREMIUM.value}
    if isinstance(state, TrialPlan):
        return {"subscriptionStatus": SubscriptionStatus.PREMIUM_TRIAL.value, "trial": {"active": True}}
    return {"subscriptionStatus": SubscriptionStatus.FREE.value, "trial": {"active": False}}
