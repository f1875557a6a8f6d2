"""Account service - registration, session load and plan usage for professionals"""

import logging
from datetime import datetime
from typing import Optional

from ...models import ProfessionalAccount, ServiceStatus, SubscriptionStatus, UserRole
from ...plan_limits import (
    PLAN_FEATURES,
    account_has_premium,
    can_add_more,
    current_month_range,
    ensure_can_add,
    get_remaining_count,
    limits_for_account,
    resolve_plan_state,
)
from ...trial import get_trial_info, start_trial
from .downgrade_service import ResourceDowngradeEnforcer, count_distinct_clients
from .repository import AccountRepository, AppointmentRepository, ServiceRepository
from .schemas import LimitedResource, RegisterProfessionalRequest
from .trial_reconciler import TrialExpiryReconciler, reconcile_trial

logger = logging.getLogger(__name__)


def account_view(account: ProfessionalAccount, now: datetime, reconciled: bool = False) -> dict:
    """The per-request account context handed to the web client"""
    has_premium = account_has_premium(account)
    return {
        "account": account.model_dump(by_alias=True, mode="json"),
        "plan": resolve_plan_state(account).name,
        "hasPremiumAccess": has_premium,
        "limits": limits_for_account(account).to_dict(),
        "features": PLAN_FEATURES["premium" if has_premium else "free"],
        "trial": get_trial_info(account, now),
        "reconciled": reconciled,
    }


class AccountService:
    """Service layer for professional account lifecycle"""

    def __init__(self, db):
        self.db = db
        self.accounts = AccountRepository(db)
        self.services = ServiceRepository(db)
        self.appointments = AppointmentRepository(db)
        self.reconciler = TrialExpiryReconciler(db)
        self.enforcer = ResourceDowngradeEnforcer(db)

    def register_professional(
        self, uid: str, email: Optional[str], data: RegisterProfessionalRequest, now: datetime
    ) -> dict:
        """Create the account document with a fresh trial; an existing document is left unchanged"""
        fields = {
            "email": email or data.email,
            "role": UserRole.PROFESSIONAL.value,
            "name": data.name,
            "businessName": data.businessName,
            "subscriptionStatus": SubscriptionStatus.PREMIUM_TRIAL.value,
            "trial": start_trial(now).to_document(),
            "createdAt": now,
        }
        created = self.accounts.create(uid, fields)
        if created:
            logger.info(f"✅ Registered professional {uid}, trial ends {fields['trial']['endsAt']}")
        else:
            logger.info(f"ℹ️ Account {uid} already exists, registration skipped")

        return {"created": created, **account_view(self.accounts.get(uid), now)}

    def load_session(self, account: ProfessionalAccount, now: datetime) -> dict:
        """
        Session load: reconcile an expired trial before building the view.
        A failed reconciliation does not block sign-in; the stored view is
        returned and the next load tries again.
        """
        try:
            result = self.reconciler.run(account, now)
        except Exception as e:
            logger.error(f"❌ Trial reconciliation failed for {account.id}: {e}")
            return account_view(account, now)
        return account_view(result.account, now, reconciled=result.changed)

    def _effective_account(self, account: ProfessionalAccount, now: datetime) -> ProfessionalAccount:
        # An expired trial counts as free even before a session load has persisted it
        return reconcile_trial(account, now).account

    def _current_counts(self, account: ProfessionalAccount, now: datetime) -> dict:
        services = self.services.list_by_professional(account.id)
        appointments = self.appointments.list_by_professional(account.id)
        month_start, month_end = current_month_range(now)
        return {
            LimitedResource.SERVICES.value: sum(1 for s in services if s.status == ServiceStatus.ACTIVE.value),
            LimitedResource.CLIENTS.value: count_distinct_clients(appointments),
            LimitedResource.APPOINTMENTS_PER_MONTH.value: self.appointments.count_between(
                account.id, month_start, month_end
            ),
        }

    def get_usage(self, account: ProfessionalAccount, now: datetime) -> dict:
        effective = self._effective_account(account, now)
        limits = limits_for_account(effective)
        usage = {"hasPremiumAccess": account_has_premium(effective)}
        for resource, current in self._current_counts(account, now).items():
            limit = limits.limit_for(resource)
            usage[resource] = {
                "current": current,
                "limit": limit,
                "remaining": get_remaining_count(current, limit),
                "canAdd": can_add_more(current, limit),
            }
        return usage

    def ensure_can_create(self, account: ProfessionalAccount, resource: LimitedResource, now: datetime) -> dict:
        """Create-time guard; raises PlanLimitExceeded when the plan limit is reached"""
        effective = self._effective_account(account, now)
        limits = limits_for_account(effective)
        current = self._current_counts(account, now)[resource.value]
        ensure_can_add(resource.value, current, limits)
        limit = limits.limit_for(resource.value)
        return {
            "resource": resource.value,
            "allowed": True,
            "current": current,
            "limit": limit,
            "remaining": get_remaining_count(current, limit),
        }

    def check_excess_resources(self, account: ProfessionalAccount, now: datetime) -> dict:
        return self.enforcer.check_excess_resources(self._effective_account(account, now))

    def mark_transition_seen(self, account: ProfessionalAccount) -> dict:
        self.enforcer.mark_notification_seen(account.id)
        logger.info(f"👀 Plan transition notice seen by {account.id}")
        return {"success": True}
