"""
Trial expiry reconciliation.

Trials are not expired by a scheduler: whenever a professional's account
is loaded we check whether the stored trial is past its end date and, if
so, flip the account to free and run the resource downgrade.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ...models import ProfessionalAccount, SubscriptionStatus
from ...plan_limits import FreePlan, plan_state_fields
from ...trial import is_expired
from .downgrade_service import DowngradeReport, ResourceDowngradeEnforcer
from .repository import AccountRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    account: ProfessionalAccount
    updates: dict = field(default_factory=dict)
    downgrade_required: bool = False
    downgrade: Optional[DowngradeReport] = None

    @property
    def changed(self) -> bool:
        return bool(self.updates)


def reconcile_trial(account: ProfessionalAccount, now: datetime) -> ReconcileResult:
    """
    Decide what an expired trial requires, without touching the store.

    Premium always wins: a premium account is never flipped to free here,
    whatever its trial fields say.
    """
    trial = account.trial
    if not account.is_professional or trial is None or trial.ends_at is None:
        return ReconcileResult(account=account)
    if account.subscription_status == SubscriptionStatus.PREMIUM.value:
        return ReconcileResult(account=account)
    if not (trial.active and is_expired(trial.ends_at, now)):
        return ReconcileResult(account=account)

    updated = account.model_copy(
        update={
            "subscription_status": SubscriptionStatus.FREE.value,
            "trial": trial.model_copy(update={"active": False}),
        }
    )
    return ReconcileResult(account=updated, updates=plan_state_fields(FreePlan()), downgrade_required=True)


class TrialExpiryReconciler:
    """Applies `reconcile_trial` decisions; safe to run from concurrent sessions"""

    def __init__(self, db):
        self.accounts = AccountRepository(db)
        self.enforcer = ResourceDowngradeEnforcer(db)

    def run(self, account: ProfessionalAccount, now: datetime) -> ReconcileResult:
        result = reconcile_trial(account, now)
        if not result.changed:
            return result

        logger.info(f"⏰ Trial expired for {account.id} (ended {account.trial.ends_at}), switching to free")
        self.accounts.set(account.id, result.updates, merge=True)

        if result.downgrade_required:
            result.downgrade = self.enforcer.enforce(result.account, now)
            logger.info(
                f"📉 Downgrade for {account.id}: {result.downgrade.services_disabled} services disabled, "
                f"{result.downgrade.clients_count} clients, {result.downgrade.appointments_count} appointments"
            )
        return result


def sweep_expired_trials(db, now: datetime) -> dict:
    """Reconcile every professional account; for periodic runs outside a session"""
    reconciler = TrialExpiryReconciler(db)
    checked = expired = failed = 0
    for account in reconciler.accounts.list_professionals():
        checked += 1
        try:
            if reconciler.run(account, now).changed:
                expired += 1
        except Exception as e:
            failed += 1
            logger.error(f"❌ Trial reconciliation failed for {account.id}: {e}")
    logger.info(f"✅ Trial sweep finished: checked={checked}, expired={expired}, failed={failed}")
    return {"checked": checked, "expired": expired, "failed": failed}
