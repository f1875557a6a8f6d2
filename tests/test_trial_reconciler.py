from datetime import datetime, timedelta, timezone

import pytest

from conftest import professional_doc
from agendfy.database import SERVICES_COLLECTION, USERS_COLLECTION
from agendfy.domain.accounts import trial_reconciler
from agendfy.domain.accounts.repository import AccountRepository
from agendfy.domain.accounts.trial_reconciler import TrialExpiryReconciler, reconcile_trial, sweep_expired_trials
from agendfy.models import ProfessionalAccount

NOW = datetime(2024, 6, 10, 9, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)


def account(**overrides) -> ProfessionalAccount:
    return ProfessionalAccount.from_document("pro_1", professional_doc(**overrides))


def test_expired_trial_is_flipped_to_free():
    result = reconcile_trial(account(ends_at=YESTERDAY), NOW)

    assert result.changed
    assert result.downgrade_required
    assert result.updates == {"subscriptionStatus": "free", "trial": {"active": False}}
    assert result.account.subscription_status == "free"
    assert result.account.trial.active is False
    assert result.account.trial.ends_at == YESTERDAY


@pytest.mark.parametrize("ends_at", [YESTERDAY, NOW - timedelta(days=400)])
def test_premium_is_never_overwritten_by_trial_expiry(ends_at):
    result = reconcile_trial(account(status="premium", trial_active=True, ends_at=ends_at), NOW)

    assert not result.changed
    assert result.account.subscription_status == "premium"


def test_running_trial_is_left_alone():
    assert not reconcile_trial(account(ends_at=TOMORROW), NOW).changed


def test_inactive_or_missing_trial_is_left_alone():
    assert not reconcile_trial(account(trial_active=False, status="free", ends_at=YESTERDAY), NOW).changed
    assert not reconcile_trial(ProfessionalAccount.from_document("pro_1", {"role": "professional"}), NOW).changed


def test_non_professionals_are_ignored():
    ceo = ProfessionalAccount.from_document(
        "ceo_1", {"role": "ceo", "subscriptionStatus": "premium_trial", "trial": {"active": True, "endsAt": YESTERDAY}}
    )
    assert not reconcile_trial(ceo, NOW).changed


def test_session_load_scenario_downgrades_exactly_once(db, monkeypatch):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(ends_at=YESTERDAY))
    for i in range(4):
        db.collection(SERVICES_COLLECTION).document(f"svc_{i}").set(
            {"professionalId": "pro_1", "status": "active", "createdAt": NOW - timedelta(days=10 - i)}
        )
    reconciler = TrialExpiryReconciler(db)
    calls = []
    real_enforce = reconciler.enforcer.enforce

    def counting_enforce(acct, now):
        calls.append(acct)
        return real_enforce(acct, now)

    monkeypatch.setattr(reconciler.enforcer, "enforce", counting_enforce)

    first = reconciler.run(AccountRepository(db).get("pro_1"), NOW)
    second = reconciler.run(AccountRepository(db).get("pro_1"), NOW)

    assert first.changed and not second.changed
    assert len(calls) == 1
    assert calls[0].subscription_status == "free" and calls[0].trial.active is False

    doc = db.doc(USERS_COLLECTION, "pro_1")
    assert doc["subscriptionStatus"] == "free"
    assert doc["trial"]["active"] is False
    assert doc["trial"]["endsAt"] == YESTERDAY
    assert doc["planTransition"]["servicesDisabled"] == 1
    assert db.collections[SERVICES_COLLECTION]["svc_0"]["status"] == "inactive"


def test_concurrent_sessions_converge(db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(ends_at=YESTERDAY))
    stale_view = AccountRepository(db).get("pro_1")

    TrialExpiryReconciler(db).run(stale_view, NOW)
    after_first = db.doc(USERS_COLLECTION, "pro_1")
    TrialExpiryReconciler(db).run(stale_view, NOW)

    assert db.doc(USERS_COLLECTION, "pro_1") == after_first


def test_sweep_counts_expired_and_failures(db, monkeypatch):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(ends_at=YESTERDAY))
    db.collection(USERS_COLLECTION).document("pro_2").set(professional_doc(ends_at=TOMORROW))
    db.collection(USERS_COLLECTION).document("pro_3").set(professional_doc(status="premium", ends_at=YESTERDAY))
    db.collection(USERS_COLLECTION).document("client_1").set({"role": "client"})

    assert sweep_expired_trials(db, NOW) == {"checked": 3, "expired": 1, "failed": 0}
    assert db.doc(USERS_COLLECTION, "pro_1")["subscriptionStatus"] == "free"

    db.collection(USERS_COLLECTION).document("pro_4").set(professional_doc(ends_at=YESTERDAY))

    def broken_run(self, acct, now):
        raise RuntimeError("write failed")

    monkeypatch.setattr(trial_reconciler.TrialExpiryReconciler, "run", broken_run)
    assert sweep_expired_trials(db, NOW)["failed"] == 4
