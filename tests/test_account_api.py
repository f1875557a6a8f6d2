from datetime import datetime, timedelta, timezone

from conftest import professional_doc
from agendfy.database import APPOINTMENTS_COLLECTION, SERVICES_COLLECTION, USERS_COLLECTION
from agendfy.trial import utcnow


def seed_services(db, count: int) -> None:
    for i in range(count):
        db.collection(SERVICES_COLLECTION).document(f"svc_{i}").set(
            {"professionalId": "pro_1", "status": "active", "createdAt": utcnow() - timedelta(days=30 - i)}
        )


def test_register_professional_starts_trial(client, db):
    response = client.post("/account/professional", json={"name": "Ana", "businessName": "Studio Ana"})

    assert response.status_code == 200
    body = response.json()
    assert body["created"] is True
    assert body["plan"] == "premium_trial"
    assert body["hasPremiumAccess"] is True
    assert body["trial"]["daysRemaining"] == 3

    doc = db.doc(USERS_COLLECTION, "pro_1")
    assert doc["email"] == "pro@example.com"
    assert doc["subscriptionStatus"] == "premium_trial"
    assert doc["trial"]["endsAt"] - doc["trial"]["startedAt"] == timedelta(days=3)
    assert "subscription" not in doc


def test_register_is_idempotent(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(status="premium", trial_active=False))

    response = client.post("/account/professional", json={"name": "Ana"})

    assert response.json()["created"] is False
    assert db.doc(USERS_COLLECTION, "pro_1")["subscriptionStatus"] == "premium"


def test_session_load_reconciles_expired_trial(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(ends_at=utcnow() - timedelta(days=1)))
    seed_services(db, 4)

    response = client.get("/account/session")

    assert response.status_code == 200
    body = response.json()
    assert body["reconciled"] is True
    assert body["plan"] == "free"
    assert body["hasPremiumAccess"] is False
    assert body["limits"]["services"] == 3
    assert body["features"]["financial"] is False
    assert body["account"]["subscriptionStatus"] == "free"
    assert db.doc(USERS_COLLECTION, "pro_1")["planTransition"]["servicesDisabled"] == 1

    assert client.get("/account/session").json()["reconciled"] is False


def test_session_load_survives_reconciliation_failure(client, db, monkeypatch):
    from agendfy.domain.accounts.trial_reconciler import TrialExpiryReconciler

    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(ends_at=utcnow() - timedelta(days=1)))

    def broken_run(self, account, now):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(TrialExpiryReconciler, "run", broken_run)

    response = client.get("/account/session")

    assert response.status_code == 200
    assert response.json()["reconciled"] is False


def test_session_for_unknown_user(client):
    assert client.get("/account/session").status_code == 404


def test_usage_counts_against_free_limits(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(status="free", trial_active=False))
    seed_services(db, 2)
    now = utcnow()
    for i, phone in enumerate(["+551", "+551", "+552"]):
        db.collection(APPOINTMENTS_COLLECTION).document(f"apt_{i}").set(
            {"professionalId": "pro_1", "clientWhatsapp": phone, "date": now}
        )
    db.collection(APPOINTMENTS_COLLECTION).document("apt_old").set(
        {"professionalId": "pro_1", "clientWhatsapp": "+553", "date": datetime(2000, 1, 1, tzinfo=timezone.utc)}
    )

    body = client.get("/account/usage").json()

    assert body["hasPremiumAccess"] is False
    assert body["services"] == {"current": 2, "limit": 3, "remaining": 1, "canAdd": True}
    assert body["clients"] == {"current": 3, "limit": 15, "remaining": 12, "canAdd": True}
    assert body["appointmentsPerMonth"]["current"] == 3


def test_limit_check_rejects_fourth_service_on_free_plan(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(status="free", trial_active=False))
    seed_services(db, 3)

    response = client.post("/account/limits/services/check")

    assert response.status_code == 403
    assert response.json()["code"] == "plan_limit_exceeded"


def test_limit_check_allows_premium(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(status="premium", trial_active=False))
    seed_services(db, 10)

    body = client.post("/account/limits/services/check").json()

    assert body["allowed"] is True
    assert body["limit"] is None


def test_limit_check_unknown_resource(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc())
    assert client.post("/account/limits/invoices/check").status_code == 422


def test_excess_resources_and_notice_seen(client, db):
    db.collection(USERS_COLLECTION).document("pro_1").set(professional_doc(status="free", trial_active=False))
    seed_services(db, 5)

    body = client.get("/account/excess-resources").json()
    assert body["hasExcess"] is True
    assert body["excessServices"] == 2

    assert client.post("/account/plan-transition/seen").json() == {"success": True}
    assert db.doc(USERS_COLLECTION, "pro_1")["planTransition"]["notified"] is True
