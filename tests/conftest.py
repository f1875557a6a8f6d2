import copy
import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional

import pytest
from fastapi.testclient import TestClient
from google.api_core.exceptions import AlreadyExists, NotFound

from agendfy.auth import get_current_claims, get_current_uid
from agendfy.database import get_db
from agendfy.domain.billing import webhook_service
from agendfy.domain.billing.router import get_webhook_secret
from agendfy.domain.billing.stripe_service import get_billing_provider
from agendfy.main import app
from agendfy.webhook_security import SIGNATURE_HEADER, create_webhook_signature

WEBHOOK_SECRET = "whsec_test_secret"

_OPS = {
    "==": lambda a, b: a == b,
    ">=": lambda a, b: a is not None and a >= b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    "<": lambda a, b: a is not None and a < b,
}


def _deep_merge(target: dict, fields: dict) -> None:
    for key, value in fields.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[dict]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, store: Dict[str, dict], doc_id: str):
        self._store = store
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self._store.get(self.id))

    def set(self, fields: dict, merge: bool = False) -> None:
        if merge and self.id in self._store:
            _deep_merge(self._store[self.id], fields)
        else:
            self._store[self.id] = copy.deepcopy(fields)

    def create(self, fields: dict) -> None:
        if self.id in self._store:
            raise AlreadyExists(f"Document already exists: {self.id}")
        self._store[self.id] = copy.deepcopy(fields)

    def update(self, fields: dict) -> None:
        if self.id not in self._store:
            raise NotFound(f"No document to update: {self.id}")
        for path, value in fields.items():
            node = self._store[self.id]
            *parents, leaf = path.split(".")
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = copy.deepcopy(value)


class FakeQuery:
    def __init__(self, store: Dict[str, dict], filters=(), limit: Optional[int] = None):
        self._store = store
        self._filters = list(filters)
        self._limit = limit

    def where(self, field: str, op: str, value: Any) -> "FakeQuery":
        return FakeQuery(self._store, self._filters + [(field, op, value)], self._limit)

    def limit(self, count: int) -> "FakeQuery":
        return FakeQuery(self._store, self._filters, count)

    def stream(self) -> Iterator[FakeSnapshot]:
        matches = [
            FakeSnapshot(doc_id, data)
            for doc_id, data in list(self._store.items())
            if all(_OPS[op](data.get(field), value) for field, op, value in self._filters)
        ]
        if self._limit is not None:
            matches = matches[: self._limit]
        return iter(matches)


class FakeCollection(FakeQuery):
    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self._store, doc_id)


class FakeFirestore:
    """In-memory stand-in for the Firestore client (merge writes, dotted updates, simple queries)"""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self.collections.setdefault(name, {}))

    def doc(self, collection: str, doc_id: str) -> Optional[dict]:
        return copy.deepcopy(self.collections.get(collection, {}).get(doc_id))


class FakeReceiptStore:
    def __init__(self):
        self.values: Dict[str, int] = {}

    def exists(self, key: str) -> bool:
        return key in self.values

    def mark(self, key: str, ttl: int) -> bool:
        self.values[key] = ttl
        return True


class FakeBillingProvider:
    """Records calls and serves canned subscriptions/customers like the Stripe wrapper"""

    def __init__(self):
        self.subscriptions: Dict[str, dict] = {}
        self.customers: List[dict] = []
        self.calls: List[tuple] = []
        self.retrieve_error: Optional[Exception] = None
        self.checkout_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self._ids = itertools.count(1)

    def is_available(self) -> bool:
        return True

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        self.calls.append(("retrieve", subscription_id))
        if self.retrieve_error:
            raise self.retrieve_error
        return copy.deepcopy(self.subscriptions[subscription_id])

    async def create_checkout_session(self, **kwargs) -> dict:
        self.calls.append(("checkout", kwargs))
        if self.checkout_error:
            raise self.checkout_error
        session_id = f"cs_test_{next(self._ids)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    async def schedule_cancellation(self, subscription_id: str) -> dict:
        self.calls.append(("schedule_cancellation", subscription_id))
        if self.cancel_error:
            raise self.cancel_error
        subscription = self.subscriptions.setdefault(subscription_id, {"id": subscription_id})
        subscription["cancel_at_period_end"] = True
        subscription["cancel_at"] = subscription.get("current_period_end") or 1735689600
        return copy.deepcopy(subscription)

    async def cancel_subscription(self, subscription_id: str) -> dict:
        self.calls.append(("cancel", subscription_id))
        self.subscriptions[subscription_id]["status"] = "canceled"
        return copy.deepcopy(self.subscriptions[subscription_id])

    async def list_customers(self, email: str, limit: int = 10) -> List[dict]:
        return [copy.deepcopy(c) for c in self.customers if c.get("email") == email][:limit]

    async def list_subscriptions(self, customer_id: str, status: Optional[str] = None, limit: int = 10) -> List[dict]:
        return [
            copy.deepcopy(s)
            for s in self.subscriptions.values()
            if s.get("customer") == customer_id and (status is None or s.get("status") == status)
        ][:limit]


def make_subscription(
    subscription_id: str = "sub_1",
    professional_id: Optional[str] = "pro_1",
    status: str = "active",
    customer: str = "cus_1",
    current_period_end: Any = 1735689600,
    created: int = 1733011200,
    **extra,
) -> dict:
    metadata = {"professionalId": professional_id} if professional_id else {}
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "current_period_end": current_period_end,
        "created": created,
        "cancel_at_period_end": False,
        "cancel_at": None,
        "metadata": metadata,
        **extra,
    }


def make_event(event_type: str, obj: dict, event_id: str = "evt_1", created: int = 1733097600) -> dict:
    return {"id": event_id, "object": "event", "type": event_type, "created": created, "data": {"object": obj}}


def professional_doc(
    status: str = "premium_trial",
    trial_active: bool = True,
    ends_at: Optional[datetime] = None,
    **extra,
) -> dict:
    ends_at = ends_at or datetime(2030, 1, 4, tzinfo=timezone.utc)
    return {
        "email": "pro@example.com",
        "role": "professional",
        "name": "Ana",
        "businessName": "Studio Ana",
        "subscriptionStatus": status,
        "trial": {"active": trial_active, "startedAt": ends_at - timedelta(days=3), "endsAt": ends_at},
        **extra,
    }


@pytest.fixture()
def db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture()
def provider() -> FakeBillingProvider:
    return FakeBillingProvider()


@pytest.fixture()
def receipts(monkeypatch: pytest.MonkeyPatch) -> FakeReceiptStore:
    fake = FakeReceiptStore()
    monkeypatch.setattr(webhook_service, "receipts", fake)
    return fake


@pytest.fixture()
def auth_user() -> Dict[str, Any]:
    """Mutable identity used by the overridden auth dependencies"""
    return {"uid": "pro_1", "email": "pro@example.com"}


@pytest.fixture()
def client(db: FakeFirestore, provider: FakeBillingProvider, receipts: FakeReceiptStore, auth_user) -> Iterator[TestClient]:
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_billing_provider] = lambda: provider
    app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET
    app.dependency_overrides[get_current_uid] = lambda: auth_user["uid"]
    app.dependency_overrides[get_current_claims] = lambda: {"uid": auth_user["uid"], "email": auth_user["email"]}
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()
        app.dependency_overrides.clear()


def post_webhook(client: TestClient, event: dict, secret: str = WEBHOOK_SECRET, signature: Optional[str] = None):
    payload = json.dumps(event).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers[SIGNATURE_HEADER] = signature if signature is not None else create_webhook_signature(secret, payload)
    return client.post("/webhooks/stripe", content=payload, headers=headers)
