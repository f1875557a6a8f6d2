"""Webhook service - applies verified Stripe events to account documents"""

import logging
from datetime import datetime
from typing import Optional

from ...cache import receipts
from ...config import WEBHOOK_RECEIPT_TTL_SECONDS
from ...trial import utcnow
from ..accounts.downgrade_service import enforce_downgrade
from ..accounts.repository import AccountRepository
from .stripe_service import StripeBillingService, as_plain_dict
from .subscription_sync import (
    get_professional_id,
    object_id,
    mark_subscription_deleted,
    require_professional_id,
    safe_timestamp,
    upsert_subscription,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"

HANDLED_EVENTS = (
    CHECKOUT_COMPLETED,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_UPDATED,
    SUBSCRIPTION_DELETED,
    INVOICE_PAYMENT_SUCCEEDED,
)


def _receipt_key(event_id: str) -> str:
    return f"webhook_processed:{event_id}"


def was_processed(event_id: Optional[str]) -> bool:
    """True when a receipt for this event id is stored (Redis optional)"""
    if not event_id:
        return False
    return receipts.exists(_receipt_key(event_id))


def record_processed(event_id: Optional[str]) -> None:
    """Only called after the event's writes have completed"""
    if event_id:
        receipts.mark(_receipt_key(event_id), WEBHOOK_RECEIPT_TTL_SECONDS)


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription:
        return object_id(subscription)
    # Newer API versions nest the link under parent.subscription_details
    parent = as_plain_dict(invoice.get("parent")) or {}
    details = as_plain_dict(parent.get("subscription_details")) or {}
    return details.get("subscription")


class WebhookService:
    """Maps provider event types to idempotent account writes"""

    def __init__(self, db, provider: StripeBillingService):
        self.db = db
        self.accounts = AccountRepository(db)
        self.provider = provider

    async def process_event(self, event: dict) -> dict:
        event_type = event.get("type")
        event_id = event.get("id")
        obj = as_plain_dict((event.get("data") or {}).get("object")) or {}
        # Event time, not wall-clock time: a redelivered event writes identical values
        occurred_at = safe_timestamp(event.get("created")) or utcnow()

        logger.info(f"🔔 Processing webhook id={event_id} type={event_type}")

        if event_type == CHECKOUT_COMPLETED:
            professional_id = require_professional_id(obj, event_type, event_id)
            subscription_id = object_id(obj.get("subscription"))
            if not subscription_id:
                logger.info(f"ℹ️ Checkout session {obj.get('id')} has no subscription, nothing to apply")
                return {"handled": False, "eventType": event_type}
            subscription = await self.provider.retrieve_subscription(subscription_id)
            return self._apply_subscription(professional_id, subscription, event_type, occurred_at)

        if event_type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            professional_id = require_professional_id(obj, event_type, event_id)
            return self._apply_subscription(professional_id, obj, event_type, occurred_at)

        if event_type == INVOICE_PAYMENT_SUCCEEDED:
            subscription_id = _invoice_subscription_id(obj)
            if not subscription_id:
                logger.info("ℹ️ No subscription in invoice - one-time payment")
                return {"handled": False, "eventType": event_type}
            subscription = await self.provider.retrieve_subscription(subscription_id)
            professional_id = require_professional_id(subscription, event_type, event_id)
            return self._apply_subscription(professional_id, subscription, event_type, occurred_at)

        if event_type == SUBSCRIPTION_DELETED:
            professional_id = require_professional_id(obj, event_type, event_id)
            mark_subscription_deleted(self.accounts, professional_id, occurred_at)
            self._enforce_limits(professional_id, occurred_at)
            return {"handled": True, "eventType": event_type, "professionalId": professional_id}

        logger.info(f"ℹ️ Unhandled event type: {event_type}")
        return {"handled": False, "eventType": event_type}

    def _apply_subscription(
        self, professional_id: str, subscription: dict, event_type: str, occurred_at: datetime
    ) -> dict:
        update = upsert_subscription(self.accounts, professional_id, subscription, occurred_at)
        if not update["subscription"]["active"]:
            self._enforce_limits(professional_id, occurred_at)
        return {
            "handled": True,
            "eventType": event_type,
            "professionalId": professional_id,
            "subscriptionStatus": update["subscriptionStatus"],
        }

    def _enforce_limits(self, professional_id: str, occurred_at: datetime) -> None:
        """A webhook that leaves the account without premium tightens its limits"""
        report = enforce_downgrade(self.db, self.accounts.get(professional_id), occurred_at)
        if report:
            logger.info(
                f"📉 Downgrade after webhook for {professional_id}: "
                f"{report.services_disabled} services disabled"
            )


def event_professional_id(event: dict) -> Optional[str]:
    """Best-effort professionalId for log context (no provider calls)"""
    return get_professional_id(as_plain_dict((event.get("data") or {}).get("object")))
