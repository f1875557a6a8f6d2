"""
Subscription sync - the one place provider subscription state is written
onto an account document.

Webhooks and the admin sync/recover flows all go through
`upsert_subscription`, so they share the same invariants and the same
idempotent merge-write.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from ...models import SubscriptionStatus
from ..accounts.repository import AccountRepository
from .errors import InconsistentBillingState, MissingMetadata
from .stripe_service import as_plain_dict

logger = logging.getLogger(__name__)

PROFESSIONAL_ID_KEY = "professionalId"


class TimestampConversionError(ValueError):
    pass


def to_timestamp(unix_seconds: Any) -> datetime:
    """Strict conversion of provider unix seconds; raises TimestampConversionError"""
    if unix_seconds is None:
        raise TimestampConversionError("timestamp is missing")
    if isinstance(unix_seconds, bool) or not isinstance(unix_seconds, (int, float)):
        raise TimestampConversionError(f"timestamp is not a number: {unix_seconds!r}")
    if math.isnan(unix_seconds) or unix_seconds <= 0:
        raise TimestampConversionError(f"timestamp is not positive: {unix_seconds!r}")
    try:
        return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise TimestampConversionError(f"timestamp out of range: {unix_seconds!r}") from e


def safe_timestamp(unix_seconds: Any) -> Optional[datetime]:
    """Lenient conversion: malformed provider values become None, never an exception"""
    try:
        return to_timestamp(unix_seconds)
    except TimestampConversionError as e:
        if unix_seconds is not None:
            logger.warning(f"⚠️ Ignoring malformed provider timestamp: {e}")
        return None


def get_professional_id(obj: Optional[dict]) -> Optional[str]:
    metadata = (obj or {}).get("metadata") or {}
    return metadata.get(PROFESSIONAL_ID_KEY) or None


def require_professional_id(obj: Optional[dict], event_type: str, event_id: Optional[str]) -> str:
    professional_id = get_professional_id(obj)
    if not professional_id:
        logger.error(
            f"❌ No {PROFESSIONAL_ID_KEY} in metadata (event={event_type}, id={event_id}, "
            f"object={(obj or {}).get('id')})"
        )
        raise MissingMetadata(
            f"No {PROFESSIONAL_ID_KEY} in metadata",
            details={"eventType": event_type, "eventId": event_id},
        )
    return professional_id


def object_id(value: Any) -> Optional[str]:
    """Provider references are ids, or full objects when expanded"""
    if value is None or isinstance(value, str):
        return value
    return (as_plain_dict(value) or {}).get("id")


def _current_period_end(subscription: dict) -> Any:
    # Newer API versions carry the period on the subscription items instead
    value = subscription.get("current_period_end")
    if value is not None:
        return value
    items = as_plain_dict(subscription.get("items")) or {}
    data = items.get("data") or []
    if data:
        return (as_plain_dict(data[0]) or {}).get("current_period_end")
    return None


def build_subscription_update(subscription: dict, occurred_at: datetime) -> dict:
    """
    Merge fields for an account given a provider subscription.

    Any confirmed subscription state ends the trial, active or not.
    `occurred_at` is the event time, so replaying an event rewrites the
    exact same values.
    """
    subscription = as_plain_dict(subscription) or {}
    is_active = subscription.get("status") == "active"

    current_period_end = safe_timestamp(_current_period_end(subscription))
    started_at = safe_timestamp(subscription.get("created"))
    cancel_at = safe_timestamp(subscription.get("cancel_at"))

    if is_active and current_period_end is None:
        logger.error(
            f"🚨 Active subscription {subscription.get('id')} has no current_period_end "
            f"(raw={_current_period_end(subscription)!r})"
        )
        raise InconsistentBillingState(
            "Cannot persist an active subscription without currentPeriodEnd",
            details={"subscriptionId": subscription.get("id")},
        )

    plan = SubscriptionStatus.PREMIUM.value if is_active else SubscriptionStatus.FREE.value
    customer_id = object_id(subscription.get("customer"))

    return {
        "plan": plan,
        "subscriptionStatus": plan,
        "stripeCustomerId": customer_id,
        "stripeSubscriptionId": subscription.get("id"),
        "currentPeriodEnd": current_period_end,
        "subscription": {
            "active": is_active,
            "stripeCustomerId": customer_id,
            "stripeSubscriptionId": subscription.get("id"),
            "plan": SubscriptionStatus.PREMIUM.value,
            "startedAt": started_at,
            "currentPeriodEnd": current_period_end,
            "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end")),
            "cancelAt": cancel_at,
        },
        "trial": {
            "active": False,
            "endedAt": occurred_at if is_active else None,
        },
        "updatedAt": occurred_at,
    }


def upsert_subscription(
    accounts: AccountRepository, professional_id: str, subscription: dict, occurred_at: datetime
) -> dict:
    """Validate and merge-write provider subscription state onto the account"""
    update = build_subscription_update(subscription, occurred_at)
    accounts.set(professional_id, update, merge=True)
    logger.info(
        f"✅ Subscription {update['stripeSubscriptionId']} synced for {professional_id}: "
        f"status={update['subscriptionStatus']}, trial ended"
    )
    return update


def mark_subscription_deleted(
    accounts: AccountRepository, professional_id: str, occurred_at: datetime
) -> dict:
    update = {
        "plan": SubscriptionStatus.FREE.value,
        "subscriptionStatus": SubscriptionStatus.FREE.value,
        "subscription": {"active": False, "cancelAtPeriodEnd": False, "cancelAt": None},
        "updatedAt": occurred_at,
    }
    accounts.set(professional_id, update, merge=True)
    logger.info(f"✅ Subscription deleted - {professional_id} set to free")
    return update
