"""Billing router - FastAPI endpoints for checkout, cancellation, webhooks and operator tools"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...auth import get_current_account, require_ceo
from ...config import STRIPE_WEBHOOK_SECRET
from ...database import get_db
from ...models import ProfessionalAccount
from ...webhook_security import verify_stripe_webhook
from .errors import BillingError, MissingMetadata
from .schemas import (
    CancelRequest,
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionEmailRequest,
    SyncSubscriptionResponse,
)
from .stripe_service import StripeBillingService, get_billing_provider
from .subscription_service import SubscriptionService, ensure_self_or_ceo
from .webhook_service import WebhookService, event_professional_id, record_processed, was_processed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])
webhooks_router = APIRouter(tags=["Webhooks"])
admin_router = APIRouter(prefix="/admin/subscriptions", tags=["Admin"])


def get_subscription_service(
    db=Depends(get_db),
    provider: StripeBillingService = Depends(get_billing_provider),
) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db, provider)


def get_webhook_service(
    db=Depends(get_db),
    provider: StripeBillingService = Depends(get_billing_provider),
) -> WebhookService:
    return WebhookService(db, provider)


def get_webhook_secret() -> str:
    return STRIPE_WEBHOOK_SECRET


# ============================================================================
# CHECKOUT / CANCELLATION
# ============================================================================


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    account: ProfessionalAccount = Depends(get_current_account),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create a Stripe checkout session"""
    ensure_self_or_ceo(account, body.userId)
    return await service.create_checkout_session(body, account)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    body: CancelRequest,
    account: ProfessionalAccount = Depends(get_current_account),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Cancel subscription at the end of the current period"""
    ensure_self_or_ceo(account, body.userId)
    return await service.cancel_subscription(body, account)


# ============================================================================
# WEBHOOKS
# ============================================================================


@webhooks_router.post("/webhooks/stripe")
@webhooks_router.post("/api/stripe-webhook")  # Alias for the URL configured in the Stripe dashboard
async def handle_stripe_webhook(
    request: Request,
    secret: str = Depends(get_webhook_secret),
    service: WebhookService = Depends(get_webhook_service),
):
    """
    Verify signature and process subscription lifecycle events.

    Responses:
      - 200 {"received": true} once the event's writes have completed
      - 400 missing/invalid signature or missing professionalId metadata
      - 500 processing failure; Stripe redelivers the event
    """
    event = await verify_stripe_webhook(request, secret)
    event_id = event.get("id")
    event_type = event.get("type")

    if was_processed(event_id):
        logger.info(f"🔄 Webhook {event_id} already processed, skipping (idempotency)")
        return {"received": True, "duplicate": True}

    try:
        result = await service.process_event(event)
    except MissingMetadata as e:
        logger.error(f"❌ {e.message} (type={event_type}, id={event_id})")
        raise
    except BillingError as e:
        logger.error(
            f"❌ Webhook processing failed: {e.code}: {e.message} "
            f"(type={event_type}, id={event_id}, professionalId={event_professional_id(event)})"
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed", "details": e.message})
    except Exception as e:
        logger.exception(f"❌ Unexpected webhook failure (type={event_type}, id={event_id}): {e}")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed", "details": str(e)})

    record_processed(event_id)
    logger.info(f"✅ Webhook {event_id} done: handled={result.get('handled')}")
    return {"received": True}


# ============================================================================
# OPERATOR TOOLS
# ============================================================================


@admin_router.post("/sync", response_model=SyncSubscriptionResponse)
async def sync_subscription(
    body: SubscriptionEmailRequest,
    admin: ProfessionalAccount = Depends(require_ceo),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Re-apply the newest active subscription for an email and cancel duplicates"""
    logger.info(f"🛠️ Subscription sync for {body.email} requested by {admin.id}")
    return await service.sync_by_email(body.email)


@admin_router.post("/recover", response_model=SyncSubscriptionResponse)
async def recover_subscription(
    body: SubscriptionEmailRequest,
    admin: ProfessionalAccount = Depends(require_ceo),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Apply a paid subscription whose webhook never landed"""
    logger.info(f"🛠️ Subscription recovery for {body.email} requested by {admin.id}")
    return await service.recover_by_email(body.email)
