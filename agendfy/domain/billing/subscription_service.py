"""Subscription service - checkout, cancellation and operator reconciliation"""

import logging
from typing import Optional

import stripe

from ...config import FRONTEND_URL, STRIPE_PRICE_ID
from ...models import ProfessionalAccount, UserRole
from ...trial import utcnow
from ..accounts.repository import AccountRepository
from .errors import (
    AccountNotFound,
    BillingError,
    InactiveSubscription,
    Misconfigured,
    MissingMetadata,
    PermissionDenied,
    ProcessingFailure,
)
from .schemas import CancelRequest, CheckoutRequest
from .stripe_service import StripeBillingService
from .subscription_sync import get_professional_id, safe_timestamp, upsert_subscription

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Service for subscription management"""

    def __init__(self, db, provider: StripeBillingService, price_id: Optional[str] = None):
        self.accounts = AccountRepository(db)
        self.provider = provider
        self.price_id = STRIPE_PRICE_ID if price_id is None else price_id

    async def create_checkout_session(self, request: CheckoutRequest, caller: ProfessionalAccount) -> dict:
        """Create a Stripe checkout session for a professional"""
        account = caller if caller.id == request.userId else self.accounts.get(request.userId)
        stored_role = account.role if account else None
        if request.role != UserRole.PROFESSIONAL.value or stored_role != UserRole.PROFESSIONAL.value:
            logger.warning(
                f"⚠️ Checkout refused for {request.userId}: role={request.role}, stored role={stored_role}"
            )
            raise PermissionDenied("Only professionals can subscribe")

        if not self.provider.is_available():
            raise Misconfigured("Stripe is not configured. Please contact support.")

        if not self.price_id:
            logger.error("❌ STRIPE_PRICE_ID not configured")
            raise Misconfigured(
                "Stripe Price ID not configured. Please set STRIPE_PRICE_ID environment variable."
            )

        try:
            session = await self.provider.create_checkout_session(
                price_id=self.price_id,
                customer_email=request.email,
                professional_id=request.userId,
                business_name=request.businessName or "",
                success_url=f"{FRONTEND_URL}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{FRONTEND_URL}/dashboard/subscription",
            )
        except stripe.AuthenticationError as e:
            logger.error(f"❌ Stripe rejected the API key: {e}")
            raise Misconfigured(
                "Invalid Stripe API key. Please check your STRIPE_SECRET_KEY configuration."
            ) from e
        except stripe.InvalidRequestError as e:
            logger.error(f"❌ Stripe rejected the checkout request: {e}")
            raise BillingError(f"Stripe configuration error: {e.user_message or e}") from e
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe checkout failed: {e}")
            raise ProcessingFailure("Failed to create checkout session", e.user_message or str(e)) from e

        logger.info(f"✅ Created checkout session for {request.userId}: {session.get('id')}")
        return {"sessionId": session.get("id"), "url": session.get("url")}

    async def cancel_subscription(self, request: CancelRequest, caller: ProfessionalAccount) -> dict:
        """
        Schedule cancellation at period end. Only the cancel flags are
        mirrored here; the status change arrives later through the
        customer.subscription.updated / deleted webhooks.
        """
        account = self.accounts.get(request.userId)
        if account is None:
            raise AccountNotFound("User not found")

        owned_id = account.subscription.stripe_subscription_id if account.subscription else None
        if owned_id != request.subscriptionId and caller.role != UserRole.CEO.value:
            logger.warning(
                f"⚠️ {caller.id} tried to cancel {request.subscriptionId}, which is not the subscription of {request.userId}"
            )
            raise PermissionDenied("This subscription does not belong to your account")

        subscription = await self.provider.schedule_cancellation(request.subscriptionId)
        cancel_at = subscription.get("cancel_at")

        self.accounts.set(
            request.userId,
            {
                "subscription": {
                    "cancelAtPeriodEnd": True,
                    "cancelAt": safe_timestamp(cancel_at),
                },
                "updatedAt": utcnow(),
            },
            merge=True,
        )

        logger.info(f"✅ Subscription {request.subscriptionId} set to cancel at period end for {request.userId}")
        return {"success": True, "message": "Subscription canceled successfully", "cancelAt": cancel_at}

    async def sync_by_email(self, email: str) -> dict:
        """
        Operator sync: find the active subscriptions of every customer with
        this email, cancel duplicates (keeping the newest) and apply the
        newest one to the account registered with the same email.
        """
        customers = await self.provider.list_customers(email, limit=10)
        if not customers:
            raise AccountNotFound("No Stripe customer found with this email")

        active_subscriptions = []
        for customer in customers:
            active_subscriptions.extend(
                await self.provider.list_subscriptions(customer["id"], status="active", limit=10)
            )
        if not active_subscriptions:
            raise AccountNotFound("No active subscription found")

        active_subscriptions.sort(key=lambda s: s.get("created") or 0, reverse=True)
        keep, duplicates = active_subscriptions[0], active_subscriptions[1:]
        for duplicate in duplicates:
            logger.warning(f"⚠️ Canceling duplicate subscription {duplicate['id']} (keeping {keep['id']})")
            await self.provider.cancel_subscription(duplicate["id"])

        account = self.accounts.find_by_email(email)
        if account is None:
            raise AccountNotFound("User not found")

        update = upsert_subscription(self.accounts, account.id, keep, utcnow())
        return {
            "success": True,
            "message": "Subscription synced successfully",
            "userId": account.id,
            "subscriptionId": keep["id"],
            "status": update["subscriptionStatus"],
            "canceledDuplicates": len(duplicates),
        }

    async def recover_by_email(self, email: str) -> dict:
        """
        Operator recovery for a subscription that was paid but never
        applied (for example a webhook that kept failing).
        """
        customers = await self.provider.list_customers(email, limit=1)
        if not customers:
            raise AccountNotFound("No Stripe customer found with this email")
        customer = customers[0]

        subscriptions = await self.provider.list_subscriptions(customer["id"], limit=10)
        if not subscriptions:
            raise AccountNotFound("No subscription found")
        subscription = max(subscriptions, key=lambda s: s.get("created") or 0)

        professional_id = get_professional_id(subscription)
        if not professional_id:
            logger.error(f"❌ Subscription {subscription.get('id')} has no professionalId metadata")
            raise MissingMetadata(
                "professionalId not found in subscription metadata",
                details={"subscriptionId": subscription.get("id")},
            )

        if self.accounts.get(professional_id) is None:
            raise AccountNotFound("User not found")

        if subscription.get("status") != "active":
            raise InactiveSubscription(
                "Subscription is not active", details={"subscriptionStatus": subscription.get("status")}
            )

        update = upsert_subscription(self.accounts, professional_id, subscription, utcnow())
        logger.info(f"✅ Subscription recovered for {professional_id}")
        return {
            "success": True,
            "message": "Subscription activated successfully",
            "userId": professional_id,
            "subscriptionId": subscription["id"],
            "status": update["subscriptionStatus"],
            "canceledDuplicates": 0,
        }


def ensure_self_or_ceo(account: ProfessionalAccount, user_id: str) -> None:
    """Users may only act on their own subscription; the CEO may act on any"""
    if account.id != user_id and account.role != UserRole.CEO.value:
        raise PermissionDenied("You can only manage your own subscription")
