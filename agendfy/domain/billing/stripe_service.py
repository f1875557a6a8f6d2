"""Stripe service - Integration with the Stripe API"""

import asyncio
import logging
from typing import Any, Callable, Optional

import stripe

from ...config import CHECKOUT_LOCALE, STRIPE_API_TIMEOUT_SECONDS, STRIPE_SECRET_KEY
from .errors import Misconfigured, ProcessingFailure, ProviderTimeout

logger = logging.getLogger(__name__)


def as_plain_dict(obj: Any) -> Optional[dict]:
    """Convert a StripeObject (or anything dict-like) into a plain dict"""
    if obj is None or type(obj) is dict:
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return dict(obj)


class StripeBillingService:
    """Service for Stripe API operations, every call bounded by a timeout"""

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = STRIPE_SECRET_KEY if api_key is None else api_key
        self.timeout = STRIPE_API_TIMEOUT_SECONDS if timeout is None else timeout
        self.client = None

        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; billing endpoints will fail until configured")
        else:
            try:
                self.client = stripe.StripeClient(self.api_key)
                logger.info("Stripe client initialized")
            except Exception as e:
                logger.error(f"Failed to initialize Stripe client: {e}")
                self.client = None

    def is_available(self) -> bool:
        """Check if the Stripe client is available"""
        return self.client is not None

    def _require_client(self):
        if not self.client:
            raise Misconfigured(
                "Stripe is not configured. Please add STRIPE_SECRET_KEY to environment variables."
            )
        return self.client

    async def _call(self, description: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call off the event loop and give up after `self.timeout`"""
        try:
            result = await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"⏱️ Stripe call timed out after {self.timeout}s: {description}")
            raise ProviderTimeout(f"Stripe request timed out: {description}") from e
        return result

    async def _request(self, description: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Like `_call`, but any Stripe API error becomes a ProcessingFailure"""
        try:
            return await self._call(description, fn, *args, **kwargs)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe request failed ({description}): {e}")
            raise ProcessingFailure(f"Stripe request failed: {description}", e.user_message or str(e)) from e

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        """Get the full subscription object"""
        client = self._require_client()
        subscription = await self._request(
            f"retrieve subscription {subscription_id}",
            client.subscriptions.retrieve,
            subscription_id,
        )
        return as_plain_dict(subscription)

    async def create_checkout_session(
        self,
        price_id: str,
        customer_email: str,
        professional_id: str,
        business_name: str,
        success_url: str,
        cancel_url: str,
    ) -> dict:
        """
        Create a subscription checkout session.

        professionalId is stamped on both the session and the subscription
        metadata; every webhook relies on it to find the account.
        """
        client = self._require_client()
        params = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "locale": CHECKOUT_LOCALE,
            "billing_address_collection": "auto",
            "payment_method_options": {"card": {"request_three_d_secure": "automatic"}},
            "metadata": {
                "professionalId": professional_id,
                "businessName": business_name or "",
                "email": customer_email,
            },
            "subscription_data": {
                "metadata": {"professionalId": professional_id, "email": customer_email},
            },
        }
        session = await self._call("create checkout session", client.checkout.sessions.create, params=params)
        return as_plain_dict(session)

    async def schedule_cancellation(self, subscription_id: str) -> dict:
        """Cancel at the end of the current period (access is kept until then)"""
        client = self._require_client()
        subscription = await self._request(
            f"schedule cancellation {subscription_id}",
            client.subscriptions.update,
            subscription_id,
            params={"cancel_at_period_end": True},
        )
        return as_plain_dict(subscription)

    async def cancel_subscription(self, subscription_id: str) -> dict:
        """Cancel immediately"""
        client = self._require_client()
        subscription = await self._request(
            f"cancel subscription {subscription_id}",
            client.subscriptions.cancel,
            subscription_id,
        )
        return as_plain_dict(subscription)

    async def list_customers(self, email: str, limit: int = 10) -> list[dict]:
        client = self._require_client()
        customers = await self._request(
            f"list customers for {email}",
            client.customers.list,
            params={"email": email, "limit": limit},
        )
        return [as_plain_dict(c) for c in customers.data]

    async def list_subscriptions(
        self, customer_id: str, status: Optional[str] = None, limit: int = 10
    ) -> list[dict]:
        client = self._require_client()
        params = {"customer": customer_id, "limit": limit}
        if status:
            params["status"] = status
        subscriptions = await self._request(
            f"list subscriptions for {customer_id}",
            client.subscriptions.list,
            params=params,
        )
        return [as_plain_dict(s) for s in subscriptions.data]


# Singleton instance
stripe_service = StripeBillingService()


def get_billing_provider() -> StripeBillingService:
    """Dependency injection for the billing provider"""
    return stripe_service
