"""
Billing service backed by the Stripe REST API.
Stripe is called directly over HTTPS (form-encoded bodies, secret key as basic auth).
"""
import httpx
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from licitahub.core.config import settings
from licitahub.core.errors import BillingError

logger = logging.getLogger(__name__)


class BillingService:
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.api_url = settings.STRIPE_API_URL.rstrip("/")
        self.secret_key = settings.STRIPE_SECRET_KEY
        self.price_id = settings.STRIPE_PRICE_ID
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=30.0)

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if not self.secret_key:
            raise BillingError("STRIPE_SECRET_KEY not set in environment variables")

        try:
            response = await self.client.request(
                method,
                f"{self.api_url}{path}",
                data=data,
                params=params,
                auth=(self.secret_key, "")
            )
        except httpx.HTTPError as e:
            raise BillingError(f"Stripe request failed: {e}") from e

        if not response.is_success:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise BillingError(f"Stripe returned HTTP {response.status_code}: {message or response.reason_phrase}")

        return response.json()

    async def find_customer_id(self, email: str) -> Optional[str]:
        """Look up an existing Stripe customer by email"""
        result = await self._request("GET", "/customers", params={"email": email, "limit": 1})
        customers = result.get("data") or []
        return customers[0]["id"] if customers else None

    async def create_checkout_session(
        self,
        user_id: str,
        email: Optional[str],
        customer_id: Optional[str] = None
    ) -> str:
        """Create a subscription checkout session and return its URL"""
        if not self.price_id:
            raise BillingError("STRIPE_PRICE_ID not set in environment variables")

        data = {
            "mode": "subscription",
            "line_items[0][price]": self.price_id,
            "line_items[0][quantity]": 1,
            "client_reference_id": user_id,
            "success_url": f"{self.frontend_url}/success",
            "cancel_url": f"{self.frontend_url}/subscription",
        }
        if customer_id:
            data["customer"] = customer_id
        elif email:
            data["customer_email"] = email

        session = await self._request("POST", "/checkout/sessions", data=data)
        logger.info(f"Created checkout session {session.get('id')} for user {user_id}")
        return session["url"]

    async def create_portal_session(self, customer_id: str) -> str:
        """Create a self-service billing portal session and return its URL"""
        session = await self._request(
            "POST",
            "/billing_portal/sessions",
            data={"customer": customer_id, "return_url": f"{self.frontend_url}/subscription"}
        )
        return session["url"]

    async def get_subscription_status(self, customer_id: str) -> Tuple[bool, Optional[datetime]]:
        """Return (subscribed, current period end) for the customer's active subscription"""
        result = await self._request(
            "GET",
            "/subscriptions",
            params={"customer": customer_id, "status": "active", "limit": 1}
        )
        subscriptions = result.get("data") or []
        if not subscriptions:
            return False, None

        subscription = subscriptions[0]
        period_end = subscription.get("current_period_end")
        if period_end is None:
            # Newer API versions report the period on the subscription items
            items = (subscription.get("items") or {}).get("data") or []
            period_end = items[0].get("current_period_end") if items else None

        end = datetime.fromtimestamp(period_end, tz=timezone.utc).replace(tzinfo=None) if isinstance(period_end, (int, float)) else None
        return True, end
