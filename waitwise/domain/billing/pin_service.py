"""
Pin Payments Service
Card vault (customers) and charges against the Pin Payments REST API
"""

import logging
from typing import Optional

import httpx

from ...config import PIN_API_ENVIRONMENT, PIN_CURRENCY, PIN_SECRET_KEY

logger = logging.getLogger(__name__)

PIN_LIVE_HOST = "https://api.pinpayments.com"
PIN_TEST_HOST = "https://test-api.pinpayments.com"


class PinPaymentsError(Exception):
    """Raised when Pin Payments rejects a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_pin_host(environment: Optional[str] = None) -> str:
    """Live host only when the environment is explicitly 'live'"""
    environment = environment if environment is not None else PIN_API_ENVIRONMENT
    return PIN_LIVE_HOST if environment == "live" else PIN_TEST_HOST


class PinPaymentsClient:
    """Thin async client for the Pin Payments API (HTTP basic auth, secret key as username)"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        environment: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else PIN_SECRET_KEY
        self.base_url = get_pin_host(environment)
        self.transport = transport

    async def _request(self, method: str, path: str, payload: dict) -> tuple[httpx.Response, dict]:
        if not self.secret_key:
            raise PinPaymentsError("Pin Payments secret key not set.")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, transport=self.transport, timeout=15.0
            ) as client:
                response = await client.request(
                    method, path, json=payload, auth=(self.secret_key, "")
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Pin Payments {method} {path} failed: {str(e)}")
            raise PinPaymentsError(f"Pin Payments request failed: {e}") from e

        logger.info(f"📡 Pin Payments {method} {path} -> {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            data = {}
        return response, data

    async def create_customer(self, card_token: str, email: str) -> str:
        """Create a customer from a card token; returns the customer token"""
        response, data = await self._request(
            "POST", "/1/customers", {"email": email, "card_token": card_token}
        )
        if not response.is_success:
            message = data.get("error_description") or "Failed to create customer."
            logger.error(f"❌ Pin customer creation failed: {message}")
            raise PinPaymentsError(message, response.status_code)

        customer_token = data["response"]["token"]
        logger.info(f"✅ Pin customer created: {customer_token}")
        return customer_token

    async def update_customer_card(self, customer_token: str, card_token: str) -> None:
        """Replace the card stored on an existing customer"""
        response, data = await self._request(
            "PUT", f"/1/customers/{customer_token}", {"card_token": card_token}
        )
        if not response.is_success:
            message = data.get("error_description") or "Failed to update card."
            logger.error(f"❌ Pin card update failed for {customer_token}: {message}")
            raise PinPaymentsError(message, response.status_code)

        logger.info(f"✅ Card updated for Pin customer {customer_token}")

    async def create_charge(
        self, customer_token: str, amount: int, shop_id: str, email: Optional[str] = None
    ) -> dict:
        """
        Charge a stored customer.

        Returns:
            {"success": bool, "charge_token": str | None, "error": str | None}
        """
        payload = {
            "email": email,
            "description": f"Monthly usage charge for shop {shop_id}",
            "amount": amount,
            "currency": PIN_CURRENCY,
            "customer_token": customer_token,
            "metadata": {"shop_id": shop_id},
        }
        response, data = await self._request("POST", "/1/charges", payload)

        if not response.is_success:
            error = data.get("error_description") or "An unknown payment error occurred."
            logger.error(f"❌ Charge failed for {customer_token}: {error}")
            return {"success": False, "charge_token": None, "error": error}

        charge_token = data["response"]["token"]
        logger.info(f"✅ Charge {charge_token} created for shop {shop_id}")
        return {"success": True, "charge_token": charge_token, "error": None}


def get_pin_client() -> PinPaymentsClient:
    """Dependency injection for the Pin Payments client"""
    return PinPaymentsClient()
