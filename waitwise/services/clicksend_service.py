"""
ClickSend SMS Service
Sends customer notifications (queue turn, order ready) through the ClickSend REST API
"""

import logging
from typing import Optional, Protocol

import httpx

from ..config import CLICKSEND_API_KEY, CLICKSEND_FROM_NUMBER, CLICKSEND_USERNAME

logger = logging.getLogger(__name__)

CLICKSEND_API_URL = "https://rest.clicksend.com/v3/sms/send"


class SmsConfigurationError(Exception):
    """Raised when SMS credentials are missing"""


class SmsDeliveryError(Exception):
    """Raised when ClickSend does not accept a message"""


class SmsSender(Protocol):
    async def send(self, to_phone: str, body: str) -> None: ...


class ClicksendSender:
    """SmsSender backed by ClickSend (HTTP basic auth with username + API key)"""

    def __init__(
        self,
        username: Optional[str] = None,
        api_key: Optional[str] = None,
        from_number: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username if username is not None else CLICKSEND_USERNAME
        self.api_key = api_key if api_key is not None else CLICKSEND_API_KEY
        self.from_number = from_number if from_number is not None else CLICKSEND_FROM_NUMBER
        self.transport = transport

    async def send(self, to_phone: str, body: str) -> None:
        if not self.username or not self.api_key or not self.from_number:
            raise SmsConfigurationError("Clicksend API credentials are not configured.")

        payload = {
            "messages": [
                {
                    "source": "waitwise",
                    "body": body,
                    "to": to_phone,
                    "from": self.from_number,
                }
            ]
        }

        logger.info(f"🚀 Sending SMS via ClickSend to {to_phone}")
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    CLICKSEND_API_URL,
                    auth=(self.username, self.api_key),
                    json=payload,
                    timeout=10.0,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ ClickSend request failed: {str(e)}")
            raise SmsDeliveryError(f"Clicksend API Error: {e}") from e

        logger.info(f"📡 ClickSend API response status: {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success or data.get("response_code") != "SUCCESS":
            message = data.get("response_msg") or "Unknown error"
            logger.error(f"❌ ClickSend API error: {data or response.text}")
            raise SmsDeliveryError(f"Clicksend API Error: {message}")

        logger.info(f"✅ SMS accepted by ClickSend for {to_phone}")


def get_sms_sender() -> SmsSender:
    """Dependency injection for the SMS sender"""
    return ClicksendSender()
