"""SMS alerts for new orders through an HTTP SMS gateway."""

import re
from pathlib import Path
from typing import Any, Protocol

import httpx

from ..config import SmsSettings
from ..errors import NotificationError
from ..logging_config import get_logger

logger = get_logger(__name__)

SMS_API_URL = "http://sms.smsnotifygh.com/smsapi"

# Gateway response code -> (success, description)
RESPONSE_CODES: dict[str, tuple[bool, str]] = {
    "1000": (True, "Message submitted successfully"),
    "1002": (False, "SMS sending failed"),
    "1003": (False, "Insufficient balance"),
    "1004": (False, "Invalid API key"),
    "1005": (False, "Invalid phone number"),
    "1006": (False, "Invalid Sender ID"),
    "1007": (True, "Message scheduled for later delivery"),
    "1008": (False, "Empty message"),
}


class INotifier(Protocol):
    """Best-effort alerting channel."""

    async def notify(self, text: str) -> Any:
        """Deliver text; raises NotificationError on failure."""
        ...


class SmsNotifier:
    """Sends a text message to the configured recipient.

    Settings are re-read from the settings file on every call unless passed
    explicitly, so they can be changed without a restart.
    """

    def __init__(
        self,
        settings: SmsSettings | None = None,
        settings_path: str | Path | None = None,
        client: httpx.AsyncClient | None = None,
        api_url: str = SMS_API_URL,
        timeout: float = 10.0,
    ):
        self._settings = settings
        self._settings_path = settings_path
        self._client = client
        self._api_url = api_url
        self._timeout = timeout

    async def notify(self, text: str, recipient: str | None = None) -> dict:
        settings = self._settings or SmsSettings.load(self._settings_path)
        to = recipient or settings.recipient
        if not (settings.api_key and settings.sender and to):
            raise NotificationError("SMS config missing or incomplete.")

        params = {
            "key": settings.api_key,
            "to": to,
            "msg": text,
            "sender_id": settings.sender,
        }

        try:
            if self._client is not None:
                response = await self._client.get(
                    self._api_url, params=params, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._api_url, params=params)
        except httpx.HTTPError as e:
            raise NotificationError(f"SMS gateway unreachable: {e}") from e

        body = response.text
        logger.debug("SMS gateway raw response: %s", body)

        match = re.search(r"\d{4}", body)
        code = match.group(0) if match else None
        success, message = RESPONSE_CODES.get(code or "", (False, f"Unknown response: {body}"))
        if not success:
            raise NotificationError(f"SMS sending failed: {message}")

        logger.info("SMS notification sent (%s)", message)
        return {"code": code, "message": message, "raw": body}
