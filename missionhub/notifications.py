"""Push notifications through Firebase Cloud Messaging.

Delivery is best effort: ``notify`` never raises, it logs and reports
whether the push went out. ``send`` is the strict variant and raises
``ExternalCapabilityError``.
"""

from typing import Annotated

import httpx
from fastapi import Depends

from .config import Settings, get_settings
from .errors import ExternalCapabilityError
from .logging_config import get_logger

logger = get_logger("notifications")


class PushNotifier:
    """Sends FCM messages to device tokens."""

    def __init__(self, settings: Settings):
        self._server_key = settings.fcm_server_key
        self._url = settings.fcm_url
        self._timeout = settings.external_call_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self._server_key)

    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> None:
        """Send one push message. Raises ExternalCapabilityError on any failure."""
        if not self.enabled:
            raise ExternalCapabilityError("push", "Push notifications are not configured")

        payload = {
            "to": device_token,
            "notification": {"title": title, "body": body},
            "data": data or {},
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=payload,
                    headers={
                        "Authorization": f"key={self._server_key}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException as e:
            raise ExternalCapabilityError("push", "Push request timed out", detail=str(e))
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalCapabilityError("push", "Push request failed", detail=str(e))

        if result.get("failure"):
            error = (result.get("results") or [{}])[0].get("error", "Unknown FCM error")
            raise ExternalCapabilityError("push", "Push rejected", detail=error)

    async def notify(
        self,
        device_token: str | None,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> bool:
        """Best-effort push. Returns True if delivered to FCM."""
        if not device_token:
            return False
        if not self.enabled:
            logger.debug(f"Push skipped (not configured) | title={title}")
            return False
        try:
            await self.send(device_token, title, body, data)
        except ExternalCapabilityError as e:
            logger.warning(f"Push failed | title={title} | {e.message} | {e.detail}")
            return False
        return True


def get_notifier(settings: Annotated[Settings, Depends(get_settings)]) -> PushNotifier:
    """FastAPI dependency for the push notifier."""
    return PushNotifier(settings)


Notifier = Annotated[PushNotifier, Depends(get_notifier)]
