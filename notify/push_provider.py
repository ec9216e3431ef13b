"""Push provider (OneSignal) REST client used by the push relay endpoint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

NOTIFICATIONS_URL = "https://onesignal.com/api/v1/notifications"
DEFAULT_SEND_DELAY = timedelta(seconds=60)
NOTIFICATION_TTL_SECONDS = 3600


def default_send_after(now: datetime | None = None) -> str:
    """ISO-8601 UTC instant one minute from *now*."""
    now = now or datetime.now(timezone.utc)
    return (now + DEFAULT_SEND_DELAY).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_payload(
    app_id: str,
    subscription_id: str,
    title: str,
    message: str,
    send_after: str,
) -> dict[str, Any]:
    return {
        "app_id": app_id,
        "include_subscription_ids": [subscription_id],
        "headings": {"en": title},
        "contents": {"en": message},
        "send_after": send_after,
        "android_visibility": 1,
        "ttl": NOTIFICATION_TTL_SECONDS,
    }


class PushProviderClient:
    """Single best-effort POST to the provider; no retry, no queueing."""

    def __init__(
        self,
        api_key: str,
        url: str = NOTIFICATIONS_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._url = url
        self._transport = transport

    async def create_notification(self, payload: dict[str, Any]) -> tuple[int, Any]:
        """POST *payload*; return the provider's status code and decoded body."""
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                self._url,
                json=payload,
                headers={
                    "Authorization": f"Basic {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}
        return response.status_code, data
