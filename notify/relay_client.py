"""Client for the push relay endpoint (``POST /api/schedule-push``)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx


RELAY_PATH = "/api/schedule-push"


class PushRelayError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class PushRelayClient:
    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = 30,
    ):
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def schedule_push(
        self,
        subscription_id: str,
        title: str,
        message: str,
        send_after: datetime | None = None,
    ) -> dict[str, Any]:
        """Ask the relay to have the provider deliver a push at *send_after*.

        Naive datetimes are taken as local time. Raises PushRelayError on a
        non-2xx reply; transport failures surface as httpx.HTTPError.
        """
        body: dict[str, Any] = {
            "subscriptionId": subscription_id,
            "title": title,
            "message": message,
        }
        if send_after is not None:
            body["sendAfterISO"] = _iso_utc(send_after)

        async with httpx.AsyncClient(
            base_url=self._base_url, transport=self._transport, timeout=self._timeout
        ) as client:
            resp = await client.post(RELAY_PATH, json=body)

        if resp.is_error:
            try:
                data = resp.json()
            except ValueError:
                data = {}
            detail = data.get("error") if isinstance(data, dict) else None
            raise PushRelayError(detail or "Failed to schedule push", resp.status_code)
        return resp.json()
