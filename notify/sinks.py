"""Notification sinks: where a due reminder is delivered."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel

from notify.relay_client import PushRelayClient, PushRelayError
from scheduler.runtime import PushInitState

logger = logging.getLogger(__name__)


class NotificationOptions(BaseModel):
    body: str
    icon: str | None = None
    badge: str | None = None
    tag: str | None = None
    data: dict[str, Any] = {}


class NotificationSink(ABC):
    """All sinks must inherit from this class.

    ``send`` reports success as a bool and must not raise.
    """

    name: str

    @abstractmethod
    async def send(self, title: str, options: NotificationOptions) -> bool:
        ...


class ConsoleSink(NotificationSink):
    name = "console"

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    async def send(self, title: str, options: NotificationOptions) -> bool:
        try:
            self._console.print(Panel(options.body, title=f"[bold]{title}[/]", expand=False))
        except Exception:
            logger.exception("Console notification failed", extra={"tag": options.tag})
            return False
        return True


class RelaySink(NotificationSink):
    """Deliver through the push relay so the provider shows the notification."""

    name = "relay"

    def __init__(self, relay: PushRelayClient, push_state: PushInitState):
        self._relay = relay
        self._push_state = push_state

    async def send(self, title: str, options: NotificationOptions) -> bool:
        if not self._push_state.ready:
            logger.info("Push subscription not ready, skipping relay delivery",
                        extra={"tag": options.tag})
            return False
        try:
            await self._relay.schedule_push(
                subscription_id=self._push_state.subscription_id,
                title=title,
                message=options.body,
                send_after=datetime.now(timezone.utc),
            )
        except (PushRelayError, httpx.HTTPError) as e:
            logger.warning("Relay delivery failed: %s", e, extra={"tag": options.tag})
            return False
        return True


class FallbackSink(NotificationSink):
    """Try each sink in order until one succeeds."""

    name = "fallback"

    def __init__(self, *sinks: NotificationSink):
        self._sinks = sinks

    async def send(self, title: str, options: NotificationOptions) -> bool:
        for sink in self._sinks:
            try:
                if await sink.send(title, options):
                    return True
            except Exception:
                logger.exception("Sink raised", extra={"sink": sink.name, "tag": options.tag})
        return False
