"""Notification capability and push-subscription state.

Both objects are created by the entry point and handed to the components that
need them; nothing here is process-global.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urlsplit

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class Permission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


PermissionSource = str | Callable[[], str] | Callable[[], Awaitable[str]]


@dataclass
class NotificationRuntime:
    """What the hosting environment allows the poller to do.

    *permission* may be a fixed value or a (sync or async) callable that is
    consulted before every reminder, so a revoked permission takes effect on
    the next tick.
    """

    supports_notifications: bool = True
    origin: str = "http://localhost"
    permission: PermissionSource = Permission.GRANTED.value

    @property
    def is_secure_context(self) -> bool:
        parts = urlsplit(self.origin)
        return parts.scheme == "https" or (parts.hostname or "") in _LOOPBACK_HOSTS

    async def check_permission(self) -> str:
        source = self.permission
        if callable(source):
            result = source()
            if inspect.isawaitable(result):
                result = await result
            source = result
        return source.value if isinstance(source, Permission) else str(source)


@dataclass
class PushInitState:
    """Push subscription bootstrap state.

    ``subscription_id`` is set once the device is registered with the push
    provider; until then server-side push scheduling is skipped.
    """

    initialized: bool = False
    subscription_id: str | None = None

    def mark_subscribed(self, subscription_id: str) -> None:
        self.subscription_id = subscription_id
        self.initialized = True

    @property
    def ready(self) -> bool:
        return self.initialized and bool(self.subscription_id)
