"""
Real-time notification fan-out.

Frames are JSON objects {"event": <name>, "data": {...}}. Every payload is
stamped with a fresh server-side timestamp at send time; a timestamp
already present in the payload is overwritten.

A connection whose send fails is unregistered and the remaining
deliveries continue. Notifying a user with no live connections is a no-op.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from adminlog.realtime.registry import ConnectionRegistry, LiveConnection

logger = logging.getLogger(__name__)

# Server -> client events
EVENT_CONNECTED = "connected"
EVENT_PONG = "pong"
EVENT_NOTIFICATION = "notification"
EVENT_NOTIFICATION_READ = "notification:read"
EVENT_ALL_READ = "notifications:all-read"
EVENT_NOTIFICATION_DELETED = "notification:deleted"
EVENT_ADMIN_NOTIFICATION = "admin-notification"

# Client -> server events
EVENT_PING = "ping"


def server_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_frame(event: str, payload: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    data = dict(payload or {})
    data["timestamp"] = server_timestamp()
    return {"event": event, "data": data}


class NotificationHub:
    """Delivers events to live connections resolved through a registry."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def _deliver(self, targets: Iterable[LiveConnection], event: str, payload: Optional[dict]) -> int:
        delivered = 0
        for live in list(targets):
            # Stamp per send so a slow fan-out never reuses an earlier time
            frame = build_frame(event, payload)
            try:
                await live.connection.send_json(frame)
            except Exception as e:
                logger.warning(
                    "Dropping connection after failed send",
                    extra={
                        "connection_id": live.connection_id,
                        "user_id": live.user_id,
                        "event": event,
                        "error": str(e),
                    },
                )
                self.registry.unregister(live.connection_id)
                continue
            delivered += 1
        return delivered

    async def send(self, live: LiveConnection, event: str, payload: Optional[dict] = None) -> bool:
        """Send directly to one connection (handshake replies, pong)."""
        return await self._deliver([live], event, payload) == 1

    async def notify_user(self, user_id: str, event: str, payload: Optional[dict] = None) -> int:
        """Deliver to every live connection of one user. Returns deliveries."""
        return await self._deliver(self.registry.connections_of(str(user_id)), event, payload)

    async def notify_role_group(self, role: str, event: str, payload: Optional[dict] = None) -> int:
        return await self._deliver(self.registry.members_of(role), event, payload)

    async def notify_all(self, event: str, payload: Optional[dict] = None) -> int:
        return await self._deliver(self.registry.all_connections(), event, payload)

    def is_online(self, user_id: str) -> bool:
        return self.registry.is_online(str(user_id))

    def online_stats(self) -> dict[str, int]:
        return self.registry.stats()
