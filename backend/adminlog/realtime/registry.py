"""
Live connection registry.

Maps each accepted WebSocket connection to the user and role it
authenticated as. The hub only talks to the ConnectionRegistry protocol, so
the in-memory implementation can be replaced by a shared backing store in a
multi-process deployment without touching call sites.

The in-memory registry is mutated only from the accept/disconnect handlers
on the event loop and needs no locking.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class LiveConnection:
    connection_id: str
    connection: Any
    user_id: str
    role: str


class ConnectionRegistry(Protocol):
    def register(self, connection_id: str, connection: Any, user_id: str, role: str) -> LiveConnection:
        ...

    def unregister(self, connection_id: str) -> Optional[LiveConnection]:
        ...

    def connections_of(self, user_id: str) -> list[LiveConnection]:
        ...

    def members_of(self, role: str) -> list[LiveConnection]:
        ...

    def all_connections(self) -> list[LiveConnection]:
        ...

    def is_online(self, user_id: str) -> bool:
        ...

    def stats(self) -> dict[str, int]:
        ...


class InMemoryConnectionRegistry:
    """
    Process-local registry.

    Empty per-user and per-role sets are removed as soon as their last
    connection goes away.
    """

    def __init__(self):
        self._connections: dict[str, LiveConnection] = {}
        self._by_user: dict[str, set[str]] = {}
        self._by_role: dict[str, set[str]] = {}

    def register(self, connection_id: str, connection: Any, user_id: str, role: str) -> LiveConnection:
        if connection_id in self._connections:
            self.unregister(connection_id)

        role = (role or "user").lower()
        live = LiveConnection(
            connection_id=connection_id,
            connection=connection,
            user_id=str(user_id),
            role=role,
        )
        self._connections[connection_id] = live
        self._by_user.setdefault(live.user_id, set()).add(connection_id)
        self._by_role.setdefault(role, set()).add(connection_id)
        return live

    def unregister(self, connection_id: str) -> Optional[LiveConnection]:
        live = self._connections.pop(connection_id, None)
        if live is None:
            return None
        self._discard(self._by_user, live.user_id, connection_id)
        self._discard(self._by_role, live.role, connection_id)
        return live

    @staticmethod
    def _discard(index: dict[str, set[str]], key: str, connection_id: str) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del index[key]

    def _resolve(self, connection_ids: Optional[set[str]]) -> list[LiveConnection]:
        if not connection_ids:
            return []
        return [self._connections[cid] for cid in sorted(connection_ids) if cid in self._connections]

    def connections_of(self, user_id: str) -> list[LiveConnection]:
        return self._resolve(self._by_user.get(str(user_id)))

    def members_of(self, role: str) -> list[LiveConnection]:
        return self._resolve(self._by_role.get((role or "").lower()))

    def all_connections(self) -> list[LiveConnection]:
        return list(self._connections.values())

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(str(user_id)))

    def stats(self) -> dict[str, int]:
        return {
            "totalUsers": len(self._by_user),
            "totalAdmins": len(self._by_role.get("admin", ())),
            "totalRetailers": len(self._by_role.get("retailer", ())),
            "totalConnections": len(self._connections),
        }
