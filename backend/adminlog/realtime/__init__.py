"""
Real-time delivery over WebSocket.

Provides:
- ConnectionRegistry / InMemoryConnectionRegistry: live connection maps
- NotificationHub: per-user, per-role and broadcast fan-out
"""

from adminlog.realtime.hub import NotificationHub, build_frame
from adminlog.realtime.registry import (
    ConnectionRegistry,
    InMemoryConnectionRegistry,
    LiveConnection,
)

__all__ = [
    "ConnectionRegistry",
    "InMemoryConnectionRegistry",
    "LiveConnection",
    "NotificationHub",
    "build_frame",
]
