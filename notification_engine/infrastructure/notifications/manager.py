"""Connection registry for live notification websockets."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Protocol, Set
from uuid import uuid4

from notification_engine.infrastructure.security import resolve_token_subject

logger = logging.getLogger(__name__)


class LiveConnection(Protocol):
    async def accept(self) -> None: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ConnectionHandle:
    """A single accepted websocket owned by ``user_id``."""

    def __init__(self, user_id: str, websocket: LiveConnection) -> None:
        self.id = str(uuid4())
        self.user_id = user_id
        self.websocket = websocket
        self.groups: Set[str] = set()

    def __repr__(self) -> str:
        return f"ConnectionHandle(id={self.id!r}, user_id={self.user_id!r})"


class NotificationConnectionManager:
    """Manage active websocket connections grouped by user and broadcast group."""

    def __init__(self) -> None:
        self._connections: DefaultDict[str, Set[ConnectionHandle]] = defaultdict(set)
        self._groups: DefaultDict[str, Set[ConnectionHandle]] = defaultdict(set)

    def authenticate(self, token: str | None) -> str:
        """Return the user id for ``token`` or raise ``ValueError``."""

        return resolve_token_subject(token)

    async def connect(self, user_id: str, websocket: LiveConnection) -> ConnectionHandle:
        """Accept the websocket connection and register it for ``user_id``."""

        await websocket.accept()
        handle = ConnectionHandle(user_id, websocket)
        self._connections[user_id].add(handle)
        return handle

    def disconnect(self, handle: ConnectionHandle) -> None:
        """Remove ``handle`` from its user pool and every group it joined."""

        connections = self._connections.get(handle.user_id)
        if connections is not None:
            connections.discard(handle)
            if not connections:
                self._connections.pop(handle.user_id, None)
        for group_id in list(handle.groups):
            members = self._groups.get(group_id)
            if members is None:
                continue
            members.discard(handle)
            if not members:
                self._groups.pop(group_id, None)
        handle.groups.clear()

    def join_group(self, handle: ConnectionHandle, group_id: str) -> None:
        self._groups[group_id].add(handle)
        handle.groups.add(group_id)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def connected_user_ids(self) -> list[str]:
        return list(self._connections)

    async def emit(self, handle: ConnectionHandle, event_type: str, payload: Any) -> bool:
        """Send one event to ``handle``; a broken socket is dropped from the registry."""

        try:
            await handle.websocket.send_json({"type": event_type, "data": payload})
        except Exception as exc:  # starlette raises several transport errors on closed sockets
            logger.info("Dropping live connection %s: %s", handle.id, exc)
            self.disconnect(handle)
            return False
        return True

    async def broadcast(self, group_id: str, event_type: str, payload: Any) -> int:
        """Send an event to every member of ``group_id`` and return the delivered count."""

        delivered = 0
        for handle in list(self._groups.get(group_id, set())):
            if await self.emit(handle, event_type, payload):
                delivered += 1
        return delivered

    async def broadcast_all(self, event_type: str, payload: Any) -> int:
        delivered = 0
        for handles in list(self._connections.values()):
            for handle in list(handles):
                if await self.emit(handle, event_type, payload):
                    delivered += 1
        return delivered


__all__ = ["ConnectionHandle", "LiveConnection", "NotificationConnectionManager"]
