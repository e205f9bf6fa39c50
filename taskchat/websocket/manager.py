"""WebSocket session management with presence and room support.

This module provides WebSocket connection management with:
- A Session per socket, owning a bounded outbound queue and writer task
- Presence tracking (one live session per user, last connect wins)
- Room membership for personal, task-list and task rooms
- Online-user broadcasts on every connect and disconnect
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import Request, WebSocket

from ..config import settings
from .messages import MessageType, build_message
from .notifier import EventRouter, NotificationEvent
from .presence import PresenceRegistry
from .rooms import (
    RoomMembership,
    get_task_room,
    get_user_room,
    get_user_tasks_room,
)

logger = logging.getLogger(__name__)


class Session:
    """
    One live WebSocket.

    Outbound messages are enqueued without blocking; a writer task sends them
    in enqueue order. When the queue is full the message is dropped.
    """

    def __init__(
        self,
        websocket: WebSocket,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        queue_size: Optional[int] = None,
    ) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.session_id = session_id or uuid.uuid4().hex
        self.connected_at = datetime.utcnow()
        self.dropped_messages = 0
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=queue_size or settings.ws_outbound_queue_size
        )
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<Session(id={self.session_id}, user={self.user_id})>"

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Messages waiting in the outbound queue."""
        return self._queue.qsize()

    def send(self, message: dict[str, Any]) -> bool:
        """
        Enqueue a message for this session.

        Returns:
            True if enqueued, False if the session is closed or its queue is full
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped_messages += 1
            logger.warning(
                f"Outbound queue full for session {self.session_id} "
                f"(user={self.user_id}), dropping {message.get('type')}"
            )
            return False
        return True

    def start(self) -> None:
        """Start the writer task. Must be called from a running event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Send to session {self.session_id} failed: {e}")
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every enqueued message has been handed to the socket."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop accepting messages and stop the writer. Unsent messages are discarded."""
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None


class ConnectionManager:
    """
    Owns the presence registry, room membership and live sessions of one process.

    Registry and room mutations are plain synchronous methods; the only
    awaits are socket accept/close and writer shutdown.
    """

    def __init__(self, queue_size: Optional[int] = None) -> None:
        """Initialize the connection manager."""
        self.presence = PresenceRegistry()
        self.rooms = RoomMembership()
        # session_id -> session
        self._sessions: dict[str, Session] = {}
        self.router = EventRouter(self.presence, self.rooms, self._sessions)
        self._queue_size = queue_size

    @property
    def total_connections(self) -> int:
        """Get total number of active sessions."""
        return len(self._sessions)

    @property
    def total_rooms(self) -> int:
        """Get total number of active rooms."""
        return self.rooms.total_rooms

    def session_for_user(self, user_id: str) -> Optional[Session]:
        """The user's live session, if any."""
        session_id = self.presence.lookup(str(user_id))
        return self._sessions.get(session_id) if session_id else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register(self, websocket: WebSocket, user_id: Optional[str] = None) -> Session:
        """
        Create and index a session.

        An identified session becomes its user's live session and joins the
        user's personal room. An unidentified session is tracked but unbound.
        """
        user_id = str(user_id).strip() if user_id else None
        session = Session(websocket, user_id=user_id or None, queue_size=self._queue_size)
        self._sessions[session.session_id] = session

        if session.user_id:
            self.presence.record_connection(session.user_id, session.session_id)
            self.rooms.join(session.session_id, get_user_room(session.user_id))

        return session

    def unregister(self, session_id: str) -> Optional[Session]:
        """Remove a session from rooms, presence and the session index."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        self.rooms.drop_session(session_id)
        self.presence.remove_connection(session_id)
        return session

    async def connect(self, websocket: WebSocket, user_id: Optional[str] = None) -> Session:
        """
        Accept a WebSocket connection and register it.

        The new session receives a CONNECTED acknowledgement, then every
        session receives the updated online-users list.
        """
        await websocket.accept()

        session = self.register(websocket, user_id)
        session.start()

        logger.info(
            f"WebSocket connected: session={session.session_id}, user={session.user_id}, "
            f"total_connections={self.total_connections}"
        )

        session.send(build_message(MessageType.CONNECTED, {
            "session_id": session.session_id,
            "user_id": session.user_id,
            "connected_at": session.connected_at,
        }))
        self.broadcast_online_users()

        return session

    async def disconnect(self, session: Session) -> None:
        """Clean up all state for a session and tell the others who is still online."""
        if self.unregister(session.session_id) is None:
            return

        await session.close()

        logger.info(
            f"WebSocket disconnected: session={session.session_id}, user={session.user_id}, "
            f"total_connections={self.total_connections}"
        )
        self.broadcast_online_users()

    async def close_all(self) -> None:
        """Close every session; used at shutdown."""
        for session in list(self._sessions.values()):
            self.unregister(session.session_id)
            await session.close()
            try:
                await session.websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Closing session {session.session_id} failed: {e}")

    def broadcast_online_users(self) -> int:
        """Push the current list of connected user ids to every session."""
        return self.router.emit(NotificationEvent(
            kind=MessageType.ONLINE_USERS_LIST,
            payload=self.presence.snapshot_connected_users(),
        ))

    # ------------------------------------------------------------------
    # Room protocol
    # ------------------------------------------------------------------

    def join_task_room(self, session: Session, task_id: str) -> bool:
        room = get_task_room(task_id)
        joined = self.rooms.join(session.session_id, room)
        logger.debug(f"Session {session.session_id} (user={session.user_id}) joined {room}")
        return joined

    def leave_task_room(self, session: Session, task_id: str) -> bool:
        room = get_task_room(task_id)
        left = self.rooms.leave(session.session_id, room)
        logger.debug(f"Session {session.session_id} (user={session.user_id}) left {room}")
        return left

    def join_user_tasks_room(self, session: Session) -> bool:
        """Join the session's own user's task-list room. Unbound sessions cannot."""
        if not session.user_id:
            logger.debug(f"Session {session.session_id} has no user, ignoring user tasks room join")
            return False
        return self.rooms.join(session.session_id, get_user_tasks_room(session.user_id))

    def leave_user_tasks_room(self, session: Session) -> bool:
        if not session.user_id:
            return False
        return self.rooms.leave(session.session_id, get_user_tasks_room(session.user_id))


def get_connection_manager(request: Request) -> ConnectionManager:
    """FastAPI dependency returning the process's ConnectionManager."""
    return request.app.state.connection_manager
