"""Event fan-out router.

Turns "notify this audience about this event" into per-session enqueues.
The router never awaits a send: each session's outbound queue is drained by
its own writer task, so a notification is fire-and-forget from the caller's
point of view and can never fail the mutation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Protocol, Union
from uuid import UUID

from .messages import OUTBOUND_TYPES, MessageType, build_message
from .presence import PresenceRegistry
from .rooms import RoomKind, RoomMembership, room_name

logger = logging.getLogger(__name__)

UserId = Union[str, UUID]


class OutboundSession(Protocol):
    """What the router needs from a session: a non-blocking enqueue."""

    session_id: str

    def send(self, message: dict[str, Any]) -> bool:
        ...


class AudienceKind(str, Enum):
    ALL_CONNECTED = "all_connected"
    USERS = "users"
    ROOM = "room"


@dataclass(frozen=True)
class Audience:
    """Who a notification is for: everyone, a set of users, or one room."""

    kind: AudienceKind
    user_ids: tuple[str, ...] = ()
    room_kind: Optional[RoomKind] = None
    room_key: Optional[str] = None
    exclude_session_id: Optional[str] = None

    @classmethod
    def all_connected(cls) -> "Audience":
        return cls(kind=AudienceKind.ALL_CONNECTED)

    @classmethod
    def users(cls, user_ids: Iterable[UserId]) -> "Audience":
        return cls(kind=AudienceKind.USERS, user_ids=tuple(str(u) for u in user_ids))

    @classmethod
    def room(
        cls,
        room_kind: RoomKind,
        room_key: UserId,
        exclude_session_id: Optional[str] = None,
    ) -> "Audience":
        return cls(
            kind=AudienceKind.ROOM,
            room_kind=room_kind,
            room_key=str(room_key),
            exclude_session_id=exclude_session_id,
        )


@dataclass(frozen=True)
class NotificationEvent:
    """An immutable notification; never persisted or retried."""

    kind: MessageType
    payload: Any
    audience: Audience = field(default_factory=Audience.all_connected)


class EventRouter:
    """
    Resolves audiences through presence and room membership and enqueues
    one message per target session.

    Every notify method returns the number of sessions the message was
    enqueued for. Nobody to notify is a normal outcome (0), not an error.
    """

    def __init__(
        self,
        presence: PresenceRegistry,
        rooms: RoomMembership,
        sessions: Mapping[str, OutboundSession],
    ) -> None:
        self._presence = presence
        self._rooms = rooms
        self._sessions = sessions

    def _build(self, kind: Union[MessageType, str], payload: Any) -> Optional[dict[str, Any]]:
        try:
            kind = MessageType(kind)
        except ValueError:
            logger.error(f"Dropping notification with unknown event kind: {kind!r}")
            return None
        if kind not in OUTBOUND_TYPES:
            logger.error(f"Dropping notification with non-outbound event kind: {kind.value}")
            return None
        return build_message(kind, payload)

    def _deliver(self, session_id: str, message: dict[str, Any]) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug(f"Session {session_id} vanished before delivery of {message['type']}")
            return False
        return session.send(message)

    def notify_users(
        self,
        user_ids: Iterable[UserId],
        kind: Union[MessageType, str],
        payload: Any,
    ) -> int:
        """
        Send to each user's live session. Offline users are skipped and
        duplicate ids are collapsed so no session receives the event twice.
        """
        message = self._build(kind, payload)
        if message is None:
            return 0

        delivered = 0
        for user_id in dict.fromkeys(str(u) for u in user_ids):
            session_id = self._presence.lookup(user_id)
            if session_id is None:
                logger.debug(f"User {user_id} offline, skipping {message['type']}")
                continue
            if self._deliver(session_id, message):
                delivered += 1

        logger.debug(f"Notified users with {message['type']}: {delivered} delivered")
        return delivered

    def notify_room(
        self,
        room_kind: Union[RoomKind, str],
        room_key: UserId,
        kind: Union[MessageType, str],
        payload: Any,
        exclude_session_id: Optional[str] = None,
    ) -> int:
        """Send to every session in the room, optionally skipping the originating session."""
        try:
            room = room_name(room_kind, room_key)
        except ValueError as e:
            logger.error(f"Dropping room notification: {e}")
            return 0

        message = self._build(kind, payload)
        if message is None:
            return 0

        delivered = 0
        for session_id in self._rooms.members_of(room):
            if session_id == exclude_session_id:
                continue
            if self._deliver(session_id, message):
                delivered += 1

        logger.debug(f"Broadcast {message['type']} to room {room}: {delivered} delivered")
        return delivered

    def notify_all_connected(self, kind: Union[MessageType, str], payload: Any) -> int:
        """Send to every live session, identified or not."""
        message = self._build(kind, payload)
        if message is None:
            return 0

        delivered = 0
        for session_id in list(self._sessions):
            if self._deliver(session_id, message):
                delivered += 1
        return delivered

    def emit(self, event: NotificationEvent) -> int:
        """Dispatch a NotificationEvent to its audience."""
        audience = event.audience
        if audience.kind == AudienceKind.USERS:
            return self.notify_users(audience.user_ids, event.kind, event.payload)
        if audience.kind == AudienceKind.ROOM:
            return self.notify_room(
                audience.room_kind,
                audience.room_key,
                event.kind,
                event.payload,
                exclude_session_id=audience.exclude_session_id,
            )
        return self.notify_all_connected(event.kind, event.payload)
