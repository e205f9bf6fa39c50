"""Room naming and room membership bookkeeping.

A room is a named broadcast channel. Names are always built through
``room_name`` so every producer and consumer agrees on the format
``"<kind>:<key>"``.
"""

import logging
from enum import Enum
from typing import Union
from uuid import UUID

logger = logging.getLogger(__name__)


class RoomKind(str, Enum):
    """Kinds of rooms a session can be a member of."""

    # One per identified user, joined automatically at handshake
    USER = "user"
    # The user's live task list view
    USER_TASKS = "user_tasks"
    # Viewers of a single task
    TASK = "task"


RoomKey = Union[str, UUID]


def room_name(kind: RoomKind, key: RoomKey) -> str:
    """
    Build the canonical room name for kind and key.

    Raises:
        ValueError: If kind is not a RoomKind or key is empty
    """
    kind = RoomKind(kind)
    key = str(key).strip() if key is not None else ""
    if not key:
        raise ValueError(f"Room key for {kind.value} room must not be empty")
    return f"{kind.value}:{key}"


def get_user_room(user_id: RoomKey) -> str:
    return room_name(RoomKind.USER, user_id)


def get_user_tasks_room(user_id: RoomKey) -> str:
    return room_name(RoomKind.USER_TASKS, user_id)


def get_task_room(task_id: RoomKey) -> str:
    """Get the room ID for a task."""
    return room_name(RoomKind.TASK, task_id)


class RoomMembership:
    """
    Bidirectional index of room -> sessions and session -> rooms.

    join and leave are idempotent. Empty rooms are dropped from the index.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[str]] = {}
        self._session_rooms: dict[str, set[str]] = {}

    @property
    def total_rooms(self) -> int:
        """Number of rooms with at least one member."""
        return len(self._rooms)

    def join(self, session_id: str, room: str) -> bool:
        """
        Add session_id to room.

        Returns:
            True if the session was not already a member
        """
        members = self._rooms.setdefault(room, set())
        if session_id in members:
            return False
        members.add(session_id)
        self._session_rooms.setdefault(session_id, set()).add(room)
        return True

    def leave(self, session_id: str, room: str) -> bool:
        """
        Remove session_id from room.

        Returns:
            True if the session was a member
        """
        members = self._rooms.get(room)
        if not members or session_id not in members:
            return False

        members.discard(session_id)
        if not members:
            del self._rooms[room]

        rooms = self._session_rooms.get(session_id)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._session_rooms[session_id]
        return True

    def drop_session(self, session_id: str) -> list[str]:
        """
        Remove session_id from every room it belongs to.

        Returns:
            The rooms the session was removed from
        """
        rooms = self._session_rooms.pop(session_id, set())
        for room in rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(session_id)
            if not members:
                del self._rooms[room]
        return sorted(rooms)

    def members_of(self, room: str) -> set[str]:
        """Session ids in room; empty for an unknown room. Returns a copy."""
        return set(self._rooms.get(room, ()))

    def rooms_of(self, session_id: str) -> set[str]:
        return set(self._session_rooms.get(session_id, ()))

    def is_member(self, session_id: str, room: str) -> bool:
        return session_id in self._rooms.get(room, ())
