"""In-process presence registry: which session currently represents each user.

A user is represented by at most one session. The most recent connection
wins; an older session that disconnects later must not evict the newer one.

All methods are synchronous and run on the event loop thread, so each
check-then-modify step is atomic with respect to other coroutines.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class PresenceEntry:
    """The live session recorded for a user."""

    user_id: str
    session_id: str
    connected_at: datetime = field(default_factory=datetime.utcnow)


class PresenceRegistry:
    """
    Map of user id -> live session id, plus the reverse index.

    Ids are kept as strings; callers holding UUIDs pass ``str(user_id)``.
    """

    def __init__(self) -> None:
        # user_id -> entry naming their current session
        self._entries: dict[str, PresenceEntry] = {}
        # session_id -> user_id, for every session that was ever recorded and is still connected
        self._session_users: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def record_connection(self, user_id: str, session_id: str) -> None:
        """Record session_id as the user's live session, replacing any previous one."""
        previous = self._entries.get(user_id)
        if previous is not None and previous.session_id != session_id:
            logger.debug(
                f"Presence for user {user_id} moved from session "
                f"{previous.session_id} to {session_id}"
            )
        self._entries[user_id] = PresenceEntry(user_id=user_id, session_id=session_id)
        self._session_users[session_id] = user_id

    def lookup(self, user_id: str) -> Optional[str]:
        """Session id currently representing user_id, or None if offline."""
        entry = self._entries.get(user_id)
        return entry.session_id if entry else None

    def get_entry(self, user_id: str) -> Optional[PresenceEntry]:
        return self._entries.get(user_id)

    def remove_connection(self, session_id: str) -> Optional[str]:
        """
        Forget session_id.

        The user's presence entry is removed only if it still names this
        session; a newer session for the same user is left untouched.

        Returns:
            The user id whose entry was removed, or None
        """
        user_id = self._session_users.pop(session_id, None)
        if user_id is None:
            return None

        entry = self._entries.get(user_id)
        if entry is None or entry.session_id != session_id:
            logger.debug(
                f"Stale disconnect for user {user_id}: session {session_id} "
                f"is no longer the live session"
            )
            return None

        del self._entries[user_id]
        return user_id

    def snapshot_connected_users(self) -> list[str]:
        """User ids with a live session, one entry per user."""
        return list(self._entries)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._entries
