"""Unit tests for the event fan-out router."""

from uuid import uuid4

from taskchat.websocket.messages import MessageType
from taskchat.websocket.notifier import (
    Audience,
    AudienceKind,
    EventRouter,
    NotificationEvent,
)
from taskchat.websocket.presence import PresenceRegistry
from taskchat.websocket.rooms import RoomKind, RoomMembership, get_task_room


class FakeSession:
    """Records what the router enqueues."""

    def __init__(self, session_id: str, accept: bool = True):
        self.session_id = session_id
        self.accept = accept
        self.messages = []

    def send(self, message):
        if not self.accept:
            return False
        self.messages.append(message)
        return True


def build_router(*pairs):
    """Router with one live session per (user_id, session_id) pair."""
    presence = PresenceRegistry()
    rooms = RoomMembership()
    sessions = {}
    for user_id, session_id in pairs:
        sessions[session_id] = FakeSession(session_id)
        if user_id is not None:
            presence.record_connection(user_id, session_id)
    return EventRouter(presence, rooms, sessions), presence, rooms, sessions


class TestNotifyUsers:
    """Tests for user-addressed notifications."""

    def test_delivers_to_live_sessions(self):
        router, _, _, sessions = build_router(("u1", "s1"), ("u2", "s2"))

        delivered = router.notify_users(["u1", "u2"], MessageType.TASK_UPDATED, {"x": 1})

        assert delivered == 2
        assert sessions["s1"].messages == [{"type": "task_updated", "data": {"x": 1}}]
        assert sessions["s2"].messages == [{"type": "task_updated", "data": {"x": 1}}]

    def test_duplicate_ids_delivered_once(self):
        router, _, _, sessions = build_router(("u1", "s1"))

        delivered = router.notify_users(["u1", "u1", "u1"], MessageType.TASK_UPDATED, {})

        assert delivered == 1
        assert len(sessions["s1"].messages) == 1

    def test_offline_users_skipped(self):
        router, _, _, sessions = build_router(("u1", "s1"))

        delivered = router.notify_users(["u1", "offline"], MessageType.TASK_DELETED, {})

        assert delivered == 1

    def test_nobody_online_is_zero(self):
        router, _, _, _ = build_router()

        assert router.notify_users(["u1"], MessageType.TASK_DELETED, {}) == 0

    def test_uuid_ids_match_string_presence(self):
        user_id = uuid4()
        router, _, _, sessions = build_router((str(user_id), "s1"))

        assert router.notify_users([user_id], MessageType.TASK_ASSIGNED, {}) == 1

    def test_only_latest_session_receives(self):
        router, presence, _, sessions = build_router(("u1", "s1"))
        sessions["s2"] = FakeSession("s2")
        presence.record_connection("u1", "s2")

        router.notify_users(["u1"], MessageType.TASK_UPDATED, {})

        assert sessions["s1"].messages == []
        assert len(sessions["s2"].messages) == 1

    def test_full_queue_not_counted(self):
        router, _, _, sessions = build_router(("u1", "s1"))
        sessions["s1"].accept = False

        assert router.notify_users(["u1"], MessageType.TASK_UPDATED, {}) == 0

    def test_unknown_kind_dropped(self):
        router, _, _, sessions = build_router(("u1", "s1"))

        assert router.notify_users(["u1"], "no_such_event", {}) == 0
        assert sessions["s1"].messages == []

    def test_inbound_only_kind_dropped(self):
        router, _, _, sessions = build_router(("u1", "s1"))

        assert router.notify_users(["u1"], MessageType.JOIN_TASK_ROOM, {}) == 0

    def test_kind_given_as_string(self):
        router, _, _, sessions = build_router(("u1", "s1"))

        assert router.notify_users(["u1"], "task_deleted", {"task_id": "t1"}) == 1
        assert sessions["s1"].messages[0]["type"] == "task_deleted"


class TestNotifyRoom:
    """Tests for room broadcasts."""

    def test_broadcast_to_members(self):
        router, _, rooms, sessions = build_router(("u1", "s1"), ("u2", "s2"), ("u3", "s3"))
        rooms.join("s1", get_task_room("t1"))
        rooms.join("s2", get_task_room("t1"))

        delivered = router.notify_room(RoomKind.TASK, "t1", MessageType.TASK_STATUS_CHANGED, {})

        assert delivered == 2
        assert sessions["s3"].messages == []

    def test_exclude_originating_session(self):
        router, _, rooms, sessions = build_router(("u1", "s1"), ("u2", "s2"))
        rooms.join("s1", get_task_room("t1"))
        rooms.join("s2", get_task_room("t1"))

        delivered = router.notify_room(
            RoomKind.TASK,
            "t1",
            MessageType.TASK_COMMENT_TYPING_INDICATOR,
            {},
            exclude_session_id="s1",
        )

        assert delivered == 1
        assert sessions["s1"].messages == []
        assert len(sessions["s2"].messages) == 1

    def test_unbound_member_receives(self):
        router, _, rooms, sessions = build_router((None, "anon"))
        rooms.join("anon", get_task_room("t1"))

        assert router.notify_room(RoomKind.TASK, "t1", MessageType.TASK_STATUS_CHANGED, {}) == 1

    def test_empty_room(self):
        router, _, _, _ = build_router(("u1", "s1"))

        assert router.notify_room(RoomKind.TASK, "t1", MessageType.TASK_STATUS_CHANGED, {}) == 0

    def test_invalid_room_key(self):
        router, _, _, _ = build_router(("u1", "s1"))

        assert router.notify_room(RoomKind.TASK, "", MessageType.TASK_STATUS_CHANGED, {}) == 0

    def test_member_session_gone(self):
        router, _, rooms, sessions = build_router(("u1", "s1"))
        rooms.join("ghost", get_task_room("t1"))

        assert router.notify_room(RoomKind.TASK, "t1", MessageType.TASK_STATUS_CHANGED, {}) == 0


class TestNotifyAllConnected:
    """Tests for process-wide broadcasts."""

    def test_reaches_unbound_sessions(self):
        router, _, _, sessions = build_router(("u1", "s1"), (None, "anon"))

        delivered = router.notify_all_connected(MessageType.ONLINE_USERS_LIST, ["u1"])

        assert delivered == 2
        assert sessions["anon"].messages == [{"type": "online_users_list", "data": ["u1"]}]


class TestEmit:
    """Tests for dispatching NotificationEvent by audience."""

    def test_emit_users(self):
        router, _, _, sessions = build_router(("u1", "s1"), ("u2", "s2"))
        event = NotificationEvent(
            kind=MessageType.TASK_DELETED,
            payload={"task_id": "t1"},
            audience=Audience.users(["u2"]),
        )

        assert router.emit(event) == 1
        assert sessions["s1"].messages == []

    def test_emit_room(self):
        router, _, rooms, sessions = build_router(("u1", "s1"), ("u2", "s2"))
        rooms.join("s1", get_task_room("t1"))
        rooms.join("s2", get_task_room("t1"))
        event = NotificationEvent(
            kind=MessageType.TASK_BULK_UPDATED,
            payload={},
            audience=Audience.room(RoomKind.TASK, "t1", exclude_session_id="s2"),
        )

        assert router.emit(event) == 1
        assert len(sessions["s1"].messages) == 1

    def test_emit_defaults_to_everyone(self):
        router, _, _, _ = build_router(("u1", "s1"), ("u2", "s2"))
        event = NotificationEvent(kind=MessageType.ONLINE_USERS_LIST, payload=[])

        assert event.audience.kind == AudienceKind.ALL_CONNECTED
        assert router.emit(event) == 2

    def test_payload_is_json_encoded(self):
        task_id = uuid4()
        router, _, _, sessions = build_router(("u1", "s1"))

        router.notify_users(["u1"], MessageType.TASK_DELETED, {"task_id": task_id})

        assert sessions["s1"].messages[0]["data"]["task_id"] == str(task_id)
