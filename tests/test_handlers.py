"""Unit tests for task and comment fan-out handlers."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from conftest import sent_messages, sent_types
from taskchat.schemas.comment import CommentResponse
from taskchat.schemas.task import TaskResponse, TaskUserInfo
from taskchat.websocket.handlers import (
    handle_comment_added,
    handle_comment_deleted,
    handle_comment_updated,
    handle_task_assigned,
    handle_task_created,
    handle_task_deleted,
    handle_task_due_reminder,
    handle_task_overdue,
    handle_task_updated,
    task_comment_audience,
    unique_user_ids,
)
from taskchat.websocket.messages import MessageType
from taskchat.websocket.notifier import AudienceKind


def user_info(user_id, name="User"):
    return TaskUserInfo(id=user_id, full_name=name, email=f"{user_id}@example.com")


def task_response(creator_id, assignee_ids, task_status="pending", title="Prepare report"):
    now = datetime.utcnow()
    return TaskResponse(
        id=uuid4(),
        title=title,
        description="Collect the numbers and write the summary",
        assigned_by=user_info(creator_id, "Creator"),
        assigned_to=[user_info(uid) for uid in assignee_ids],
        priority="medium",
        status=task_status,
        due_date=now + timedelta(hours=6),
        tags=[],
        created_at=now,
        updated_at=now,
        is_overdue=False,
        days_until_due=1,
    )


def comment_response(task, author_id, text="Looks good"):
    now = datetime.utcnow()
    return CommentResponse(
        id=uuid4(),
        task_id=task.id,
        author=user_info(author_id),
        comment=text,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def ids():
    """Creator, two assignees and a bystander."""
    return {"creator": uuid4(), "b": uuid4(), "c": uuid4(), "other": uuid4()}


class TestUniqueUserIds:
    """Tests for audience merging."""

    def test_merges_without_duplicates(self):
        assert unique_user_ids(["a", "b"], ["b", "c", "a"]) == ["a", "b", "c"]

    def test_excludes_actor(self):
        assert unique_user_ids(["a", "b"], ["c"], exclude="b") == ["a", "c"]

    def test_uuid_and_string_are_equal(self):
        user_id = uuid4()
        assert unique_user_ids([user_id], [str(user_id)]) == [str(user_id)]

    def test_comment_audience_excludes_author(self, ids):
        task = task_response(ids["creator"], [ids["b"], ids["c"]])

        audience = task_comment_audience(task, ids["b"])

        assert audience == [str(ids["creator"]), str(ids["c"])]


class TestTaskCreated:
    """Tests for new-task notifications."""

    async def test_assignees_and_task_list_rooms(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        assignee = connect_user(str(ids["b"]))
        connection_manager.join_user_tasks_room(creator)
        connection_manager.join_user_tasks_room(assignee)
        task = task_response(ids["creator"], [ids["b"], ids["c"]])

        result = handle_task_created(task, "Creator", connection_manager)

        # b: task_assigned + task_created; creator: task_created; c offline
        assert result.recipients == 3
        assert result.user_ids == [str(ids["b"]), str(ids["c"])]
        assert await sent_types(assignee) == ["task_assigned", "task_created"]
        assert await sent_types(creator) == ["task_created"]

        assigned = (await sent_messages(assignee))[0]["data"]
        assert assigned["message"] == "You have been assigned a new task: Prepare report"
        assert assigned["task"]["id"] == str(task.id)

    async def test_not_in_task_list_room(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        task = task_response(ids["creator"], [ids["b"]])

        result = handle_task_created(task, "Creator", connection_manager)

        assert result.recipients == 0
        assert await sent_messages(creator) == []

    async def test_self_assignment_notifies_creator(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        task = task_response(ids["creator"], [ids["creator"]])

        handle_task_created(task, "Creator", connection_manager)

        assert await sent_types(creator) == ["task_assigned"]

    async def test_nobody_online(self, connection_manager, ids):
        task = task_response(ids["creator"], [ids["b"]])

        result = handle_task_created(task, "Creator", connection_manager)

        assert result.recipients == 0
        assert result.success


class TestTaskUpdated:
    """Tests for update notifications."""

    async def test_previous_assignees_and_creator_notified(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        old_assignee = connect_user(str(ids["b"]))
        new_assignee = connect_user(str(ids["c"]))
        task = task_response(ids["creator"], [ids["c"]])

        result = handle_task_updated(
            task,
            previous_assignee_ids=[ids["b"]],
            previous_title="Old title",
            previous_status="pending",
            updated_by_name="Creator",
            connection_manager=connection_manager,
        )

        assert result.user_ids == [str(ids["b"]), str(ids["creator"])]
        assert await sent_types(creator) == ["task_updated"]
        assert await sent_types(old_assignee) == ["task_updated"]
        assert await sent_messages(new_assignee) == []

        payload = (await sent_messages(creator))[0]["data"]
        assert payload["message"] == 'Task "Old title" has been updated'
        assert payload["updated_by"] == "Creator"

    async def test_status_change_goes_to_task_room(self, connection_manager, connect_user, ids):
        viewer = connect_user(str(ids["other"]))
        task = task_response(ids["creator"], [ids["b"]], task_status="completed")
        connection_manager.join_task_room(viewer, str(task.id))

        result = handle_task_updated(
            task,
            previous_assignee_ids=[ids["b"]],
            previous_title=task.title,
            previous_status="in-progress",
            updated_by_name="Bee",
            connection_manager=connection_manager,
        )

        messages = await sent_messages(viewer)
        assert [m["type"] for m in messages] == ["task_status_changed"]
        assert messages[0]["data"]["status"] == "completed"
        assert messages[0]["data"]["previous_status"] == "in-progress"
        assert messages[0]["data"]["task_id"] == str(task.id)
        assert result.room_ids == [f"task:{task.id}"]

    async def test_no_room_message_without_status_change(self, connection_manager, connect_user, ids):
        viewer = connect_user(str(ids["other"]))
        task = task_response(ids["creator"], [ids["b"]])
        connection_manager.join_task_room(viewer, str(task.id))

        result = handle_task_updated(
            task,
            previous_assignee_ids=[ids["b"]],
            previous_title=task.title,
            previous_status="pending",
            updated_by_name="Creator",
            connection_manager=connection_manager,
        )

        assert await sent_messages(viewer) == []
        assert result.room_ids == []


class TestTaskDeletedAndAssigned:
    """Tests for delete and reassignment notifications."""

    async def test_delete_includes_deleting_user(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        assignee = connect_user(str(ids["b"]))
        task = task_response(ids["creator"], [ids["b"]])

        result = handle_task_deleted(task, "Creator", connection_manager)

        assert result.recipients == 2
        assert await sent_types(creator) == ["task_deleted"]
        payload = (await sent_messages(assignee))[0]["data"]
        assert payload["task_id"] == str(task.id)
        assert payload["task_title"] == task.title
        assert payload["deleted_by"] == "Creator"

    async def test_events_dispatched_through_router(self, connection_manager, monkeypatch, ids):
        events = []
        emit = connection_manager.router.emit
        monkeypatch.setattr(
            connection_manager.router, "emit", lambda event: events.append(event) or emit(event)
        )
        task = task_response(ids["creator"], [ids["b"], ids["creator"]])

        handle_task_deleted(task, "Creator", connection_manager)

        assert len(events) == 1
        assert events[0].kind == MessageType.TASK_DELETED
        assert events[0].audience.kind == AudienceKind.USERS
        assert events[0].audience.user_ids == (str(ids["b"]), str(ids["creator"]))

    async def test_assigned_users_only(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        assignee = connect_user(str(ids["c"]))
        task = task_response(ids["creator"], [ids["c"]])

        result = handle_task_assigned(task, [ids["c"], ids["c"]], connection_manager)

        assert result.recipients == 1
        assert await sent_types(assignee) == ["task_assigned"]
        assert await sent_messages(creator) == []


class TestReminders:
    """Tests for due and overdue notices."""

    async def test_due_reminder_to_assignees(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        assignee = connect_user(str(ids["b"]))
        task = task_response(ids["creator"], [ids["b"]])

        handle_task_due_reminder(task, connection_manager)

        messages = await sent_messages(assignee)
        assert messages[0]["type"] == "task_due_reminder"
        assert 0 < messages[0]["data"]["hours_remaining"] <= 6
        assert await sent_messages(creator) == []

    async def test_overdue_to_assignees(self, connection_manager, connect_user, ids):
        assignee = connect_user(str(ids["b"]))
        task = task_response(ids["creator"], [ids["b"]])

        result = handle_task_overdue(task, connection_manager)

        assert result.recipients == 1
        assert await sent_types(assignee) == ["task_overdue"]


class TestCommentFanOut:
    """Comment events skip the acting user; task events do not."""

    async def test_comment_added_excludes_commenter(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        commenter = connect_user(str(ids["b"]))
        other_assignee = connect_user(str(ids["c"]))
        task = task_response(ids["creator"], [ids["b"], ids["c"]])
        comment = comment_response(task, ids["b"])

        result = handle_comment_added(task, comment, "Bee", connection_manager)

        assert result.recipients == 2
        assert await sent_messages(commenter) == []
        assert await sent_types(other_assignee) == ["task_comment_added"]
        payload = (await sent_messages(creator))[0]["data"]
        assert payload["commenter"] == "Bee"
        assert payload["message"] == "Bee commented on task: Prepare report"
        assert payload["task"] == {"id": str(task.id), "title": task.title}
        assert payload["comment"]["comment"] == "Looks good"

    async def test_comment_updated_excludes_editor(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        editor = connect_user(str(ids["b"]))
        task = task_response(ids["creator"], [ids["b"]])
        comment = comment_response(task, ids["b"], text="Edited")

        handle_comment_updated(task, comment, "Bee", connection_manager)

        assert await sent_types(creator) == ["task_comment_updated"]
        assert await sent_messages(editor) == []

    async def test_comment_deleted_by_creator(self, connection_manager, connect_user, ids):
        creator = connect_user(str(ids["creator"]))
        author = connect_user(str(ids["b"]))
        task = task_response(ids["creator"], [ids["b"]])
        comment_id = uuid4()

        handle_comment_deleted(task, comment_id, ids["creator"], "Creator", connection_manager)

        assert await sent_messages(creator) == []
        payload = (await sent_messages(author))[0]["data"]
        assert payload["comment_id"] == str(comment_id)
        assert payload["task_id"] == str(task.id)
        assert payload["deleter"] == "Creator"
