"""
Task state machine: transitions, hierarchy and recurrence rules.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from wheeldo.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from wheeldo.models import (
    Category,
    Notification,
    NotificationType,
    RecurrenceType,
    Task,
    TaskCollaborator,
    TaskInvite,
    TaskStatus,
    Urgency,
    User,
)
from wheeldo.schemas import TaskCreate, TaskUpdate
from wheeldo.services import task_state
from wheeldo.services.task_state import SUBTASKS_INCOMPLETE

from helpers import ObservedSession, add_task, share


async def _in_progress(session, user_id: str) -> list[Task]:
    result = await session.execute(
        select(Task).where(Task.user_id == user_id, Task.status == TaskStatus.IN_PROGRESS)
    )
    return list(result.scalars().all())


class TestCreateTask:

    async def test_defaults(self, test_session, users):
        task = await task_state.create_task(test_session, "alice", TaskCreate(title="Inbox zero"))

        assert task.user_id == "alice"
        assert task.status == TaskStatus.PENDING
        assert task.urgency == Urgency.MEDIUM
        assert task.recurrence_type == RecurrenceType.NONE
        assert task.completed_at is None

    async def test_positions_append(self, test_session, users):
        first = await task_state.create_task(test_session, "alice", TaskCreate(title="One"))
        second = await task_state.create_task(test_session, "alice", TaskCreate(title="Two"))
        assert second.position == first.position + 1

    async def test_location_is_flattened(self, test_session, users):
        data = TaskCreate(
            title="Dentist",
            location={"formatted_address": "1 Main St", "lat": 1.5, "lon": 2.5, "city": "Springfield"},
        )
        task = await task_state.create_task(test_session, "alice", data)

        assert task.location_address == "1 Main St"
        assert task.location_city == "Springfield"
        read = task_state.to_task_read(task)
        assert read.location.lat == 1.5

    async def test_aware_deadline_stored_as_utc(self, test_session, users):
        deadline = datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        task = await task_state.create_task(
            test_session, "alice", TaskCreate(title="Due", deadline=deadline)
        )
        assert task.deadline == datetime(2030, 1, 1, 10, 0)

    async def test_subtask(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        child = await task_state.create_task(
            test_session, "alice", TaskCreate(title="Child", parent_id=parent.id)
        )
        assert child.parent_id == parent.id

    async def test_editor_may_add_subtask(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        await share(test_session, parent, "bob", can_edit=True)

        child = await task_state.create_task(
            test_session, "bob", TaskCreate(title="Child", parent_id=parent.id)
        )
        assert child.user_id == "bob"

    async def test_viewer_may_not_add_subtask(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        await share(test_session, parent, "carol", can_edit=False)

        with pytest.raises(ForbiddenError, match="Invalid parent task"):
            await task_state.create_task(
                test_session, "carol", TaskCreate(title="Child", parent_id=parent.id)
            )

    async def test_unknown_parent(self, test_session, users):
        with pytest.raises(ForbiddenError):
            await task_state.create_task(
                test_session, "alice", TaskCreate(title="Orphan", parent_id=uuid.uuid4())
            )

    async def test_no_grandchildren(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        child = await add_task(test_session, "alice", "Child", parent_id=parent.id)

        with pytest.raises(ValidationError, match="cannot have their own subtasks"):
            await task_state.create_task(
                test_session, "alice", TaskCreate(title="Grandchild", parent_id=child.id)
            )

    async def test_recurring_subtask_rejected(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")

        with pytest.raises(ValidationError, match="Subtasks cannot be recurring"):
            await task_state.create_task(
                test_session,
                "alice",
                TaskCreate(title="Child", parent_id=parent.id, recurrence_type=RecurrenceType.DAILY),
            )

    async def test_subtask_under_recurring_parent_rejected(self, test_session, users):
        parent = await add_task(test_session, "alice", "Daily", recurrence_type=RecurrenceType.DAILY)

        with pytest.raises(ValidationError):
            await task_state.create_task(
                test_session, "alice", TaskCreate(title="Child", parent_id=parent.id)
            )

    async def test_foreign_category_rejected(self, test_session, users):
        category = Category(user_id="bob", name="Bob's")
        test_session.add(category)
        await test_session.flush()

        with pytest.raises(ForbiddenError, match="Invalid category"):
            await task_state.create_task(
                test_session, "alice", TaskCreate(title="Sneaky", category_id=category.id)
            )


class TestUpdateTask:

    async def test_editor_updates_content(self, test_session, users):
        task = await add_task(test_session, "alice", "Draft")
        await share(test_session, task, "bob", can_edit=True)

        updated = await task_state.update_task(
            test_session, "bob", task.id, TaskUpdate(body="Now with details", duration=30)
        )
        assert updated.body == "Now with details"
        assert updated.duration == 30

    async def test_viewer_cannot_update(self, test_session, users):
        task = await add_task(test_session, "alice", "Draft")
        await share(test_session, task, "carol", can_edit=False)

        with pytest.raises(ForbiddenError):
            await task_state.update_task(test_session, "carol", task.id, TaskUpdate(title="Mine now"))

    async def test_stranger_gets_not_found(self, test_session, users):
        task = await add_task(test_session, "alice", "Private")

        with pytest.raises(NotFoundError):
            await task_state.update_task(test_session, "carol", task.id, TaskUpdate(title="x"))

    async def test_editor_cannot_change_category_or_parent(self, test_session, users):
        task = await add_task(test_session, "alice", "Draft")
        await share(test_session, task, "bob", can_edit=True)

        with pytest.raises(ForbiddenError, match="Only owners"):
            await task_state.update_task(test_session, "bob", task.id, TaskUpdate(category_id=None))

    async def test_owner_moves_task_under_parent(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        task = await add_task(test_session, "alice", "Loose end", position=7)

        moved = await task_state.update_task(
            test_session, "alice", task.id, TaskUpdate(parent_id=parent.id)
        )
        assert moved.parent_id == parent.id
        assert moved.position == 1

    async def test_cannot_nest_under_subtask(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        child = await add_task(test_session, "alice", "Child", parent_id=parent.id)
        task = await add_task(test_session, "alice", "Other")

        with pytest.raises(ValidationError):
            await task_state.update_task(test_session, "alice", task.id, TaskUpdate(parent_id=child.id))

    async def test_parent_with_children_cannot_become_subtask(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        await add_task(test_session, "alice", "Child", parent_id=parent.id)
        other = await add_task(test_session, "alice", "Other")

        with pytest.raises(ValidationError):
            await task_state.update_task(test_session, "alice", parent.id, TaskUpdate(parent_id=other.id))

    async def test_cannot_be_own_parent(self, test_session, users):
        task = await add_task(test_session, "alice", "Loop")

        with pytest.raises(ValidationError):
            await task_state.update_task(test_session, "alice", task.id, TaskUpdate(parent_id=task.id))

    async def test_subtask_cannot_become_recurring(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        child = await add_task(test_session, "alice", "Child", parent_id=parent.id)

        with pytest.raises(ValidationError, match="recurring"):
            await task_state.update_task(
                test_session, "alice", child.id, TaskUpdate(recurrence_type=RecurrenceType.WEEKLY)
            )

    async def test_parent_cannot_become_recurring(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        await add_task(test_session, "alice", "Child", parent_id=parent.id)

        with pytest.raises(ValidationError):
            await task_state.update_task(
                test_session, "alice", parent.id, TaskUpdate(recurrence_type=RecurrenceType.WEEKLY)
            )

    async def test_promote_recurring_subtask_to_root(self, test_session, users):
        """Clearing parent_id and setting recurrence in one patch is allowed."""
        parent = await add_task(test_session, "alice", "Parent")
        child = await add_task(test_session, "alice", "Child", parent_id=parent.id)

        updated = await task_state.update_task(
            test_session,
            "alice",
            child.id,
            TaskUpdate(parent_id=None, recurrence_type=RecurrenceType.MONTHLY),
        )
        assert updated.parent_id is None
        assert updated.recurrence_type == RecurrenceType.MONTHLY

    async def test_title_cannot_be_nulled(self, test_session, users):
        task = await add_task(test_session, "alice", "Keep me")

        with pytest.raises(ValidationError):
            await task_state.update_task(test_session, "alice", task.id, TaskUpdate(title=None))


class TestSetTaskStatus:

    async def test_start_and_complete(self, test_session, users):
        task = await add_task(test_session, "alice", "Focus")

        change = await task_state.start_task(test_session, "alice", task.id)
        assert change.task.status == TaskStatus.IN_PROGRESS
        assert change.previous_status == TaskStatus.PENDING

        change = await task_state.complete_task(test_session, "alice", task.id)
        assert change.task.status == TaskStatus.COMPLETED
        assert change.task.completed_at is not None

    async def test_leaving_completed_clears_timestamp(self, test_session, users):
        task = await add_task(test_session, "alice", "Oops")
        await task_state.complete_task(test_session, "alice", task.id)

        change = await task_state.revert_task(test_session, "alice", task.id)
        assert change.task.status == TaskStatus.PENDING
        assert change.task.completed_at is None

    async def test_starting_second_task_defers_first(self, test_session, users):
        first = await add_task(test_session, "alice", "A")
        second = await add_task(test_session, "alice", "C")

        await task_state.start_task(test_session, "alice", first.id)
        change = await task_state.start_task(test_session, "alice", second.id)

        assert change.deferred_task_ids == [first.id]
        await test_session.refresh(first)
        assert first.status == TaskStatus.PENDING
        assert [t.id for t in await _in_progress(test_session, "alice")] == [second.id]

    async def test_at_most_one_in_progress_over_many_starts(self, test_session, users):
        tasks = [await add_task(test_session, "alice", f"T{i}") for i in range(5)]

        for task in tasks + tasks[::-1]:
            await task_state.start_task(test_session, "alice", task.id)
            assert len(await _in_progress(test_session, "alice")) == 1

    async def test_other_users_tasks_untouched(self, test_session, users):
        mine = await add_task(test_session, "alice", "Mine")
        theirs = await add_task(test_session, "bob", "Theirs")
        await task_state.start_task(test_session, "bob", theirs.id)

        change = await task_state.start_task(test_session, "alice", mine.id)

        assert change.deferred_task_ids == []
        await test_session.refresh(theirs)
        assert theirs.status == TaskStatus.IN_PROGRESS

    async def test_editor_start_defers_owners_active_task(self, test_session, users):
        active = await add_task(test_session, "alice", "Alice's current")
        shared = await add_task(test_session, "alice", "Shared")
        await share(test_session, shared, "bob", can_edit=True)
        await task_state.start_task(test_session, "alice", active.id)

        change = await task_state.start_task(test_session, "bob", shared.id)

        assert change.deferred_task_ids == [active.id]
        assert [t.id for t in await _in_progress(test_session, "alice")] == [shared.id]

    async def test_parent_gated_on_children(self, test_session, users):
        parent = await add_task(test_session, "alice", "A")
        child = await add_task(test_session, "alice", "B", parent_id=parent.id)

        with pytest.raises(ConflictError, match=SUBTASKS_INCOMPLETE):
            await task_state.start_task(test_session, "alice", parent.id)
        with pytest.raises(ConflictError):
            await task_state.complete_task(test_session, "alice", parent.id)

        await task_state.complete_task(test_session, "alice", child.id)
        change = await task_state.start_task(test_session, "alice", parent.id)
        assert change.task.status == TaskStatus.IN_PROGRESS

    async def test_rejected_start_leaves_active_task_alone(self, test_session, users):
        active = await add_task(test_session, "alice", "Current")
        parent = await add_task(test_session, "alice", "Blocked")
        await add_task(test_session, "alice", "Open child", parent_id=parent.id)
        await task_state.start_task(test_session, "alice", active.id)

        with pytest.raises(ConflictError):
            await task_state.start_task(test_session, "alice", parent.id)

        await test_session.refresh(active)
        assert active.status == TaskStatus.IN_PROGRESS

    async def test_deferring_parent_is_not_gated(self, test_session, users):
        parent = await add_task(test_session, "alice", "A")
        await add_task(test_session, "alice", "B", parent_id=parent.id)

        change = await task_state.defer_task(test_session, "alice", parent.id)
        assert change.task.status == TaskStatus.PENDING

    async def test_viewer_cannot_change_status(self, test_session, users):
        task = await add_task(test_session, "alice", "Look only")
        await share(test_session, task, "carol", can_edit=False)

        with pytest.raises(ForbiddenError):
            await task_state.start_task(test_session, "carol", task.id)

    async def test_stranger_gets_not_found(self, test_session, users):
        task = await add_task(test_session, "alice", "Private")

        with pytest.raises(NotFoundError):
            await task_state.complete_task(test_session, "carol", task.id)

    async def test_deferred_is_not_a_target(self, test_session, users):
        task = await add_task(test_session, "alice", "Later")

        with pytest.raises(ValidationError):
            await task_state.set_task_status(test_session, "alice", task.id, TaskStatus.DEFERRED)

    async def test_completion_drafts_notifications_for_others(self, test_session, users):
        task = await add_task(test_session, "alice", "Team task")
        await share(test_session, task, "bob", can_edit=True)
        await share(test_session, task, "carol", can_edit=False)

        change = await task_state.complete_task(test_session, "bob", task.id)

        assert sorted(d.user_id for d in change.notifications) == ["alice", "carol"]
        assert all(d.type == NotificationType.TASK_COMPLETED for d in change.notifications)
        assert 'Bob completed "Team task"' in change.notifications[0].message

    async def test_completion_without_collaborators_drafts_nothing(self, test_session, users):
        task = await add_task(test_session, "alice", "Solo")

        change = await task_state.complete_task(test_session, "alice", task.id)
        assert change.notifications == []

    async def test_database_rejects_second_in_progress(self, test_session, users):
        """The partial unique index holds even if the service layer is bypassed."""
        await add_task(test_session, "alice", "One", status=TaskStatus.IN_PROGRESS)

        with pytest.raises(IntegrityError):
            await add_task(test_session, "alice", "Two", status=TaskStatus.IN_PROGRESS)


class TestDeleteTask:

    async def test_owner_deletes_with_children_and_sharing(self, test_session, users):
        task = await add_task(test_session, "alice", "Doomed")
        child = await add_task(test_session, "alice", "Child", parent_id=task.id)
        await share(test_session, task, "bob", can_edit=True)
        test_session.add(TaskInvite(
            token="tok", task_id=task.id, created_by="alice",
            expires_at=datetime.utcnow() + timedelta(days=1),
        ))
        test_session.add(Notification(
            user_id="bob", type=NotificationType.TASK_SHARED,
            title="Shared", message="m", task_id=task.id,
        ))
        await test_session.flush()

        await task_state.delete_task(test_session, "alice", task.id)

        assert await test_session.get(Task, task.id) is None
        assert await test_session.get(Task, child.id) is None
        collaborators = await test_session.execute(select(TaskCollaborator))
        assert collaborators.scalars().all() == []
        invites = await test_session.execute(select(TaskInvite))
        assert invites.scalars().all() == []
        notification = (await test_session.execute(select(Notification))).scalar_one()
        assert notification.task_id is None

    async def test_editor_cannot_delete(self, test_session, users):
        task = await add_task(test_session, "alice", "Keep")
        await share(test_session, task, "bob", can_edit=True)

        with pytest.raises(ForbiddenError, match="Only the task owner"):
            await task_state.delete_task(test_session, "bob", task.id)

    async def test_missing_task(self, test_session, users):
        with pytest.raises(NotFoundError):
            await task_state.delete_task(test_session, "alice", uuid.uuid4())


class TestQueries:

    async def test_list_includes_shared_roots_with_role(self, test_session, users):
        own = await add_task(test_session, "carol", "Own")
        shared = await add_task(test_session, "alice", "Shared")
        await share(test_session, shared, "carol", can_edit=False)
        await add_task(test_session, "alice", "Child", parent_id=shared.id)
        await add_task(test_session, "alice", "Private")

        tasks = await task_state.list_tasks(test_session, "carol")

        roles = {t.id: t.role for t in tasks}
        assert roles == {own.id: "owner", shared.id: "viewer"}
        shared_read = next(t for t in tasks if t.id == shared.id)
        assert shared_read.children_count == 1
        assert shared_read.completed_children_count == 0

    async def test_list_orders_active_first_then_urgency(self, test_session, users):
        low = await add_task(test_session, "alice", "Low", urgency=Urgency.LOW)
        high = await add_task(test_session, "alice", "High", urgency=Urgency.HIGH)
        active = await add_task(test_session, "alice", "Active", status=TaskStatus.IN_PROGRESS)

        tasks = await task_state.list_tasks(test_session, "alice")
        assert [t.id for t in tasks] == [active.id, high.id, low.id]

    async def test_list_filters_by_status(self, test_session, users):
        await add_task(test_session, "alice", "Open")
        done = await add_task(test_session, "alice", "Done", status=TaskStatus.COMPLETED)

        tasks = await task_state.list_tasks(test_session, "alice", TaskStatus.COMPLETED)
        assert [t.id for t in tasks] == [done.id]

    async def test_get_task_includes_children(self, test_session, users):
        parent = await add_task(test_session, "alice", "Parent")
        await add_task(test_session, "alice", "B", parent_id=parent.id, position=2)
        await add_task(test_session, "alice", "A", parent_id=parent.id, position=1)

        detail = await task_state.get_task(test_session, "alice", parent.id)

        assert [c.title for c in detail.children] == ["A", "B"]
        assert all(c.is_subtask for c in detail.children)
        assert detail.role == "owner"

    async def test_get_task_hidden_from_strangers(self, test_session, users):
        task = await add_task(test_session, "alice", "Private")

        with pytest.raises(NotFoundError):
            await task_state.get_task(test_session, "bob", task.id)

    async def test_active_task(self, test_session, users):
        assert await task_state.get_active_task(test_session, "alice") is None

        task = await add_task(test_session, "alice", "Now")
        await task_state.start_task(test_session, "alice", task.id)

        active = await task_state.get_active_task(test_session, "alice")
        assert active.id == task.id

    async def test_history_most_recent_first(self, test_session, users):
        now = datetime.utcnow()
        older = await add_task(
            test_session, "alice", "Older",
            status=TaskStatus.COMPLETED, completed_at=now - timedelta(days=2),
        )
        newer = await add_task(
            test_session, "alice", "Newer",
            status=TaskStatus.COMPLETED, completed_at=now - timedelta(hours=1),
        )
        await add_task(test_session, "alice", "Open")

        history = await task_state.list_completed_tasks(test_session, "alice")
        assert [t.id for t in history] == [newer.id, older.id]


class TestConcurrentStatusChanges:
    """Each session below is its own transaction, as separate requests would be."""

    @pytest.fixture
    def observed_maker(self, test_engine):
        return async_sessionmaker(test_engine, class_=ObservedSession, expire_on_commit=False)

    @pytest.fixture
    async def tasks(self, session_maker):
        async with session_maker() as session:
            session.add(User(id="alice", email="alice@example.com", name="Alice"))
            await session.flush()
            rows = [
                await add_task(session, "alice", "X"),
                await add_task(session, "alice", "Y", status=TaskStatus.IN_PROGRESS),
                await add_task(session, "alice", "Z"),
            ]
            await session.commit()
        return rows

    async def _in_progress_ids(self, session_maker) -> list[uuid.UUID]:
        async with session_maker() as session:
            return [t.id for t in await _in_progress(session, "alice")]

    async def test_start_does_not_revert_a_completion_committed_meanwhile(
        self, session_maker, observed_maker, tasks
    ):
        x, y, _ = tasks

        async def complete_y_elsewhere():
            async with session_maker() as other:
                await task_state.complete_task(other, "alice", y.id)
                await other.commit()

        async with observed_maker() as session:
            session.before_task_update = complete_y_elsewhere
            change = await task_state.start_task(session, "alice", x.id)
            await session.commit()

        assert change.deferred_task_ids == []
        async with session_maker() as session:
            y_after = await session.get(Task, y.id)
            assert y_after.status == TaskStatus.COMPLETED
            assert y_after.completed_at is not None
        assert await self._in_progress_ids(session_maker) == [x.id]

    async def test_start_locks_owner_before_task(self, observed_maker, tasks):
        x = tasks[0]

        async with observed_maker() as session:
            await task_state.start_task(session, "alice", x.id)
            await session.commit()

        assert session.locked_tables[:2] == ["users", "tasks"]

    async def test_starts_in_separate_transactions_leave_one_active(self, session_maker, tasks):
        for task in tasks:
            async with session_maker() as session:
                await task_state.start_task(session, "alice", task.id)
                await session.commit()
            assert await self._in_progress_ids(session_maker) == [task.id]

    async def test_simultaneous_starts_leave_one_active(self, session_maker, test_engine, tasks):
        if test_engine.dialect.name == "sqlite":
            pytest.skip("needs row locks; set WHEELDO_TEST_DATABASE_URL to a Postgres database")

        async def start(task_id):
            async with session_maker() as session:
                await task_state.start_task(session, "alice", task_id)
                await session.commit()

        results = await asyncio.gather(*(start(t.id) for t in tasks * 3), return_exceptions=True)

        assert all(r is None or isinstance(r, ConflictError) for r in results), results
        assert len(await self._in_progress_ids(session_maker)) == 1
