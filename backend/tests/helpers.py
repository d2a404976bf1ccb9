"""
Small builders shared by the test modules.
"""

from sqlalchemy import Select, Update
from sqlalchemy.ext.asyncio import AsyncSession

from wheeldo.models import Task, TaskCollaborator


def as_user(uid: str) -> dict[str, str]:
    """Headers that authenticate a test request as `uid`."""
    return {"X-User-Id": uid}


async def add_task(session: AsyncSession, user_id: str, title: str = "Task", **fields) -> Task:
    task = Task(title=title, user_id=user_id, **fields)
    session.add(task)
    await session.flush()
    return task


async def share(session: AsyncSession, task: Task, user_id: str, can_edit: bool) -> TaskCollaborator:
    collaborator = TaskCollaborator(
        task_id=task.id,
        user_id=user_id,
        can_edit=can_edit,
        invited_by=task.user_id,
    )
    session.add(collaborator)
    await session.flush()
    return collaborator


class ObservedSession(AsyncSession):
    """
    AsyncSession that records row locks and can run a hook just before
    the next UPDATE on tasks, to interleave another transaction there.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.locked_tables: list[str] = []
        self.before_task_update = None

    async def execute(self, statement, *args, **kwargs):
        if isinstance(statement, Select) and statement._for_update_arg is not None:
            self.locked_tables.extend(table.name for table in statement.get_final_froms())
        if isinstance(statement, Update) and statement.table.name == "tasks" and self.before_task_update:
            hook, self.before_task_update = self.before_task_update, None
            await hook()
        return await super().execute(statement, *args, **kwargs)
