from tasklist.cache.layer import UserTaskCache
from tasklist.core.errors import NotFoundError, ValidationError
from tasklist.models import (
    DeleteResult,
    TaskList,
    TaskRead,
    TaskStatus,
    TaskStatusResult,
    TaskTitleResult,
)
from tasklist.services.audit import AuditSink
from tasklist.services.store import TaskStore

import logging

logger = logging.getLogger(__name__)

TASKS_PATH = "/api/tasks"
MAX_TITLE_LENGTH = 200


def _clean_title(title: object) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title required")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return title


def _parse_status(status: object) -> TaskStatus:
    try:
        return TaskStatus(status)
    except ValueError:
        raise ValidationError("invalid status") from None


class TaskService:
    """
    Task operations for an already-authenticated user.

    Reads go cache first, store on miss. Writes go store first; the user's
    cache entry is dropped only after the store commits, and the audit record
    is written last. Store failures abort before invalidation and audit.
    """

    def __init__(self, store: TaskStore, cache: UserTaskCache, audit: AuditSink):
        self.store = store
        self.cache = cache
        self.audit = audit

    async def create_task(self, user_id: str, title: str) -> TaskRead:
        clean = _clean_title(title)

        async with self.cache.mutation(user_id):
            task = await self.store.insert(user_id, clean, TaskStatus.TODO.value)

        await self.audit.record("POST", TASKS_PATH, user_id, {"title": title})
        logger.info(f"Task {task.id} created for user={user_id}")
        return TaskRead.model_validate(task)

    async def list_tasks(self, user_id: str) -> TaskList:
        snapshot = self.cache.get(user_id)
        if snapshot is not None:
            await self.audit.record("GET", f"{TASKS_PATH} (cached)", user_id, {})
            return TaskList(cached=True, tasks=list(snapshot))

        async with self.cache.lock(user_id):
            # a concurrent miss may have repopulated while we waited
            snapshot = self.cache.peek(user_id)
            if snapshot is None:
                rows = await self.store.list_for_owner(user_id)
                snapshot = self.cache.put(
                    user_id, [TaskRead.model_validate(row) for row in rows]
                )

        await self.audit.record("GET", TASKS_PATH, user_id, {})
        return TaskList(cached=False, tasks=list(snapshot))

    async def update_status(self, user_id: str, task_id: str, status: str) -> TaskStatusResult:
        new_status = _parse_status(status)

        async with self.cache.mutation(user_id):
            task = await self.store.update_owned(
                user_id, task_id, status=new_status.value
            )
            if task is None:
                raise NotFoundError("task not found")

        await self.audit.record(
            "PATCH", f"{TASKS_PATH}/{task_id}/status", user_id, {"status": status}
        )
        return TaskStatusResult(id=task.id, status=new_status)

    async def edit_title(self, user_id: str, task_id: str, title: str) -> TaskTitleResult:
        clean = _clean_title(title)

        async with self.cache.mutation(user_id):
            task = await self.store.update_owned(user_id, task_id, title=clean)
            if task is None:
                raise NotFoundError("task not found")

        await self.audit.record(
            "PATCH", f"{TASKS_PATH}/{task_id}", user_id, {"title": title}
        )
        return TaskTitleResult(id=task.id, title=task.title)

    async def delete_task(self, user_id: str, task_id: str) -> DeleteResult:
        async with self.cache.mutation(user_id):
            deleted = await self.store.delete_owned(user_id, task_id)
            if not deleted:
                raise NotFoundError("not found")

        await self.audit.record("DELETE", f"{TASKS_PATH}/{task_id}", user_id, {})
        return DeleteResult(success=True)
