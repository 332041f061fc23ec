import asyncio
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tasklist.core.errors import InternalError
from tasklist.models import Task, get_utc_now

import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskStore:
    """
    Durable task table. Every select/update/delete is scoped to an owner, so a
    task id belonging to someone else behaves exactly like a missing one.

    Each call runs in its own session and is bounded by `timeout` seconds;
    database errors and timeouts surface as InternalError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self._session_factory = session_factory
        self.timeout = timeout
        self._clock = clock

    async def _run(self, op: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def unit() -> T:
            async with self._session_factory() as session:
                return await fn(session)

        try:
            return await asyncio.wait_for(unit(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Store {op} timed out after {self.timeout}s")
            raise InternalError("Storage timed out") from None
        except SQLAlchemyError as e:
            logger.error(f"Store {op} failed: {e}")
            raise InternalError("Storage error") from e

    async def insert(self, user_id: str, title: str, status: str) -> Task:
        async def fn(db: AsyncSession) -> Task:
            now = self._clock()
            task = Task(
                user_id=user_id,
                title=title,
                status=status,
                created_at=now,
                updated_at=now,
            )
            db.add(task)
            await db.commit()
            await db.refresh(task)
            return task

        return await self._run("insert", fn)

    async def list_for_owner(self, user_id: str) -> list[Task]:
        """Newest first; equal created_at keeps insertion order."""

        async def fn(db: AsyncSession) -> list[Task]:
            query = (
                select(Task)
                .where(Task.user_id == user_id)
                .order_by(Task.created_at.desc(), Task.seq.asc())
            )
            result = await db.exec(query)
            return list(result.all())

        return await self._run("list", fn)

    async def _get_owned(self, db: AsyncSession, user_id: str, task_id: str):
        query = select(Task).where(Task.id == task_id, Task.user_id == user_id)
        result = await db.exec(query)
        return result.first()

    async def update_owned(self, user_id: str, task_id: str, **fields) -> Task | None:
        """
        Apply `fields` to the task if user_id owns it, advancing updated_at.

        Returns the updated row, or None when the task is missing or not owned
        (nothing is written in that case).
        """

        async def fn(db: AsyncSession) -> Task | None:
            task = await self._get_owned(db, user_id, task_id)
            if task is None:
                return None
            task.sqlmodel_update(fields)
            task.updated_at = self._clock()
            db.add(task)
            await db.commit()
            await db.refresh(task)
            return task

        return await self._run("update", fn)

    async def delete_owned(self, user_id: str, task_id: str) -> bool:
        async def fn(db: AsyncSession) -> bool:
            task = await self._get_owned(db, user_id, task_id)
            if task is None:
                return False
            await db.delete(task)
            await db.commit()
            return True

        return await self._run("delete", fn)
