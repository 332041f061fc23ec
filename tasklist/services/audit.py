import asyncio
import json
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tasklist.core.errors import InternalError
from tasklist.models import AuditLog, AuditRecordRead

import logging

logger = logging.getLogger(__name__)


def _serialize(body: Any) -> str | None:
    """JSON-encode a request body; anything unencodable is stored as null."""
    try:
        return json.dumps(body)
    except (TypeError, ValueError) as e:
        logger.warning(f"Audit body not serializable, storing null: {e}")
        return None


def _deserialize(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        # Return raw string if not valid JSON
        return raw


class AuditSink:
    """
    Best-effort, append-only audit trail.

    record() never raises: serialization problems degrade to a null body and
    storage failures or timeouts are logged and dropped. The write is shielded
    so a cancelled request still gets its record.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 2,
        recent_limit: int = 50,
    ):
        self._session_factory = session_factory
        self.timeout = timeout
        self.recent_limit = recent_limit
        self.stats = {"written": 0, "failed": 0}

    async def _append(self, entry: AuditLog) -> None:
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()

    async def _write(self, entry: AuditLog) -> None:
        try:
            await asyncio.wait_for(self._append(entry), timeout=self.timeout)
            self.stats["written"] += 1
        except Exception as e:
            self.stats["failed"] += 1
            logger.error(
                f"Audit write failed for {entry.method} {entry.path} "
                f"user={entry.user_id}: {e!r}"
            )

    async def record(self, method: str, path: str, user_id: str | None, body: Any = None):
        entry = AuditLog(
            method=method, path=path, user_id=user_id, body=_serialize(body)
        )
        await asyncio.shield(self._write(entry))

    async def recent(self, user_id: str, limit: int | None = None) -> list[AuditRecordRead]:
        """The caller's own records, newest first, capped at recent_limit."""
        limit = min(limit or self.recent_limit, self.recent_limit)
        query = (
            select(AuditLog)
            .where(AuditLog.user_id == user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )

        async def load():
            async with self._session_factory() as session:
                result = await session.exec(query)
                return result.all()

        try:
            rows = await asyncio.wait_for(load(), timeout=self.timeout)
        except (asyncio.TimeoutError, SQLAlchemyError) as e:
            logger.error(f"Reading audit log for user={user_id} failed: {e!r}")
            raise InternalError("Could not read activity") from e

        return [
            AuditRecordRead(
                id=row.id,
                method=row.method,
                path=row.path,
                body=_deserialize(row.body),
                created_at=row.created_at,
            )
            for row in rows
        ]
