from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class User(SQLModel, table=True):
    """Account row; the task core only ever sees the id."""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(max_length=320, unique=True, index=True)
    password_hash: str
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Task(SQLModel, table=True):
    """Database model"""

    __tablename__ = "tasks"

    # internal insertion sequence, breaks created_at ties; never exposed
    seq: int | None = Field(default=None, primary_key=True)
    id: str = Field(default_factory=new_id, unique=True, index=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    title: str = Field(max_length=200)
    status: str = Field(default=TaskStatus.TODO.value, max_length=16)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class AuditLog(SQLModel, table=True):
    """Append-only record of an accepted request. Never updated."""

    __tablename__ = "audit_logs"

    id: int | None = Field(default=None, primary_key=True)
    method: str = Field(max_length=10)
    path: str = Field(max_length=512)
    user_id: str | None = Field(default=None, index=True)
    body: str | None = None
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


# Request / response schemas


class TaskCreate(BaseModel):
    title: str


class TaskStatusUpdate(BaseModel):
    status: str


class TaskTitleUpdate(BaseModel):
    title: str


class TaskRead(BaseModel):
    """Immutable read model; cache snapshots hold tuples of these."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    user_id: str
    title: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime


class TaskList(BaseModel):
    cached: bool
    tasks: list[TaskRead]


class TaskStatusResult(BaseModel):
    id: str
    status: TaskStatus


class TaskTitleResult(BaseModel):
    id: str
    title: str


class DeleteResult(BaseModel):
    success: bool = True


class Credentials(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    id: str
    email: str


class AuthResult(BaseModel):
    token: str
    user: UserRead


class AuditRecordRead(BaseModel):
    id: int
    method: str
    path: str
    body: Any = None
    created_at: datetime


class RecentActivity(BaseModel):
    rows: list[AuditRecordRead]


class CacheStats(BaseModel):
    cache_hits: int
    cache_misses: int
    cache_size: int
