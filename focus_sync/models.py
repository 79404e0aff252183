from typing import List, Optional
from datetime import datetime
import uuid
from .utils import now_utc
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON


def new_id() -> str:
    return uuid.uuid4().hex


class User(SQLModel, table=True):
    """Basic user model: password stored as a passlib hash."""
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, sa_column_kwargs={"unique": True})
    password_hash: str
    is_admin: bool = Field(default=False)
    created_at: datetime | None = Field(default_factory=now_utc)


class Task(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    title: str
    completed: bool = Field(default=False)
    # At most one non-deleted pinned task per owner; enforced by the reconciler.
    pinned: bool = Field(default=False, index=True)
    due_date: Optional[datetime] = None
    category_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc, index=True)
    # Tombstone marker. Rows are never physically removed by sync.
    deleted_at: Optional[datetime] = Field(default=None, index=True)


class Note(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    title: str
    content: Optional[str] = None
    pinned: bool = Field(default=False, index=True)
    category_id: Optional[str] = Field(default=None, index=True)
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)


class SiteBlock(SQLModel, table=True):
    """A blocked site entry. ``url`` is stored normalized (no scheme, no www)."""
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    url: str = Field(index=True)
    category: Optional[str] = None
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)


class TabStash(SQLModel, table=True):
    """Saved browser window: the urls of its tabs as a JSON array."""
    id: str = Field(default_factory=new_id, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    window_id: str
    urls: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime | None = Field(default_factory=now_utc)
    updated_at: datetime | None = Field(default_factory=now_utc, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
