from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .errors import NotFoundError
from .utils import now_utc

logger = logging.getLogger(__name__)


class RecordStore:
    """Owner-scoped reads and writes for one table.

    Every query filters on ``owner_id``, so a caller can never touch another
    owner's rows. The store only flushes; the caller's session owns the
    transaction and decides when to commit or roll back. ``updated_at`` is
    always stamped here, never taken from the client.
    """

    def __init__(self, session: AsyncSession, model):
        self.session = session
        self.model = model

    def _owned(self, owner_id: int):
        return select(self.model).where(self.model.owner_id == owner_id)

    async def insert(self, owner_id: int, fields: Dict[str, Any]):
        now = now_utc()
        record = self.model(**fields, owner_id=owner_id, created_at=now, updated_at=now)
        self.session.add(record)
        await self.session.flush()
        return record

    async def find_by_id(self, owner_id: int, record_id: str):
        q = await self.session.exec(self._owned(owner_id).where(self.model.id == record_id))
        return q.first()

    async def update(self, owner_id: int, record_id: str, changes: Dict[str, Any]):
        record = await self.find_by_id(owner_id, record_id)
        if record is None:
            raise NotFoundError(self.model.__name__.lower(), record_id)
        for attr, value in changes.items():
            setattr(record, attr, value)
        record.updated_at = now_utc()
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_active_by_owner(self, owner_id: int, **filters) -> List[Any]:
        """Non-deleted rows for the owner, newest first. ``filters`` are
        equality matches on columns, e.g. ``pinned=True``."""
        q = self._owned(owner_id).where(self.model.deleted_at.is_(None))
        for attr, value in filters.items():
            q = q.where(getattr(self.model, attr) == value)
        q = q.order_by(self.model.created_at.desc())
        res = await self.session.exec(q)
        return list(res.all())

    async def find_active_by(self, owner_id: int, attr: str, value: Any) -> Optional[Any]:
        rows = await self.list_active_by_owner(owner_id, **{attr: value})
        return rows[0] if rows else None

    async def count_active(self, owner_id: int) -> int:
        q = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.owner_id == owner_id)
            .where(self.model.deleted_at.is_(None))
        )
        res = await self.session.exec(q)
        return int(res.one())
