"""Bulk reconciliation of offline client mutations.

A client that was offline sends one batch per entity kind. ``Reconciler``
applies it in four phases inside a single transaction:

1. creates, in request order, mapping each ``clientId`` to the new server id
2. collapse updates: resolve ids through that map and keep only the latest
   op per record (last write wins, untimed ops count as the epoch)
3. apply the collapsed updates; a tombstone only yields to an update that is
   strictly newer than its ``deletedAt``
4. tombstone the deletes

Bad creates abort the batch and roll everything back, since later ops may
refer to them by clientId. Update and delete failures only drop the op.
"""
from typing import Dict, List, Optional
import logging

from .db import async_session
from .errors import SyncError, ValidationError, NotFoundError, LimitExceededError
from .kinds import EntityKind
from .schemas import BatchRequest, BatchResult, CreateOp, CreatedRecord, UpdateOp
from .store import RecordStore
from .utils import EPOCH, as_utc, now_utc

logger = logging.getLogger(__name__)


def resolve_id(op, id_map: Dict[str, str]) -> Optional[str]:
    """Server id an update/delete targets, or None when it cannot be known.

    A clientId created earlier in the same batch wins over an explicit id.
    """
    if op.client_id and op.client_id in id_map:
        return id_map[op.client_id]
    return op.id or None


def _op_time(op: UpdateOp):
    return as_utc(op.updated_at) or EPOCH


def collapse_updates(updates: List[UpdateOp], id_map: Dict[str, str]) -> Dict[str, UpdateOp]:
    """Keep one update per resolved record id.

    The op with the greatest ``updatedAt`` wins; on a tie the later op in the
    request wins. The returned dict is ordered by each record's first
    appearance in the request.
    """
    latest: Dict[str, UpdateOp] = {}
    for op in updates:
        record_id = resolve_id(op, id_map)
        if record_id is None:
            logger.warning('bulk update skipped: no id or resolvable clientId (clientId=%s)', op.client_id)
            continue
        prev = latest.get(record_id)
        if prev is None or _op_time(op) >= _op_time(prev):
            latest[record_id] = op
    return latest


class Reconciler:
    def __init__(self, kind: EntityKind, session_factory=async_session):
        self.kind = kind
        self.session_factory = session_factory

    async def reconcile(self, owner_id: int, batch: BatchRequest) -> BatchResult:
        """Apply ``batch`` for ``owner_id`` atomically and return the result.

        Raises ValidationError or LimitExceededError when a create is
        rejected; nothing from the batch is persisted in that case.
        """
        async with self.session_factory() as sess:
            try:
                async with sess.begin():
                    store = RecordStore(sess, self.kind.model)
                    result = await self.apply(store, owner_id, batch)
            except SyncError as e:
                logger.warning('%s bulk sync for owner=%s rolled back: %s', self.kind.name, owner_id, e.detail)
                raise
        logger.info(
            '%s bulk sync owner=%s created=%d updated=%d deleted=%d',
            self.kind.name, owner_id, len(result.created), len(result.updated), len(result.deleted),
        )
        return result

    async def apply(self, store: RecordStore, owner_id: int, batch: BatchRequest) -> BatchResult:
        """Run the four phases against ``store`` without managing the
        transaction; the caller commits or rolls back."""
        result = BatchResult()
        id_map: Dict[str, str] = {}

        for op in batch.creates:
            record = await self._create(store, owner_id, op)
            if op.client_id:
                id_map[op.client_id] = record.id
            result.created.append(CreatedRecord(record, op.client_id))

        for record_id, op in collapse_updates(batch.updates, id_map).items():
            try:
                record = await self._update(store, owner_id, record_id, op)
            except (NotFoundError, ValidationError) as e:
                logger.warning('%s %s skipped in bulk update: %s', self.kind.name, record_id, e.detail)
                continue
            result.updated.append(record)

        for op in batch.deletes:
            record_id = resolve_id(op, id_map)
            if record_id is None:
                logger.warning('bulk delete skipped: no id or resolvable clientId (clientId=%s)', op.client_id)
                continue
            try:
                await self._delete(store, owner_id, record_id, op.deleted_at)
            except NotFoundError as e:
                logger.warning('%s %s skipped in bulk delete: %s', self.kind.name, record_id, e.detail)
                continue
            result.deleted.append(record_id)

        return result

    async def _create(self, store: RecordStore, owner_id: int, op: CreateOp):
        fields = self.kind.apply_defaults(self.kind.validate(op.payload()))

        key = self.kind.natural_key
        if key is not None:
            existing = await store.find_active_by(owner_id, key, fields[key])
            if existing is not None:
                logger.info('%s %s already exists as %s; reusing it', self.kind.name, fields[key], existing.id)
                return existing

        limit = self.kind.max_active
        if limit is not None and await store.count_active(owner_id) >= limit:
            raise LimitExceededError(self.kind.route, limit)

        record = await store.insert(owner_id, fields)
        if self.kind.has_pin and record.pinned:
            await self.enforce_single_pinned(store, owner_id, record.id)
        return record

    async def _update(self, store: RecordStore, owner_id: int, record_id: str, op: UpdateOp):
        record = await store.find_by_id(owner_id, record_id)
        if record is None:
            raise NotFoundError(self.kind.name, record_id)

        resurrect = False
        deleted_at = as_utc(record.deleted_at)
        if deleted_at is not None:
            incoming = as_utc(op.updated_at)
            if incoming is None or incoming <= deleted_at:
                # deletion wins ties
                logger.info('%s %s: update at %s not newer than deletion at %s; kept tombstone',
                            self.kind.name, record_id, incoming, deleted_at)
                return record
            resurrect = True

        changes = self.kind.apply_partial_update(record, op.changes())
        if resurrect:
            changes['deleted_at'] = None
        if not changes:
            raise ValidationError('no valid update data provided')

        record = await store.update(owner_id, record_id, changes)
        if (self.kind.has_pin and record.pinned and record.deleted_at is None
                and ('pinned' in changes or resurrect)):
            await self.enforce_single_pinned(store, owner_id, record.id)
        return record

    async def _delete(self, store: RecordStore, owner_id: int, record_id: str, deleted_at=None):
        record = await store.find_by_id(owner_id, record_id)
        if record is None:
            raise NotFoundError(self.kind.name, record_id)
        if record.deleted_at is not None:
            # already a tombstone; the first deletion time stands
            return record
        return await store.update(owner_id, record_id, {'deleted_at': as_utc(deleted_at) or now_utc()})

    async def enforce_single_pinned(self, store: RecordStore, owner_id: int, keep_id: str) -> List[str]:
        """Unpin every other active pinned record of this kind for the owner.

        Runs in the caller's transaction right after the write that pinned
        ``keep_id``, so no reader sees two pinned records.
        """
        cleared = []
        for other in await store.list_active_by_owner(owner_id, pinned=True):
            if other.id == keep_id:
                continue
            await store.update(owner_id, other.id, {'pinned': False})
            cleared.append(other.id)
        if cleared:
            logger.info('%s %s pinned for owner=%s; unpinned %s', self.kind.name, keep_id, owner_id, cleared)
        return cleared
