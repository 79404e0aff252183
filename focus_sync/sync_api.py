from fastapi import APIRouter, HTTPException, Depends
from .auth import require_login
from .db import async_session
from .errors import UnknownKindError, ValidationError, LimitExceededError
from .kinds import EntityKind, get_kind
from .models import User
from .reconciler import Reconciler
from .schemas import BatchRequest
from .store import RecordStore
from .utils import now_utc, iso_utc
import logging

router = APIRouter(prefix='/sync')
logger = logging.getLogger(__name__)


def _kind_or_404(kind: str) -> EntityKind:
    try:
        return get_kind(kind)
    except UnknownKindError as e:
        raise HTTPException(status_code=404, detail=e.detail)


@router.get('/status')
async def sync_status(current_user: User = Depends(require_login)):
    # clients store this and send it back as their "last synced" marker
    return {'timestamp': iso_utc(now_utc())}


@router.get('/{kind}')
async def sync_fetch_all(kind: str, current_user: User = Depends(require_login)):
    """Full fetch: every non-deleted record of ``kind`` owned by the caller."""
    entity = _kind_or_404(kind)
    async with async_session() as sess:
        store = RecordStore(sess, entity.model)
        records = await store.list_active_by_owner(current_user.id)
    return {'items': [entity.serialize(r) for r in records], 'server_ts': iso_utc(now_utc())}


@router.post('/{kind}/bulk')
async def sync_bulk(kind: str, req: BatchRequest, current_user: User = Depends(require_login)):
    entity = _kind_or_404(kind)
    try:
        result = await Reconciler(entity).reconcile(current_user.id, req)
    except (ValidationError, LimitExceededError) as e:
        raise HTTPException(status_code=400, detail=e.detail)
    return result.to_dict(entity.serialize)
