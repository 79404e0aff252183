"""Request and result shapes for bulk sync.

Each op carries a small envelope (``id``, ``clientId``, ``updatedAt``,
``deletedAt``) and whatever kind-specific fields the client sent. Those
extra fields are kept as-is and interpreted by the entity kind, so one set of
op models serves tasks, notes, site blocks and tab stashes.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _Op(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    def payload(self) -> Dict[str, Any]:
        """Kind-specific fields, keyed exactly as the client sent them."""
        return dict(self.model_extra or {})


class CreateOp(_Op):
    client_id: Optional[str] = Field(default=None, alias='clientId')
    updated_at: Optional[datetime] = Field(default=None, alias='updatedAt')


class UpdateOp(_Op):
    id: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias='clientId')
    updated_at: Optional[datetime] = Field(default=None, alias='updatedAt')
    deleted_at: Optional[datetime] = Field(default=None, alias='deletedAt')

    @model_validator(mode='after')
    def _require_target(self):
        if not self.id and not self.client_id:
            raise ValueError('id or clientId is required')
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields the client asked to change. ``deletedAt`` counts only when
        it was sent, so an explicit null clears a tombstone."""
        out = self.payload()
        if 'deleted_at' in self.model_fields_set:
            out['deleted_at'] = self.deleted_at
        return out


class DeleteOp(_Op):
    id: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias='clientId')
    deleted_at: Optional[datetime] = Field(default=None, alias='deletedAt')

    @model_validator(mode='after')
    def _require_target(self):
        if not self.id and not self.client_id:
            raise ValueError('id or clientId is required')
        return self


class BatchRequest(BaseModel):
    creates: List[CreateOp] = Field(default_factory=list)
    updates: List[UpdateOp] = Field(default_factory=list)
    deletes: List[DeleteOp] = Field(default_factory=list)

    @field_validator('creates', 'updates', 'deletes', mode='before')
    @classmethod
    def _null_as_empty(cls, v):
        return [] if v is None else v


class CreatedRecord(NamedTuple):
    record: Any
    client_id: Optional[str]


class BatchResult:
    """Outcome of one reconcile call.

    ``created`` pairs each new record with the clientId of its op,
    ``updated`` holds records as they stand after the update phase and
    ``deleted`` the ids that were tombstoned. Ops that failed in isolation
    are simply missing.
    """

    def __init__(self):
        self.created: List[CreatedRecord] = []
        self.updated: List[Any] = []
        self.deleted: List[str] = []

    def to_dict(self, serialize: Callable[[Any], Dict[str, Any]]) -> Dict[str, Any]:
        created = []
        for item in self.created:
            row = serialize(item.record)
            if item.client_id is not None:
                row['clientId'] = item.client_id
            created.append(row)
        return {
            'created': created,
            'updated': [serialize(r) for r in self.updated],
            'deleted': list(self.deleted),
        }

    def __repr__(self):
        return f'<BatchResult created={len(self.created)} updated={len(self.updated)} deleted={len(self.deleted)}>'
