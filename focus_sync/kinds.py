"""Per-kind field handling for bulk sync.

The reconciler is generic; everything that differs between tasks, notes,
site blocks and tab stashes lives on an ``EntityKind``: which client fields
exist and how they are coerced, which are required on create, defaults,
per-owner caps and whether pin exclusivity applies.

Clients may send field names in camelCase (``dueDate``) or snake_case
(``due_date``); both map to the same column. Unknown fields are ignored.
"""
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from . import config
from .errors import ValidationError, UnknownKindError
from .models import Task, Note, SiteBlock, TabStash
from .utils import parse_client_datetime, normalize_url, truncate, to_camel, iso_utc

logger = logging.getLogger(__name__)

Coercer = Callable[[str, Any], Any]


def _text(field: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value


def _opt_text(field: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    return _text(field, value)


def _flag(field: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f'{field} must be a boolean')
    return value


def _when(field: str, value: Any):
    try:
        return parse_client_datetime(value, field)
    except ValueError as e:
        raise ValidationError(str(e))


def _text_list(field: str, value: Any) -> list:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f'{field} must be a list of strings')
    return list(value)


class EntityKind:
    """Capabilities the reconciler needs from one entity kind."""

    name = 'record'
    route = 'records'
    model: Any = None
    # model attribute -> coercer; the client may use the camelCase name too
    fields: Dict[str, Coercer] = {}
    required: Tuple[str, ...] = ()
    defaults: Dict[str, Any] = {}
    has_pin = False
    # SiteBlocks de-duplicate on this attribute instead of inserting twice.
    natural_key: Optional[str] = None
    # name of the config constant holding the per-owner cap
    limit_setting: Optional[str] = None

    def __init__(self):
        self._aliases: Dict[str, str] = {}
        for attr in list(self.fields) + ['deleted_at']:
            self._aliases[attr] = attr
            self._aliases[to_camel(attr)] = attr

    @property
    def max_active(self) -> Optional[int]:
        if not self.limit_setting:
            return None
        return getattr(config, self.limit_setting, None)

    def _coerce(self, raw: Dict[str, Any], allow_tombstone: bool) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, value in raw.items():
            attr = self._aliases.get(key)
            if attr is None or (attr == 'deleted_at' and not allow_tombstone):
                logger.debug('%s: ignoring unknown field %r', self.name, key)
                continue
            if attr == 'deleted_at':
                out[attr] = _when('deletedAt', value)
            else:
                out[attr] = self.fields[attr](to_camel(attr), value)
        return out

    def validate(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce create fields and check the required ones. Raises
        ValidationError, which aborts the batch."""
        fields = self._coerce(raw, allow_tombstone=False)
        for attr in self.required:
            value = fields.get(attr)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f'{to_camel(attr)} is required')
        return fields

    def apply_defaults(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(self.defaults)
        out.update(fields)
        return out

    def apply_partial_update(self, record, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Return the column changes an update op asks for.

        Only fields present in the op are returned; a required text field may
        not be blanked. The record itself is left alone, the store writes.
        """
        changes = self._coerce(raw, allow_tombstone=True)
        for attr in self.required:
            if attr not in changes:
                continue
            value = changes[attr]
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f'{to_camel(attr)} cannot be empty')
        return changes

    def serialize(self, record) -> Dict[str, Any]:
        out: Dict[str, Any] = {'id': record.id, 'ownerId': record.owner_id}
        for attr in self.fields:
            value = getattr(record, attr)
            if hasattr(value, 'isoformat'):
                value = iso_utc(value)
            out[to_camel(attr)] = value
        out['createdAt'] = iso_utc(record.created_at)
        out['updatedAt'] = iso_utc(record.updated_at)
        out['deletedAt'] = iso_utc(record.deleted_at)
        return out

    def __repr__(self):
        return f'<EntityKind {self.route}>'


class TaskKind(EntityKind):
    name = 'task'
    route = 'tasks'
    model = Task
    fields = {
        'title': _text,
        'completed': _flag,
        'pinned': _flag,
        'due_date': _when,
        'category_id': _opt_text,
    }
    required = ('title',)
    defaults = {'completed': False, 'pinned': False}
    has_pin = True
    limit_setting = 'TASKS_MAX_PER_OWNER'


def _note_title(field: str, value: Any) -> str:
    return _text(field, value).strip()


def _note_content(field: str, value: Any) -> Optional[str]:
    return truncate(_opt_text(field, value), config.NOTE_CONTENT_MAX_LENGTH)


class NoteKind(EntityKind):
    name = 'note'
    route = 'notes'
    model = Note
    fields = {
        'title': _note_title,
        'content': _note_content,
        'pinned': _flag,
        'category_id': _opt_text,
    }
    required = ('title',)
    defaults = {'pinned': False}
    has_pin = True
    limit_setting = 'NOTES_MAX_PER_OWNER'


def _site_url(field: str, value: Any) -> str:
    return normalize_url(_text(field, value))


class SiteBlockKind(EntityKind):
    name = 'site block'
    route = 'site-blocks'
    model = SiteBlock
    fields = {
        'url': _site_url,
        'category': _opt_text,
    }
    required = ('url',)
    natural_key = 'url'
    limit_setting = 'SITE_BLOCKS_MAX_PER_OWNER'


class TabStashKind(EntityKind):
    name = 'tab stash'
    route = 'tab-stashes'
    model = TabStash
    fields = {
        'window_id': _text,
        'urls': _text_list,
    }
    required = ('window_id', 'urls')
    limit_setting = 'TAB_STASHES_MAX_PER_OWNER'


KINDS: Dict[str, EntityKind] = {k.route: k for k in (TaskKind(), NoteKind(), SiteBlockKind(), TabStashKind())}


def get_kind(route: str) -> EntityKind:
    try:
        return KINDS[route]
    except KeyError:
        raise UnknownKindError(route)
