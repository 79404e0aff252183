"""Errors raised by the sync engine.

Create-phase ValidationError and LimitExceededError abort a whole batch.
NotFoundError (and ValidationError raised while applying an update) only
drops the offending operation.
"""


class SyncError(Exception):
    """Base class for sync failures. ``detail`` is safe to show to clients."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(SyncError):
    pass


class NotFoundError(SyncError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f'{kind} {record_id} not found')
        self.kind = kind
        self.record_id = record_id


class LimitExceededError(SyncError):
    def __init__(self, kind: str, limit: int):
        super().__init__(f'maximum {kind} limit ({limit}) reached')
        self.kind = kind
        self.limit = limit


class UnknownKindError(SyncError):
    def __init__(self, kind: str):
        super().__init__(f'unknown entity kind: {kind}')
        self.kind = kind
