"""Runtime configuration for the focus-sync server.

Control flags and limits are read from environment variables so they can be
changed in development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


def _int_or_none(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Full SQLAlchemy URL. Tests point this at a throwaway sqlite file.
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./focus_sync.db')

# SECRET_KEY should be set in the environment in production. The fallback only
# exists so local runs and tests work without extra setup.
SECRET_KEY = os.getenv('SECRET_KEY', 'CHANGE_ME_IN_ENV_FOR_TESTS')
ACCESS_TOKEN_EXPIRE_MINUTES = _int_or_none('ACCESS_TOKEN_EXPIRE_MINUTES', 60 * 24)

# Per-owner caps on active (non-deleted) records. None means unlimited.
# Creating past the cap rejects the whole sync batch.
NOTES_MAX_PER_OWNER = _int_or_none('NOTES_MAX_PER_OWNER', 500)
TASKS_MAX_PER_OWNER = _int_or_none('TASKS_MAX_PER_OWNER')
SITE_BLOCKS_MAX_PER_OWNER = _int_or_none('SITE_BLOCKS_MAX_PER_OWNER')
TAB_STASHES_MAX_PER_OWNER = _int_or_none('TAB_STASHES_MAX_PER_OWNER')

# Note bodies longer than this are truncated, not rejected.
NOTE_CONTENT_MAX_LENGTH = _int_or_none('NOTE_CONTENT_MAX_LENGTH', 10000)

# Level for the sync loggers (reconciler, store, sync api).
SYNC_LOG_LEVEL = os.getenv('SYNC_LOG_LEVEL', 'INFO').upper()

# When true, SQLAlchemy echoes every statement. Noisy; debugging only.
SQL_ECHO = _trueish(os.getenv('SQL_ECHO', '0'))

# Optional local overrides: define variables in focus_sync/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    # No local overrides present; proceed with defaults.
    pass
