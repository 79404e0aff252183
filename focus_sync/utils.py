from datetime import datetime, timezone
import logging
import re

logger = logging.getLogger(__name__)

_URL_PREFIX_RE = re.compile(r'^(https?://)?(www\.)?', re.IGNORECASE)

# Epoch used when a client op carries no timestamp, so untimed ops always
# lose to timed ones.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalize a datetime to timezone-aware UTC.

    SQLite hands back naive datetimes even when an aware value was stored, so
    every comparison against a persisted timestamp goes through here.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_utc(dt: datetime | None) -> str | None:
    dt = as_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


def parse_client_datetime(value, field: str = 'date') -> datetime | None:
    """Parse a client supplied date.

    Accepts ISO-8601 strings (a trailing ``Z`` is allowed), epoch
    milliseconds as int/float, datetime objects and None. Raises ValueError
    for anything else so callers can turn it into a validation failure.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, bool):
        raise ValueError(f'invalid {field}: {value!r}')
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValueError(f'invalid {field}: {value!r}')
    if isinstance(value, str):
        s = value.strip()
        if s.endswith('Z') or s.endswith('z'):
            s = s[:-1] + '+00:00'
        try:
            return as_utc(datetime.fromisoformat(s))
        except ValueError:
            raise ValueError(f'invalid {field}: {value!r}')
    raise ValueError(f'invalid {field}: {value!r}')


def normalize_url(url: str) -> str:
    """Strip scheme and a leading ``www.`` and lowercase, e.g.
    ``https://www.Example.com/x`` -> ``example.com/x``."""
    return _URL_PREFIX_RE.sub('', url.strip()).lower()


def truncate(value: str | None, limit: int | None) -> str | None:
    if value is None or limit is None or len(value) <= limit:
        return value
    return value[:limit]


def to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(p[:1].upper() + p[1:] for p in rest)
