from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


# Every timestamp the service writes or compares is UTC with tzinfo stripped.
# Serializers put the zone back as a trailing "Z".

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the database.

    timezone=True columns come back aware on Postgres and naive on SQLite;
    naive values are already UTC.
    """
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _as_aware(dt: datetime) -> datetime:
    return as_naive_utc(dt).replace(tzinfo=timezone.utc)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second precision, e.g. 2026-10-19T08:30:00Z (API payloads)."""
    if dt is None:
        return None
    return _as_aware(dt).isoformat(timespec="seconds").replace("+00:00", "Z")


def to_utc_z_millis(dt: Optional[datetime]) -> Optional[str]:
    """Millisecond precision, e.g. 2026-10-19T08:30:00.123Z (webhook envelopes)."""
    if dt is None:
        return None
    return _as_aware(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")
