"""
Temporary storage for import wizard sessions.
Keeps sessions in memory with TTL expiration.
Single-server only (one operator runs one import at a time).
"""
import threading
from datetime import datetime, timedelta
from typing import Optional

from config import settings
from services.import_session import ImportSession

_cache: dict[str, tuple[datetime, ImportSession]] = {}
_lock = threading.Lock()


def store_session(session: ImportSession, ttl_minutes: Optional[int] = None) -> str:
    """Store a session (or refresh its expiry), return its id."""
    ttl = ttl_minutes or settings.session_ttl_minutes
    expires_at = datetime.now() + timedelta(minutes=ttl)
    with _lock:
        _cache[session.session_id] = (expires_at, session)
        _cleanup_expired()
    return session.session_id


def retrieve_session(session_id: str) -> Optional[ImportSession]:
    """Retrieve a session by id. Returns None if expired/not found."""
    with _lock:
        entry = _cache.get(session_id)
        if entry is None:
            return None
        expires_at, session = entry
        if datetime.now() > expires_at and not session.is_persisting:
            del _cache[session_id]
            return None
        return session


def delete_session(session_id: str) -> None:
    """Remove a session after it finished or was abandoned."""
    with _lock:
        _cache.pop(session_id, None)


def _cleanup_expired() -> None:
    """Remove all expired entries. Caller holds the lock."""
    now = datetime.now()
    expired = [
        k for k, (exp, session) in _cache.items()
        if now > exp and not session.is_persisting
    ]
    for k in expired:
        del _cache[k]
