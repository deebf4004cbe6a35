"""Session storage contract and an in-memory implementation."""

import hashlib
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from cachetools import TTLCache

from .models import User

logger = structlog.get_logger()

SESSION_COOKIE = "portcullis_session"


class SessionStore(Protocol):
    """Key-value store shared by all requests; atomic per key."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None:
        """Remove ``key``; deleting an absent key is not an error."""
        ...


class MemorySessionStore:
    """Process-local session store with a sliding expiry window.

    Entries expire ``ttl_seconds`` after they were last written; a zero TTL
    is replaced by a one day window.
    """

    def __init__(
        self,
        ttl_seconds: int = 1800,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds or 86400
        self._cache: TTLCache[str, Any] = TTLCache(
            maxsize=maxsize, ttl=self.ttl_seconds, timer=timer
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._cache.get(key)

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def ticket_key(ticket: str) -> str:
    return f"ticket:{ticket}"


def fingerprint(secret: str) -> str:
    """Short hash of a ticket or session id, safe to log."""
    return hashlib.sha256(secret.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class Session:
    """What a session id maps to: the user and the CAS ticket that created it."""

    user: User
    ticket: str | None = None


def remember(
    store: SessionStore, session_id: str, user: User, ticket: str | None = None
) -> None:
    """Associate ``user`` with a session, indexed by CAS ticket when given.

    Calling this again for a live session restarts the expiry window of both
    the session and its ticket index.
    """
    store.put(session_key(session_id), Session(user, ticket))
    if ticket:
        store.put(ticket_key(ticket), session_id)
    logger.debug(
        "Session established", session=fingerprint(session_id), username=user.username
    )


def recall_session(store: SessionStore, session_id: str | None) -> Session | None:
    if not session_id:
        return None
    value = store.get(session_key(session_id))
    return value if isinstance(value, Session) else None


def recall(store: SessionStore, session_id: str | None) -> User | None:
    session = recall_session(store, session_id)
    return session.user if session else None


def forget(store: SessionStore, session_id: str | None) -> None:
    if session_id:
        store.delete(session_key(session_id))
        logger.debug("Session cleared", session=fingerprint(session_id))


def forget_ticket(store: SessionStore, ticket: str) -> None:
    """Invalidate the session established with ``ticket``. Idempotent."""
    session_id = store.get(ticket_key(ticket))
    store.delete(ticket_key(ticket))
    forget(store, session_id)
    logger.info(
        "Session invalidated by ticket",
        ticket=fingerprint(ticket),
        had_session=session_id is not None,
    )
