"""Tests for session storage."""

import time

from portcullis.models import User
from portcullis.sessions import (
    MemorySessionStore,
    Session,
    fingerprint,
    forget,
    forget_ticket,
    new_session_id,
    recall,
    recall_session,
    remember,
    session_key,
    ticket_key,
)


class TestMemorySessionStore:
    """Test the in-memory session store."""

    def test_put_get_delete(self) -> None:
        """Basic store operations."""
        store = MemorySessionStore()
        store.put("k", "v")

        assert store.get("k") == "v"
        assert store.size() == 1

        store.delete("k")
        assert store.get("k") is None

    def test_delete_absent_key(self) -> None:
        """Deleting a missing key is not an error."""
        MemorySessionStore().delete("missing")

    def test_zero_ttl_uses_one_day(self) -> None:
        """A zero timeout falls back to a one day window."""
        assert MemorySessionStore(ttl_seconds=0).ttl_seconds == 86400

    def test_entries_expire(self) -> None:
        """Entries disappear after the timeout."""
        store = MemorySessionStore(ttl_seconds=1)
        store.put("k", "v")

        time.sleep(1.1)

        assert store.get("k") is None

    def test_clear(self) -> None:
        """Clearing empties the store."""
        store = MemorySessionStore()
        store.put("a", 1)
        store.put("b", 2)
        store.clear()

        assert store.size() == 0


class TestSessionHelpers:
    """Test session helper functions."""

    def test_remember_and_recall(self) -> None:
        """A remembered user is recalled by session id."""
        store = MemorySessionStore()
        remember(store, "sid", User("jo"))

        assert recall(store, "sid") == User("jo")
        assert recall(store, "other") is None
        assert recall(store, None) is None

    def test_recall_ignores_foreign_values(self) -> None:
        """Only Session values count as sessions."""
        store = MemorySessionStore()
        store.put(session_key("sid"), "garbage")

        assert recall(store, "sid") is None

    def test_session_keeps_ticket(self) -> None:
        """The ticket a session was created with is stored alongside the user."""
        store = MemorySessionStore()
        remember(store, "sid", User("jo"), ticket="ST-1")

        assert recall_session(store, "sid") == Session(User("jo"), "ST-1")
        assert recall_session(store, None) is None

    def test_injected_timer_drives_expiry(self) -> None:
        """Expiry follows the supplied clock."""
        now = [0.0]
        store = MemorySessionStore(ttl_seconds=100, timer=lambda: now[0])
        store.put("k", "v")

        now[0] = 99.0
        assert store.get("k") == "v"
        now[0] = 101.0
        assert store.get("k") is None

    def test_forget(self) -> None:
        """Forgetting drops the session."""
        store = MemorySessionStore()
        remember(store, "sid", User("jo"))
        forget(store, "sid")
        forget(store, None)

        assert recall(store, "sid") is None

    def test_forget_ticket_is_idempotent(self) -> None:
        """Invalidating by ticket removes the session and can be repeated."""
        store = MemorySessionStore()
        remember(store, "sid", User("jo"), ticket="ST-1")
        assert store.get(ticket_key("ST-1")) == "sid"

        forget_ticket(store, "ST-1")
        assert recall(store, "sid") is None
        assert store.get(ticket_key("ST-1")) is None

        forget_ticket(store, "ST-1")
        assert store.size() == 0

    def test_new_session_ids_are_unique(self) -> None:
        """Session ids are random."""
        assert new_session_id() != new_session_id()

    def test_fingerprint(self) -> None:
        """Fingerprints are short, stable and do not contain the secret."""
        assert fingerprint("ST-secret") == fingerprint("ST-secret")
        assert len(fingerprint("ST-secret")) == 16
        assert "secret" not in fingerprint("ST-secret")
