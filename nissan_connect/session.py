"""Session bootstrap: cached record or fresh login."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from .models import SessionRecord
from .session_store import SessionStore, legacy_session_key, session_key

_LOGGER = logging.getLogger(__name__)

LoginCallback = Callable[[SessionRecord], Awaitable[SessionRecord]]


class SessionManager:
    """Holds the in-memory session record of one client.

    The record is completed from the store when possible and from a login
    otherwise. A login result is persisted as soon as it is obtained; a failed
    login persists nothing.
    """

    def __init__(
        self,
        store: SessionStore,
        username: str,
        required_fields: tuple[str, ...],
        login: LoginCallback,
        record: SessionRecord | None = None,
    ) -> None:
        self.store = store
        self.key = session_key(username)
        self._legacy_key = legacy_session_key(username)
        self.required_fields = required_fields
        self._login = login
        self.record = record or SessionRecord()
        self._migrated = False

    @property
    def is_complete(self) -> bool:
        return self.record.is_complete(self.required_fields)

    def _load_cached(self) -> SessionRecord | None:
        if not self._migrated:
            self._migrated = True
            self.store.migrate(self._legacy_key, self.key)
        cached = self.store.load(self.key)
        if cached is None:
            return None
        # Another process may have written a partial record
        if not cached.is_complete(self.required_fields):
            _LOGGER.debug(
                "Ignoring cached session missing %s",
                ", ".join(cached.missing_fields(self.required_fields)),
            )
            return None
        return cached

    async def ensure(self, skip_cache: bool = False) -> SessionRecord:
        """Return a complete session record, logging in if needed.

        Args:
            skip_cache: Ignore both the in-memory and the stored record and
                always log in.
        """
        if not skip_cache:
            if self.is_complete:
                return self.record
            cached = self._load_cached()
            if cached is not None:
                _LOGGER.info("Using session identifiers found in the session cache")
                self.record = cached
                return self.record

        record = await self._login(self.record)
        self.record = record
        self.store.save(self.key, record)
        _LOGGER.info("Saved new session identifiers into the session cache")
        return record

    def invalidate(self) -> None:
        """Forget the session tokens held in memory. The stored record is kept."""
        self.record = self.record.without_tokens()

    async def renew(self) -> SessionRecord:
        """Log in again, bypassing every cached record."""
        self.invalidate()
        return await self.ensure(skip_cache=True)
