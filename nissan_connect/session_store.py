"""Persistent storage of session records.

Records are keyed by a hash of the username. The file store is shared by every
process running for the same user: it offers no locking, writes are atomic
replacements and the last writer wins, so callers must re-validate a loaded
record before trusting it.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .models import SessionRecord

_LOGGER = logging.getLogger(__name__)

FILE_PREFIX = "nissan-connect-session-"
LEGACY_FILE_PREFIX = ".nissan-connect-storage-"


def session_key(username: str) -> str:
    """Return the storage key of a user."""
    return hashlib.sha256(username.encode("utf-8")).hexdigest()


def legacy_session_key(username: str) -> str:
    """Return the key used by older clients (MD5 of the username)."""
    return hashlib.md5(username.encode("utf-8"), usedforsecurity=False).hexdigest()


class SessionStore:
    """Interface of a scoped session record store."""

    def load(self, key: str) -> SessionRecord | None:
        raise NotImplementedError

    def save(self, key: str, record: SessionRecord) -> None:
        raise NotImplementedError

    def invalidate(self, key: str) -> None:
        raise NotImplementedError

    def migrate(self, legacy_key: str, key: str) -> None:
        """Move a record stored under a legacy key to its current key.

        Nothing happens when the current key already holds a record.
        """


class MemorySessionStore(SessionStore):
    """Session store kept in process memory."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    def load(self, key: str) -> SessionRecord | None:
        data = self._records.get(key)
        if data is None:
            return None
        return SessionRecord.model_validate(data)

    def save(self, key: str, record: SessionRecord) -> None:
        self._records[key] = record.to_storage()

    def invalidate(self, key: str) -> None:
        self._records.pop(key, None)

    def migrate(self, legacy_key: str, key: str) -> None:
        if key not in self._records and legacy_key in self._records:
            self._records[key] = self._records.pop(legacy_key)


class FileSessionStore(SessionStore):
    """Session store writing one JSON file per user.

    Corrupt or partial files are treated as a cache miss and unknown fields are
    ignored, so files written by other versions never break a run.
    """

    def __init__(self, directory: str | os.PathLike | None = None) -> None:
        self.directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())

    def path_for(self, key: str) -> Path:
        return self.directory / f"{FILE_PREFIX}{key}.json"

    def legacy_path_for(self, legacy_key: str) -> Path:
        return self.directory / f"{LEGACY_FILE_PREFIX}{legacy_key}.json"

    def load(self, key: str) -> SessionRecord | None:
        path = self.path_for(key)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as err:
            _LOGGER.debug("Ignoring unreadable session file %s: %s", path, err)
            return None

        if not isinstance(data, dict):
            _LOGGER.debug("Ignoring session file %s: not a JSON object", path)
            return None
        try:
            return SessionRecord.model_validate(data)
        except ValidationError as err:
            _LOGGER.debug("Ignoring invalid session file %s: %s", path, err)
            return None

    def save(self, key: str, record: SessionRecord) -> None:
        path = self.path_for(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(record.to_storage(), handle)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise
        _LOGGER.debug("Saved session record to %s", path)

    def invalidate(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)

    def migrate(self, legacy_key: str, key: str) -> None:
        legacy_path = self.legacy_path_for(legacy_key)
        path = self.path_for(key)
        if path.exists() or not legacy_path.exists():
            return
        try:
            # link() refuses to overwrite, so a record written meanwhile wins
            os.link(legacy_path, path)
        except (FileExistsError, FileNotFoundError):
            _LOGGER.debug("Session file %s was migrated concurrently", legacy_path)
            return
        except OSError as err:
            _LOGGER.debug("Cannot migrate session file %s: %s", legacy_path, err)
            return
        try:
            legacy_path.unlink(missing_ok=True)
        except OSError as err:
            _LOGGER.debug("Cannot remove migrated session file %s: %s", legacy_path, err)
        _LOGGER.info("Migrated session file %s to %s", legacy_path, path)
