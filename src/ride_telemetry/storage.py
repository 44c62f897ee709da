"""Durable key/value blob storage and the completed-ride ledger."""

import json
import logging
import re
from pathlib import Path
from typing import Protocol

from ride_telemetry.models import TelemetrySession

logger = logging.getLogger(__name__)

CACHE_DIR = Path.home() / ".cache" / "ride-telemetry"
STORE_DIR = CACHE_DIR / "store"

RIDING_RECORDS_KEY = "riding_records"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, for tests and throwaway runs."""

    def __init__(self):
        self.data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileStore:
    """One file per key in a directory.

    Writes go to a temporary file first and are renamed into place, so a
    crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory: Path = STORE_DIR):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}.bin"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(value)
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


class RideLedger:
    """Completed rides, newest first, stored as one JSON list."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def records(self) -> list[TelemetrySession]:
        """Load all completed rides; an unreadable ledger reads as empty."""
        try:
            raw = self.store.get(RIDING_RECORDS_KEY)
        except OSError as e:
            logger.warning("Failed to read ride records: %s", e)
            return []
        if not raw:
            return []
        try:
            return [TelemetrySession.from_dict(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring corrupt ride records: %s", e)
            return []

    def save_record(self, session: TelemetrySession) -> None:
        """Prepend a completed ride to the ledger.

        Raises:
            ValueError: If the session is still in progress.
            OSError: If the store write fails.
        """
        if not session.is_completed:
            raise ValueError(f"Session {session.session_id} has not been stopped")
        records = [session] + self.records()
        payload = json.dumps([r.to_dict() for r in records])
        self.store.set(RIDING_RECORDS_KEY, payload.encode())

    def find(self, session_id: str) -> TelemetrySession | None:
        for record in self.records():
            if record.session_id == session_id:
                return record
        return None
