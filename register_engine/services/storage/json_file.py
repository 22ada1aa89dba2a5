"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON document is enough for a personal register:
1. No database setup required
2. Users can inspect and back up the file directly
3. Writes go through a temp file + rename, so a crash never leaves
   a half-written register behind

TRADEOFFS:
- The whole document is rewritten on every save (fine at personal scale)
- Single process only; no cross-process locking
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from register_engine.config import get_settings
from register_engine.services.storage.interface import (
    CorruptStateError,
    KeyValueStorageInterface,
    StorageError,
)


class JsonFileKeyValueStorage(KeyValueStorageInterface):
    """
    Key-value storage persisted as one flat JSON object on disk.

    The file is loaded lazily on first access and cached in memory.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self._path = Path(path or get_settings().storage.state_path)
        self._cache: Optional[dict[str, str]] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._cache is not None:
            return self._cache

        if not self._path.exists():
            self._cache = {}
            return self._cache

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CorruptStateError(f"State file is not valid JSON: {self._path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read state file {self._path}: {e}")

        if not isinstance(raw, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
        ):
            raise CorruptStateError(f"State file is not a flat string mapping: {self._path}")

        self._cache = raw
        return self._cache

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _write_file(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            dir=str(self._path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _commit(self, data: dict[str, str]) -> None:
        try:
            self._write_file(data)
        except OSError as e:
            raise StorageError(f"Failed to write state file {self._path}: {e}")
        self._cache = data

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = dict(self._load())
            data[key] = value
            self._commit(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            data = dict(self._load())
            if key not in data:
                return False
            del data[key]
            self._commit(data)
            return True

    def read_namespace(self, prefix: str) -> dict[str, str]:
        with self._lock:
            return {k: v for k, v in self._load().items() if k.startswith(prefix)}

    def replace_namespace(self, prefix: str, items: dict[str, str]) -> None:
        with self._lock:
            data = {k: v for k, v in self._load().items() if not k.startswith(prefix)}
            data.update(items)
            self._commit(data)
