"""
Key-value storage boundary.

The ledger only needs two operations from storage:
  get(key, default) → JSON-serializable value, or default when absent
  set(key, value)   → persist a JSON-serializable value

Two implementations:
  - MemoryStore:   process-local dict (tests, and the default when STORE_PATH is unset)
  - JsonFileStore: a single JSON document on disk, rewritten atomically on every set

Keys are namespaced with config.STORE_KEY_PREFIX ("nexus_v2_" by default).

Concurrency discipline:
  Every store carries a re-entrant lock. Multi-step read → validate → write
  sequences (withdrawal requests, batch import commits, ratio edits, traffic
  ticks) must run inside `with store.transaction():` so that no reader sees a
  half-applied write and a balance check never races a view-count increase.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, TypeVar

from pydantic import BaseModel

import config
from services.errors import StorageUnavailable

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# ---------------------------------------------------------------------------
# Record collection keys
# ---------------------------------------------------------------------------
TENANTS_KEY = "tenants"
CHANNELS_KEY = "channels"
CONTENT_KEY = "content"
DISTRIBUTIONS_KEY = "distributions"
WITHDRAWALS_KEY = "withdrawals"
SETTINGS_KEY = "settings"


class KeyValueStore:
    """Base class: subclasses implement _read and _write on prefixed keys."""

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = config.STORE_KEY_PREFIX if prefix is None else prefix
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read(self.prefix + key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._write(self.prefix + key, value)

    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        """Hold the store lock for a read-validate-write sequence."""
        with self._lock:
            yield self

    def _read(self, key: str, default: Any) -> Any:
        raise NotImplementedError

    def _write(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, prefix: Optional[str] = None):
        super().__init__(prefix)
        self._data: dict[str, str] = {}

    def _read(self, key: str, default: Any) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        # Values are kept serialized so callers never share mutable state
        return json.loads(raw)

    def _write(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class JsonFileStore(KeyValueStore):
    """
    All keys live in one JSON object on disk.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, path: str, prefix: Optional[str] = None):
        super().__init__(prefix)
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read store file {self.path}: {e}")
            raise StorageUnavailable(f"Could not read {self.path}: {e}") from e

    def _read(self, key: str, default: Any) -> Any:
        return self._load().get(key, default)

    def _write(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value

        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write store file {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageUnavailable(f"Could not write {self.path}: {e}") from e


def create_store() -> KeyValueStore:
    """Build the store configured by STORE_PATH."""
    if config.STORE_PATH:
        logger.info(f"Using JSON file store at {config.STORE_PATH}")
        return JsonFileStore(config.STORE_PATH)
    logger.info("Using in-memory store (STORE_PATH not set)")
    return MemoryStore()


# ===========================================================================
# Typed record helpers
# ===========================================================================

def load_records(
    store: KeyValueStore,
    key: str,
    model: type[ModelT],
    default: Optional[list[ModelT]] = None,
) -> list[ModelT]:
    raw = store.get(key)
    if raw is None:
        return list(default or [])
    return [model.model_validate(item) for item in raw]


def save_records(store: KeyValueStore, key: str, records: list[BaseModel]) -> None:
    store.set(key, [r.model_dump(mode="json") for r in records])
