"""Per-thread state persistence.

States are stored in their serialized form (see
:func:`~wellness_agent.state.serialize_state`), so whatever a store returns is
a fresh copy that no other caller shares.  A suspended thread therefore
resumes correctly in another process as long as the store is shared.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from wellness_agent.state import ConversationState, deserialize_state, serialize_state

logger = logging.getLogger(__name__)

_SAFE_THREAD_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]{0,127}")


@runtime_checkable
class ThreadStore(Protocol):
    def get(self, thread_id: str) -> ConversationState | None: ...

    def set(self, thread_id: str, state: ConversationState) -> None: ...


class InMemoryThreadStore:
    """Process-local store; the default for tests and the CLI."""

    def __init__(self) -> None:
        self._data: dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, thread_id: str) -> ConversationState | None:
        with self._lock:
            data = self._data.get(thread_id)
        return deserialize_state(data) if data is not None else None

    def set(self, thread_id: str, state: ConversationState) -> None:
        data = serialize_state(state)
        with self._lock:
            self._data[thread_id] = data

    def __contains__(self, thread_id: str) -> bool:
        with self._lock:
            return thread_id in self._data


class FileThreadStore:
    """One JSON document per thread, written atomically."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, thread_id: str) -> Path:
        if _SAFE_THREAD_ID.fullmatch(thread_id):
            name = thread_id
        else:
            name = hashlib.sha256(thread_id.encode("utf-8")).hexdigest()
        return self._dir / f"{name}.json"

    def get(self, thread_id: str) -> ConversationState | None:
        path = self._path(thread_id)
        with self._lock:
            try:
                with path.open("r", encoding="utf-8") as f:
                    data = json.load(f)
            except FileNotFoundError:
                return None
        return deserialize_state(data)

    def set(self, thread_id: str, state: ConversationState) -> None:
        path = self._path(thread_id)
        data = serialize_state(state)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=str(self._dir), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    json.dump(data, tmp)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        logger.debug("Persisted thread %s to %s", thread_id, path)


def build_thread_store(directory: str | None = None) -> ThreadStore:
    """File-backed store when a directory is configured, in-memory otherwise."""
    if directory:
        logger.info("Using file thread store at %s", directory)
        return FileThreadStore(directory)
    return InMemoryThreadStore()


class KeyedLocks:
    """One lock per thread id so runs on the same thread never interleave."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield
