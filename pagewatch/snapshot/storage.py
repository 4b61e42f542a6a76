import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Optional

from pagewatch.locks import KeyedLock
from pagewatch.snapshot.models import Snapshot


class SnapshotStore(ABC):
    """
    Abstract key -> Snapshot capability holding one baseline per target.
    Implementations only provide get/put/remove; per-target serialisation is shared here.
    """

    def __init__(self):
        self._key_locks = KeyedLock()

    @contextmanager
    def locked(self, target_id: str):
        """
        Serialises read-baseline-then-replace for one target.
        Checks on different target ids do not contend.
        """
        with self._key_locks.hold(target_id):
            yield self

    @abstractmethod
    def get(self, target_id: str) -> Optional[Snapshot]:
        """Retrieve the current baseline, or None if the target has none."""
        pass

    @abstractmethod
    def put(self, target_id: str, snapshot: Snapshot) -> None:
        """Unconditionally replace the baseline for a target. No history is kept."""
        pass

    @abstractmethod
    def remove(self, target_id: str) -> None:
        """Drop the baseline for a target. Missing targets are ignored."""
        pass


class InMemorySnapshotStore(SnapshotStore):
    """Process-local backing. Contents are lost on restart."""

    def __init__(self):
        super().__init__()
        self._snapshots: Dict[str, Snapshot] = {}
        self._map_lock = threading.Lock()

    def get(self, target_id: str) -> Optional[Snapshot]:
        with self._map_lock:
            return self._snapshots.get(target_id)

    def put(self, target_id: str, snapshot: Snapshot) -> None:
        with self._map_lock:
            self._snapshots[target_id] = snapshot

    def remove(self, target_id: str) -> None:
        with self._map_lock:
            self._snapshots.pop(target_id, None)

    def __len__(self):
        with self._map_lock:
            return len(self._snapshots)


def build_snapshot_store(backend: Optional[str] = None) -> SnapshotStore:
    """Select the backing configured by SNAPSHOT_BACKEND."""
    from pagewatch.core import DB_CONFIG, SNAPSHOT_BACKEND

    backend = (backend or SNAPSHOT_BACKEND).lower()
    if backend == "memory":
        return InMemorySnapshotStore()
    if backend == "mysql":
        import pymysql
        from pagewatch.snapshot.mysql_storage import MySQLSnapshotStore

        store = MySQLSnapshotStore(pymysql.connect(**DB_CONFIG))
        store.ensure_schema()
        return store
    raise ValueError(f"Unknown snapshot backend: {backend}")
