import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pagewatch.monitor.models import MonitorTarget


class MonitorStore(ABC):
    """
    Abstract persistence for registered targets.
    Targets are only ever removed by an explicit caller request.
    """

    @abstractmethod
    def get(self, target_id: str) -> Optional[MonitorTarget]:
        pass

    @abstractmethod
    def put(self, target: MonitorTarget) -> None:
        """Stores the target, replacing any previous registration with the same id."""
        pass

    @abstractmethod
    def remove(self, target_id: str) -> Optional[MonitorTarget]:
        pass

    @abstractmethod
    def all(self) -> List[MonitorTarget]:
        pass


class InMemoryMonitorStore(MonitorStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._targets: Dict[str, MonitorTarget] = {}

    def get(self, target_id: str) -> Optional[MonitorTarget]:
        with self._lock:
            return self._targets.get(target_id)

    def put(self, target: MonitorTarget) -> None:
        with self._lock:
            self._targets[target.target_id] = target

    def remove(self, target_id: str) -> Optional[MonitorTarget]:
        with self._lock:
            return self._targets.pop(target_id, None)

    def all(self) -> List[MonitorTarget]:
        with self._lock:
            return list(self._targets.values())
