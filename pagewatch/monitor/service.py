"""
FILE DESCRIPTION: Registration API for change monitoring.
KEY FUNCTIONS/CLASSES: MonitorService, CheckOutcome
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pagewatch.alerts.dispatcher import AlertDispatcher
from pagewatch.alerts.models import DispatchReport
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.core import NAVIGATION_TIMEOUT_MS, SETTLE_DELAY_MS, logger
from pagewatch.detection.engine import ChangeDetector
from pagewatch.detection.models import ChangeResult
from pagewatch.errors import BaselineMissing
from pagewatch.monitor.models import MonitorTarget
from pagewatch.monitor.storage import InMemoryMonitorStore, MonitorStore
from pagewatch.rendering.engine import PageFetcher
from pagewatch.rendering.models import FetchOptions
from pagewatch.snapshot.extractor import SnapshotExtractor
from pagewatch.snapshot.storage import SnapshotStore


@dataclass(frozen=True)
class CheckOutcome:
    result: ChangeResult
    report: Optional[DispatchReport] = None

    @property
    def alerted(self) -> bool:
        return self.report is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "alerted": self.alerted,
            "dispatch": self.report.to_dict() if self.report else None,
        }


class MonitorService:
    """
    FLOW: register_monitor captures a baseline -> check_for_changes fetches and detects ->
    dispatch fans the result out -> run_check combines both, honouring the target's alert trigger.

    Invariants:
    - A target is stored only after its baseline was captured; registration fails loudly otherwise.
    - Targets are never auto-deleted; unregister_monitor is the only removal path.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        snapshots: SnapshotStore,
        dispatcher: AlertDispatcher,
        registry: Optional[EndpointRegistry] = None,
        monitors: Optional[MonitorStore] = None,
        extractor: Optional[SnapshotExtractor] = None,
        timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        settle_ms: int = SETTLE_DELAY_MS,
    ):
        self.fetcher = fetcher
        self.snapshots = snapshots
        self.dispatcher = dispatcher
        self.registry = registry or EndpointRegistry()
        self.monitors = monitors or InMemoryMonitorStore()
        self.extractor = extractor or SnapshotExtractor()
        self.detector = ChangeDetector(snapshots, self.extractor)
        self.fetch_options = FetchOptions(timeout_ms=timeout_ms, settle_ms=settle_ms)

    def register_monitor(self, config: Dict[str, Any]) -> MonitorTarget:
        target = MonitorTarget.from_config(config)
        logger.info(f"[MONITOR] Registering {target.target_id} -> {target.url} ({target.schedule.value})")

        # FetchFailure propagates: no target without a baseline
        page = self.fetcher.fetch(target.url, self.fetch_options)
        baseline = self.extractor.from_page(page)

        with self.snapshots.locked(target.target_id):
            self.snapshots.put(target.target_id, baseline)

        self.monitors.put(target)
        self.registry.unregister_target(target.target_id)
        for endpoint in target.webhook_endpoints():
            self.registry.register(endpoint)

        logger.info(f"[MONITOR] Baseline captured for {target.target_id} (hash {baseline.content_hash[:12]})")
        return target

    def unregister_monitor(self, target_id: str) -> bool:
        target = self.monitors.remove(target_id)
        if target is None:
            return False
        with self.snapshots.locked(target_id):
            self.snapshots.remove(target_id)
        self.registry.unregister_target(target_id)
        logger.info(f"[MONITOR] Unregistered {target_id}")
        return True

    def get_monitor(self, target_id: str) -> MonitorTarget:
        target = self.monitors.get(target_id)
        if target is None:
            raise BaselineMissing(target_id)
        return target

    def list_monitors(self) -> List[MonitorTarget]:
        return self.monitors.all()

    def check_for_changes(self, target_id: str) -> ChangeResult:
        target = self.get_monitor(target_id)
        logger.info(f"[MONITOR] Checking {target_id} ({target.url})")
        # Fetch runs under the target lock so overlapping checks are serialised end to end
        return self.detector.detect_fetched(target_id, lambda: self.fetcher.fetch(target.url, self.fetch_options))

    def dispatch(self, target_id: str, result: ChangeResult) -> DispatchReport:
        return self.dispatcher.dispatch(self.get_monitor(target_id), result)

    def run_check(self, target_id: str) -> CheckOutcome:
        """One scheduled cycle: detect, then alert when the target's trigger matches."""
        target = self.get_monitor(target_id)
        result = self.check_for_changes(target_id)
        if not target.alert_trigger.matches(result):
            return CheckOutcome(result=result)
        return CheckOutcome(result=result, report=self.dispatcher.dispatch(target, result))
