import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pagewatch.core import MAX_WORKERS, POLL_INTERVAL, logger
from pagewatch.monitor.models import MonitorTarget
from pagewatch.monitor.service import CheckOutcome, MonitorService


class MonitorScheduler:
    """
    FLOW: Polls registered targets -> Selects those whose schedule interval has elapsed ->
    Runs their checks concurrently -> Isolates per-target failures -> Sleeps until the next poll.

    A target seen for the first time is considered freshly checked (its baseline was just taken).
    """

    def __init__(self, service: MonitorService, max_workers: int = MAX_WORKERS,
                 poll_interval: float = POLL_INTERVAL):
        self.service = service
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self._last_run: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def due_targets(self, now: Optional[datetime] = None) -> List[MonitorTarget]:
        now = now or datetime.now(timezone.utc)
        due = []
        with self._lock:
            targets = self.service.list_monitors()
            known = {t.target_id for t in targets}
            for stale in set(self._last_run) - known:
                del self._last_run[stale]

            for target in targets:
                last = self._last_run.setdefault(target.target_id, now)
                if now - last >= target.schedule.interval:
                    due.append(target)
        return due

    def run_due(self, now: Optional[datetime] = None) -> Dict[str, CheckOutcome]:
        """Runs every due check. A failing target is logged and retried at its next interval."""
        now = now or datetime.now(timezone.utc)
        due = self.due_targets(now)
        if not due:
            return {}

        logger.info(f"[SCHEDULER] {len(due)} target(s) due, running with {self.max_workers} workers")
        outcomes: Dict[str, CheckOutcome] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="Monitor") as executor:
            future_to_target = {
                executor.submit(self.service.run_check, target.target_id): target
                for target in due
            }
            for future in as_completed(future_to_target):
                target = future_to_target[future]
                with self._lock:
                    self._last_run[target.target_id] = now
                try:
                    outcomes[target.target_id] = future.result()
                except Exception as e:
                    logger.error(f"[SCHEDULER] Check failed for {target.target_id}: {e}")

        logger.info(f"[SCHEDULER] Completed {len(outcomes)}/{len(due)} checks")
        return outcomes

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info(f"[SCHEDULER] Started (poll interval {self.poll_interval}s)")
        while not stop_event.is_set():
            self.run_due()
            stop_event.wait(self.poll_interval)
        logger.info("[SCHEDULER] Stopped")
