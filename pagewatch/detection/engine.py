from typing import Callable, List, Optional

from pagewatch.core import logger
from pagewatch.detection.models import ChangeResult, ChangeType
from pagewatch.errors import BaselineMissing
from pagewatch.rendering.models import FetchedPage
from pagewatch.snapshot.extractor import SnapshotExtractor
from pagewatch.snapshot.models import Snapshot
from pagewatch.snapshot.storage import SnapshotStore

# Leading slice of raw HTML compared for structural change
STRUCTURE_PREFIX_CHARS = 1000

PRICE_NOTE = "Prices have changed."
STRUCTURE_NOTE = "HTML structure has changed."
GENERIC_CONTENT_NOTE = "Page content has changed."


class ChangeDetector:
    """
    Compares a fresh Snapshot with the stored baseline and replaces the baseline.
    Invariants:
    - Ordering: baseline read happens-before replace, under the store's per-target lock.
    - Staleness: the result always describes the baseline current before replacement.
    - Idempotent: detecting the same fresh snapshot twice yields changed=False the second time.
    """

    def __init__(self, store: SnapshotStore, extractor: Optional[SnapshotExtractor] = None):
        self._store = store
        self._extractor = extractor or SnapshotExtractor()

    def detect(self, target_id: str, fresh: Snapshot) -> ChangeResult:
        with self._store.locked(target_id):
            result = self._replace_baseline(target_id, fresh)
        self._log(result)
        return result

    def detect_page(self, target_id: str, page: FetchedPage) -> ChangeResult:
        """Extracts and detects in one step. Fetch errors surface as FetchFailure."""
        return self.detect(target_id, self._extractor.from_page(page))

    def detect_fetched(self, target_id: str, fetch: Callable[[], FetchedPage]) -> ChangeResult:
        """
        Runs `fetch` while holding the target's lock, then detects against the baseline.
        A slow fetch therefore cannot land its older page on top of a newer check's baseline.
        """
        with self._store.locked(target_id):
            if self._store.get(target_id) is None:
                raise BaselineMissing(target_id)
            fresh = self._extractor.from_page(fetch())
            result = self._replace_baseline(target_id, fresh)
        self._log(result)
        return result

    def _replace_baseline(self, target_id: str, fresh: Snapshot) -> ChangeResult:
        # Caller holds the store lock for target_id
        baseline = self._store.get(target_id)
        if baseline is None:
            raise BaselineMissing(target_id)
        result = self.compare(target_id, baseline, fresh)
        self._store.put(target_id, fresh)
        return result

    def _log(self, result: ChangeResult):
        target_id = result.target_id
        if result.changed:
            logger.warning(
                f"[DETECT] CHANGE DETECTED target={target_id} type={result.change_type.value} "
                f"({len(result.differences)} difference(s))"
            )
        else:
            logger.info(f"[DETECT] UNCHANGED target={target_id} (hash match)")

    def compare(self, target_id: str, baseline: Snapshot, fresh: Snapshot) -> ChangeResult:
        """Pure comparison of two snapshots; does not touch the store."""
        if fresh.content_hash == baseline.content_hash:
            return ChangeResult(
                target_id=target_id,
                url=fresh.url,
                changed=False,
                change_type=ChangeType.NONE,
                differences=[],
                previous_hash=baseline.content_hash,
                current_hash=fresh.content_hash,
            )

        differences: List[str] = []

        # 1. PRICE
        price_changed = fresh.price_hash != baseline.price_hash
        if price_changed:
            differences.append(PRICE_NOTE)

        # 2. CONTENT
        content_changed = False
        if fresh.title != baseline.title:
            differences.append(f'Title changed from "{baseline.title or ""}" to "{fresh.title or ""}"')
            content_changed = True
        if len(fresh.headings) != len(baseline.headings):
            differences.append(
                f"Heading count changed from {len(baseline.headings)} to {len(fresh.headings)}"
            )
            content_changed = True

        # 3. STRUCTURE
        structure_changed = (
            fresh.html[:STRUCTURE_PREFIX_CHARS] != baseline.html[:STRUCTURE_PREFIX_CHARS]
        )
        if structure_changed:
            differences.append(STRUCTURE_NOTE)

        # Precedence: price > structure > content
        if price_changed:
            change_type = ChangeType.PRICE
        elif structure_changed:
            change_type = ChangeType.STRUCTURE
        else:
            change_type = ChangeType.CONTENT
            if not content_changed:
                differences.append(GENERIC_CONTENT_NOTE)

        return ChangeResult(
            target_id=target_id,
            url=fresh.url,
            changed=True,
            change_type=change_type,
            differences=differences,
            previous_hash=baseline.content_hash,
            current_hash=fresh.content_hash,
        )
