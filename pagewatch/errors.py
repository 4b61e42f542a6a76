"""
Failure taxonomy shared by every pipeline phase.

Fatal (abort the operation, surface to the caller with the cause chained):
    FetchFailure, BaselineMissing, CaptureFailure, CloneFailure, ReferenceMissing
Non-fatal (caught locally, logged, folded into a best-effort result):
    AssetFailure, DeliveryFailure
"""

from typing import Optional


class PageWatchError(Exception):
    """Base exception for the pagewatch pipeline."""
    pass


class FetchFailure(PageWatchError):
    """Raised when the upstream page is unreachable, errored or timed out."""

    def __init__(self, url: str, reason: str, timed_out: bool = False):
        self.url = url
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"Fetch failed for {url}: {reason}")


class BaselineMissing(PageWatchError):
    """Raised when a check is attempted for a target with no captured baseline."""

    def __init__(self, target_id: str):
        self.target_id = target_id
        super().__init__(f"No baseline registered for target {target_id}")


class CaptureFailure(PageWatchError):
    """Raised when a screenshot navigation fails. Never merged with comparison results."""

    def __init__(self, url: str, reason: str, timed_out: bool = False):
        self.url = url
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"Screenshot capture failed for {url}: {reason}")


class AssetFailure(PageWatchError):
    """Per-asset download failure. Absorbed by the replication engine."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Asset download failed for {url}: {reason}")


class CloneFailure(PageWatchError):
    """Unrecoverable top-level clone error. Carries the failed bundle when one exists."""

    def __init__(self, url: str, reason: str, bundle=None):
        self.url = url
        self.reason = reason
        self.bundle = bundle
        super().__init__(f"Clone failed for {url}: {reason}")


class DeliveryFailure(PageWatchError):
    """Per-endpoint alert delivery failure. Aggregated into a DispatchReport."""

    def __init__(self, endpoint_id: str, reason: str, http_status: Optional[int] = None):
        self.endpoint_id = endpoint_id
        self.reason = reason
        self.http_status = http_status
        super().__init__(f"Delivery to {endpoint_id} failed: {reason}")


class ReferenceMissing(PageWatchError):
    """Raised when a stored reference screenshot does not exist on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Reference screenshot not found: {path}")
