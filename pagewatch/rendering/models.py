from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pagewatch.core import NAVIGATION_TIMEOUT_MS, SETTLE_DELAY_MS, VIEWPORT_HEIGHT, VIEWPORT_WIDTH
from pagewatch.errors import FetchFailure


@dataclass(frozen=True)
class Viewport:
    width: int = VIEWPORT_WIDTH
    height: int = VIEWPORT_HEIGHT


@dataclass(frozen=True)
class FetchOptions:
    """
    Input contract for a page fetch.
    timeout_ms bounds navigation; settle_ms is waited after navigation before content is read.
    """
    timeout_ms: int = NAVIGATION_TIMEOUT_MS
    viewport: Viewport = field(default_factory=Viewport)
    settle_ms: int = SETTLE_DELAY_MS
    screenshot: bool = False
    full_page: bool = True


@dataclass(frozen=True)
class FetchedPage:
    """
    Immutable output of one page fetch.
    INVARIANT: `error` is set only by fetchers that report soft failures instead of raising.
    """
    url: str
    final_url: str
    html: str
    status_code: int = 200
    screenshot: Optional[bytes] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def raise_for_error(self) -> None:
        if self.error:
            raise FetchFailure(self.url, self.error)
