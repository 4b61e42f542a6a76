from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ScreenshotPaths:
    reference: str
    current: str
    diff: Optional[str] = None


@dataclass(frozen=True)
class VisualComparison:
    """
    Immutable result of a pixel-level comparison between two captured pages.
    change_percent = 100 - similarity_percent; match holds when similarity_percent >= match_threshold.
    """
    reference_url: str
    current_url: str
    similarity_percent: float
    pixel_diff_count: int
    total_pixels: int
    change_percent: float
    screenshot_paths: ScreenshotPaths
    match_threshold: float = 95.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def match(self) -> bool:
        return self.similarity_percent >= self.match_threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "referenceUrl": self.reference_url,
            "currentUrl": self.current_url,
            "similarityPercent": self.similarity_percent,
            "pixelDiffCount": self.pixel_diff_count,
            "totalPixels": self.total_pixels,
            "changePercent": self.change_percent,
            "match": self.match,
            "matchThreshold": self.match_threshold,
            "screenshotPaths": {
                "reference": self.screenshot_paths.reference,
                "current": self.screenshot_paths.current,
                "diff": self.screenshot_paths.diff,
            },
            "timestamp": self.timestamp.isoformat(),
        }
