"""
Screenshot-based visual comparison.

Pixel distance follows the pixelmatch YIQ metric: a pixel differs when the
perceived colour delta exceeds 35215 * threshold^2. Screenshots of different
size are compared on the union canvas; area covered by only one image counts
as changed.

pixelmatch's anti-aliasing detection is not applied: every pixel over the
threshold counts, including edge pixels pixelmatch would skip as anti-aliased.
"""

import io
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from pagewatch.core import (
    MATCH_THRESHOLD,
    NAVIGATION_TIMEOUT_MS,
    PIXEL_THRESHOLD,
    SCREENSHOT_DIR,
    SETTLE_DELAY_MS,
    logger,
)
from pagewatch.errors import CaptureFailure, FetchFailure, ReferenceMissing
from pagewatch.rendering.engine import PageFetcher
from pagewatch.rendering.models import FetchOptions, Viewport
from pagewatch.visual.models import ScreenshotPaths, VisualComparison

MAX_YIQ_DELTA = 35215.0
# Opacity of unchanged pixels in the diff visualisation
DIFF_ALPHA = 0.1
DIFF_COLOR = (255, 0, 0)


@dataclass
class PixelDiff:
    diff_pixels: int
    total_pixels: int
    similarity_percent: float
    diff_image: Optional[Image.Image] = None


def _load_rgba(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.float32)


def _pad(arr: np.ndarray, height: int, width: int) -> np.ndarray:
    if arr.shape[0] == height and arr.shape[1] == width:
        return arr
    canvas = np.zeros((height, width, 4), dtype=np.float32)
    canvas[:arr.shape[0], :arr.shape[1]] = arr
    return canvas


def _yiq(rgba: np.ndarray):
    # Blend over white so transparent pixels compare as background
    alpha = rgba[..., 3] / 255.0
    r = 255.0 + (rgba[..., 0] - 255.0) * alpha
    g = 255.0 + (rgba[..., 1] - 255.0) * alpha
    b = 255.0 + (rgba[..., 2] - 255.0) * alpha

    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def compare_images(reference: bytes, current: bytes, threshold: float = PIXEL_THRESHOLD,
                   render_diff: bool = True) -> PixelDiff:
    """
    Compare two encoded raster images pixel by pixel.
    Identical inputs always yield similarity 100.0 and zero differing pixels.
    """
    ref = _load_rgba(reference)
    cur = _load_rgba(current)

    height = max(ref.shape[0], cur.shape[0])
    width = max(ref.shape[1], cur.shape[1])
    total = width * height
    if total == 0:
        return PixelDiff(diff_pixels=0, total_pixels=0, similarity_percent=100.0)

    overlap = np.zeros((height, width), dtype=bool)
    overlap[:min(ref.shape[0], cur.shape[0]), :min(ref.shape[1], cur.shape[1])] = True

    y1, i1, q1 = _yiq(_pad(ref, height, width))
    y2, i2, q2 = _yiq(_pad(cur, height, width))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2

    different = (delta > MAX_YIQ_DELTA * threshold * threshold) | ~overlap
    diff_pixels = int(np.count_nonzero(different))
    similarity = (total - diff_pixels) / total * 100.0

    diff_image = None
    if render_diff:
        gray = np.clip(255.0 + (y1 - 255.0) * DIFF_ALPHA, 0, 255)
        out = np.stack([gray, gray, gray], axis=-1).astype(np.uint8)
        out[different] = DIFF_COLOR
        diff_image = Image.fromarray(out, "RGB")

    return PixelDiff(
        diff_pixels=diff_pixels,
        total_pixels=total,
        similarity_percent=similarity,
        diff_image=diff_image,
    )


class VisualDiffer:
    """
    FLOW: Captures reference and current pages (fixed viewport, settle delay, navigation ceiling) ->
    Persists both screenshots under timestamp-qualified names -> Computes pixel similarity ->
    Optionally writes a diff visualisation -> Returns an immutable VisualComparison whose
    match flag compares similarity with match_threshold.

    Captures run sequentially; each fetch opens its own rendering context.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        output_dir=SCREENSHOT_DIR,
        threshold: float = PIXEL_THRESHOLD,
        match_threshold: float = MATCH_THRESHOLD,
        viewport: Optional[Viewport] = None,
        settle_ms: int = SETTLE_DELAY_MS,
        timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        write_diff: bool = True,
    ):
        self._fetcher = fetcher
        self._output_dir = Path(output_dir)
        self._threshold = threshold
        self._match_threshold = match_threshold
        self._options = FetchOptions(
            timeout_ms=timeout_ms,
            viewport=viewport or Viewport(),
            settle_ms=settle_ms,
            screenshot=True,
            full_page=True,
        )
        self._write_diff = write_diff

    def compare(self, reference_url: str, current_url: str) -> VisualComparison:
        logger.info(f"[VISUAL] Comparing {reference_url} against {current_url}")

        reference = self._capture(reference_url)
        current = self._capture(current_url)

        stamp = self._stamp()
        reference_path = self._output_dir / f"reference-{stamp}.png"
        reference_path.write_bytes(reference)
        return self._finish(reference_url, reference_path, reference, current_url, current, stamp)

    def compare_to_reference(self, reference_path, current_url: str) -> VisualComparison:
        """
        Compares a fresh capture of `current_url` with a previously stored screenshot.
        A missing reference file raises ReferenceMissing before any navigation happens.
        """
        reference_path = Path(reference_path)
        if not reference_path.is_file():
            logger.error(f"[VISUAL] Reference screenshot missing: {reference_path}")
            raise ReferenceMissing(str(reference_path))

        logger.info(f"[VISUAL] Comparing stored {reference_path} against {current_url}")
        reference = reference_path.read_bytes()
        current = self._capture(current_url)
        return self._finish(str(reference_path), reference_path, reference, current_url, current, self._stamp())

    def _stamp(self) -> str:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        return f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S%f')}-{uuid.uuid4().hex[:8]}"

    def _finish(self, reference_url, reference_path, reference, current_url, current, stamp) -> VisualComparison:
        current_path = self._output_dir / f"current-{stamp}.png"
        current_path.write_bytes(current)

        result = compare_images(reference, current, self._threshold, render_diff=self._write_diff)

        diff_path = None
        if self._write_diff and result.diff_image is not None:
            diff_path = self._output_dir / f"diff-{stamp}.png"
            result.diff_image.save(diff_path, format="PNG")

        similarity = result.similarity_percent
        matched = similarity >= self._match_threshold
        logger.info(
            f"[VISUAL] Similarity {similarity:.2f}% "
            f"({result.diff_pixels}/{result.total_pixels} pixels differ) "
            f"{'MATCH' if matched else 'MISMATCH'} at {self._match_threshold:g}%"
        )

        return VisualComparison(
            reference_url=reference_url,
            current_url=current_url,
            similarity_percent=similarity,
            pixel_diff_count=result.diff_pixels,
            total_pixels=result.total_pixels,
            change_percent=100.0 - similarity,
            screenshot_paths=ScreenshotPaths(
                reference=str(reference_path),
                current=str(current_path),
                diff=str(diff_path) if diff_path else None,
            ),
            match_threshold=self._match_threshold,
        )

    def _capture(self, url: str) -> bytes:
        try:
            page = self._fetcher.fetch(url, self._options)
            page.raise_for_error()
        except FetchFailure as e:
            logger.error(f"[VISUAL] Capture failed for {url}: {e.reason}")
            raise CaptureFailure(url, e.reason, timed_out=e.timed_out) from e

        if not page.screenshot:
            raise CaptureFailure(url, "fetcher returned no screenshot")
        return page.screenshot


def combine_report(change_result, visual_comparison) -> dict:
    """Single report for callers running both content detection and visual diffing."""
    report = {
        "changed": False,
        "content": None,
        "visual": None,
    }
    if change_result is not None:
        report["content"] = change_result.to_dict()
        report["changed"] = report["changed"] or change_result.changed
    if visual_comparison is not None:
        report["visual"] = visual_comparison.to_dict()
        report["changed"] = report["changed"] or visual_comparison.pixel_diff_count > 0
    return report
