"""
FILE DESCRIPTION: Offline site replication. Renders a page, captures a bounded set of its assets
and writes a self-contained static bundle.
KEY FUNCTIONS/CLASSES: ReplicationEngine, output_dir_for
"""

import re
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import tldextract
from bs4 import BeautifulSoup

from pagewatch.core import CLONE_DIR, NAVIGATION_TIMEOUT_MS, SETTLE_DELAY_MS, logger
from pagewatch.errors import AssetFailure, CloneFailure, FetchFailure
from pagewatch.locks import KeyedLock
from pagewatch.rendering.engine import PageFetcher
from pagewatch.rendering.models import FetchOptions
from pagewatch.replication.assets import (
    CSS_URL_REGEX,
    FONT_EXTENSIONS,
    IMAGE_EXTENSIONS,
    AssetDownloader,
    is_font_url,
    pick_extension,
    resolve_url,
)
from pagewatch.replication.deploy import ENTRY_DOCUMENT, write_deployment_descriptors
from pagewatch.replication.models import (
    AssetCounts,
    AssetKind,
    AssetLimits,
    CloneStage,
    ReplicationBundle,
    SkippedAsset,
)

# Offline suffix list: never fetch the public suffix list over the network
_domain_parts = tldextract.TLDExtract(suffix_list_urls=())

# Output directories currently being written by a clone in this process
_ACTIVE_CLONES = KeyedLock()


def output_dir_for(url: str, output_root=CLONE_DIR) -> Path:
    """Deterministic bundle directory for `url`: <root>/<sub_domain_suffix>[_<port>]."""
    parsed = urlparse(url)
    ext = _domain_parts(url)
    host = ".".join(part for part in (ext.subdomain, ext.domain, ext.suffix) if part)
    host = host or parsed.hostname or "site"
    if parsed.port:
        host = f"{host}_{parsed.port}"
    return Path(output_root) / re.sub(r"[^a-z0-9_-]", "_", host.lower())


class ReplicationEngine:
    """
    FLOW: Resolves output dir -> Rendered fetch -> Capped asset collection ->
    Reference rewriting (assets, fonts, origin links) -> index.html + deployment descriptors.

    Invariants:
    - Only one clone writes a given output directory at a time; a concurrent clone fails fast.
    - A failed asset never fails the clone. It stays at its absolute URL and is listed as skipped.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        downloader: Optional[AssetDownloader] = None,
        output_root=CLONE_DIR,
        limits: Optional[AssetLimits] = None,
        timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        settle_ms: int = SETTLE_DELAY_MS,
    ):
        self.fetcher = fetcher
        self.downloader = downloader or AssetDownloader()
        self.output_root = Path(output_root)
        self.limits = limits or AssetLimits()
        self.fetch_options = FetchOptions(timeout_ms=timeout_ms, settle_ms=settle_ms)

    def output_dir_for(self, url: str) -> Path:
        return output_dir_for(url, self.output_root)

    def clone(self, url: str) -> ReplicationBundle:
        output_dir = self.output_dir_for(url)
        with _ACTIVE_CLONES.hold(str(output_dir.resolve()), blocking=False) as acquired:
            if not acquired:
                logger.warning(f"[CLONE] Rejected {url}: {output_dir} is being written by another clone")
                raise CloneFailure(url, f"another clone is already writing {output_dir}")
            return _CloneJob(self, url, output_dir).run()


class _CloneJob:
    """State of a single clone invocation. Never shared between invocations."""

    def __init__(self, engine: ReplicationEngine, url: str, output_dir: Path):
        self.engine = engine
        self.url = url
        self.output_dir = output_dir
        self.stage = CloneStage.STARTED
        self.base_url = url

        self.local_paths: Dict[AssetKind, Dict[str, str]] = {kind: {} for kind in AssetKind}
        self.failed: Dict[AssetKind, set] = {kind: set() for kind in AssetKind}
        self.attempts: Dict[AssetKind, int] = {kind: 0 for kind in AssetKind}
        self.skipped: List[SkippedAsset] = []
        # (tag, attribute, new value) applied during rewriting
        self.rewrites: List[Tuple[object, str, str]] = []
        # (local file, css text, stylesheet url) written once fonts are resolved
        self.pending_css: List[Tuple[Path, str, str]] = []

    # ---- stage bookkeeping ----

    def _enter(self, stage: CloneStage):
        logger.info(f"[CLONE] {self.url}: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def _bundle(self, success: bool, failure_reason: Optional[str] = None,
                deployment_files: Optional[List[str]] = None) -> ReplicationBundle:
        entry = self.output_dir / ENTRY_DOCUMENT
        return ReplicationBundle(
            url=self.url,
            output_directory=str(self.output_dir),
            entry_document_path=str(entry) if success else None,
            asset_counts=AssetCounts(
                images=len(self.local_paths[AssetKind.IMAGE]),
                stylesheets=len(self.local_paths[AssetKind.STYLESHEET]),
                scripts=len(self.local_paths[AssetKind.SCRIPT]),
                fonts=len(self.local_paths[AssetKind.FONT]),
            ),
            success=success,
            stage=self.stage,
            failure_reason=failure_reason,
            skipped_assets=list(self.skipped),
            deployment_files=deployment_files or [],
        )

    def _fail(self, reason: str) -> CloneFailure:
        failed_at = self.stage
        self._enter(CloneStage.FAILED)
        logger.error(f"[CLONE] {self.url} failed during {failed_at.value}: {reason}")
        return CloneFailure(self.url, reason, bundle=self._bundle(False, reason))

    # ---- pipeline ----

    def run(self) -> ReplicationBundle:
        self._enter(CloneStage.FETCHING)
        try:
            page = self.engine.fetcher.fetch(self.url, self.engine.fetch_options)
            page.raise_for_error()
        except FetchFailure as e:
            raise self._fail(f"navigation failed: {e.reason}") from e

        self.base_url = page.final_url or self.url

        try:
            # Re-clones start from an empty asset tree
            assets_dir = self.output_dir / "assets"
            if assets_dir.exists():
                shutil.rmtree(assets_dir)
            for kind in AssetKind:
                (self.output_dir / "assets" / kind.value).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self._fail(f"output directory not writable: {e}") from e

        soup = BeautifulSoup(page.html, "lxml")

        self._enter(CloneStage.ASSET_COLLECTION)
        self._collect_stylesheets(soup)
        self._collect_scripts(soup)
        self._collect_images(soup)

        self._enter(CloneStage.REWRITING)
        self._apply_rewrites()
        self._rewrite_stylesheets()
        self._rewrite_inline_styles(soup)
        self._strip_origin(soup)

        self._enter(CloneStage.FINALIZING)
        try:
            (self.output_dir / ENTRY_DOCUMENT).write_text(str(soup), encoding="utf-8")
            deployment_files = write_deployment_descriptors(self.output_dir)
        except OSError as e:
            raise self._fail(f"could not write bundle: {e}") from e

        self._enter(CloneStage.SUCCEEDED)
        bundle = self._bundle(True, deployment_files=deployment_files)
        counts = bundle.asset_counts
        logger.info(
            f"[CLONE] {self.url} -> {self.output_dir} "
            f"(css={counts.stylesheets}, js={counts.scripts}, images={counts.images}, "
            f"fonts={counts.fonts}, skipped={len(self.skipped)})"
        )
        return bundle

    # ---- asset collection ----

    def _collect_stylesheets(self, soup):
        links = [
            link for link in soup.find_all("link", href=True)
            if "stylesheet" in [rel.lower() for rel in (link.get("rel") or [])]
        ]
        for link in links:
            self._collect(AssetKind.STYLESHEET, link, "href", self.engine.limits.stylesheets)

    def _collect_scripts(self, soup):
        for script in soup.find_all("script", src=True):
            self._collect(AssetKind.SCRIPT, script, "src", self.engine.limits.scripts)

    def _collect_images(self, soup):
        for img in soup.find_all("img"):
            src = (img.get("src") or "").strip()
            # Lazy-loaded images carry a placeholder src and the real one in data-src
            if img.get("data-src") and (not src or src.startswith("data:")):
                attr = "data-src"
            else:
                attr = "src" if src else None
            if attr:
                self._collect(AssetKind.IMAGE, img, attr, self.engine.limits.images)

    def _collect(self, kind: AssetKind, tag, attr: str, limit: int):
        absolute = resolve_url(tag.get(attr), self.base_url)
        if absolute is None:
            return

        known = self.local_paths[kind].get(absolute)
        if known:
            self.rewrites.append((tag, attr, known))
            return

        if absolute in self.failed[kind] or self.attempts[kind] >= limit:
            self.rewrites.append((tag, attr, absolute))
            return

        local = self._capture(kind, absolute)
        self.rewrites.append((tag, attr, local or absolute))

    def _capture(self, kind: AssetKind, absolute: str) -> Optional[str]:
        """Downloads one asset. Returns its bundle-relative path, or None if it was skipped."""
        self.attempts[kind] += 1
        n = len(self.local_paths[kind])
        try:
            content, content_type = self.engine.downloader.download(absolute)
            if kind is AssetKind.STYLESHEET:
                name = f"style_{n}.css"
            elif kind is AssetKind.SCRIPT:
                name = f"script_{n}.js"
            elif kind is AssetKind.IMAGE:
                name = f"img_{n}.{pick_extension(absolute, content_type, IMAGE_EXTENSIONS, 'png')}"
            else:
                name = f"font_{n}.{pick_extension(absolute, content_type, FONT_EXTENSIONS, 'woff2')}"

            path = self.output_dir / "assets" / kind.value / name
            if kind is AssetKind.STYLESHEET:
                self.pending_css.append((path, content.decode("utf-8", errors="replace"), absolute))
            else:
                try:
                    path.write_bytes(content)
                except OSError as e:
                    raise AssetFailure(absolute, f"could not write {path}: {e}") from e
        except AssetFailure as e:
            logger.warning(f"[CLONE] Skipping {kind.value} asset {absolute}: {e.reason}")
            self.failed[kind].add(absolute)
            self.skipped.append(SkippedAsset(url=absolute, kind=kind, reason=e.reason))
            return None

        local = f"assets/{kind.value}/{name}"
        self.local_paths[kind][absolute] = local
        return local

    # ---- rewriting ----

    def _apply_rewrites(self):
        for tag, attr, value in self.rewrites:
            tag[attr] = value
            local = not value.startswith(("http://", "https://"))
            if local:
                # Local copies are rewritten, so the original SRI hash no longer matches
                for dropped in ("integrity", "crossorigin"):
                    if tag.has_attr(dropped):
                        del tag[dropped]
            if tag.name != "img":
                continue
            if attr == "data-src":
                tag["src"] = value
            if local:
                for dropped in ("srcset", "data-srcset"):
                    if tag.has_attr(dropped):
                        del tag[dropped]

    def _rewrite_css(self, css: str, css_url: str, font_prefix: str) -> str:
        """Localises font url()s and absolutises every other relative url()."""
        def replace(match):
            absolute = resolve_url(match.group(2), css_url)
            if absolute is None:
                return match.group(0)
            if is_font_url(absolute):
                local = self._capture_font(absolute)
                if local:
                    return f'url("{font_prefix}{local}")'
            return f'url("{absolute}")'

        return CSS_URL_REGEX.sub(replace, css)

    def _capture_font(self, absolute: str) -> Optional[str]:
        known = self.local_paths[AssetKind.FONT].get(absolute)
        if known:
            return Path(known).name
        if absolute in self.failed[AssetKind.FONT]:
            return None
        if self.attempts[AssetKind.FONT] >= self.engine.limits.fonts:
            return None
        local = self._capture(AssetKind.FONT, absolute)
        return Path(local).name if local else None

    def _rewrite_stylesheets(self):
        for path, css, css_url in self.pending_css:
            # Stylesheets live in assets/css, fonts in assets/fonts
            rewritten = self._rewrite_css(css, css_url, "../fonts/")
            try:
                path.write_text(rewritten, encoding="utf-8")
            except OSError as e:
                raise self._fail(f"could not write stylesheet {path}: {e}") from e

    def _rewrite_inline_styles(self, soup):
        for style in soup.find_all("style"):
            original = style.string
            if original:
                # Keep the string class so CSS is not entity-escaped on output
                rewritten = self._rewrite_css(str(original), self.base_url, "assets/fonts/")
                original.replace_with(type(original)(rewritten))

    def _strip_origin(self, soup):
        for base in soup.find_all("base"):
            base.decompose()

        origin = urlparse(self.base_url)
        for tag_name, attr in (("a", "href"), ("form", "action")):
            for tag in soup.find_all(tag_name, attrs={attr: True}):
                absolute = resolve_url(tag[attr], self.base_url)
                if absolute is None:
                    continue
                parsed = urlparse(absolute)
                if (parsed.scheme, parsed.netloc) != (origin.scheme, origin.netloc):
                    continue
                relative = "./" + parsed.path.lstrip("/")
                if parsed.query:
                    relative += f"?{parsed.query}"
                if parsed.fragment:
                    relative += f"#{parsed.fragment}"
                tag[attr] = relative
