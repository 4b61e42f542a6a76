"""
Asset download and URL helpers for site replication.
"""

import mimetypes
import re
from pathlib import PurePosixPath
from typing import Iterable, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from pagewatch.core import REQUEST_TIMEOUT, USER_AGENT
from pagewatch.errors import AssetFailure

SKIP_PREFIXES = ("data:", "javascript:", "blob:", "about:", "mailto:", "tel:", "#")

FONT_EXTENSIONS = {"woff2", "woff", "ttf", "otf", "eot"}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "svg", "webp", "avif", "ico", "bmp"}

# url(...) references inside CSS, quoted or bare
CSS_URL_REGEX = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)


def resolve_url(ref: Optional[str], base_url: str) -> Optional[str]:
    """Absolute http(s) URL for a document reference, or None if it is not downloadable."""
    if not ref:
        return None
    ref = ref.strip()
    if not ref or ref.lower().startswith(SKIP_PREFIXES):
        return None
    absolute = urljoin(base_url, ref)
    if urlparse(absolute).scheme not in ("http", "https"):
        return None
    return absolute


def url_extension(url: str) -> str:
    return PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")


def is_font_url(url: str) -> bool:
    return url_extension(url) in FONT_EXTENSIONS


def pick_extension(url: str, content_type: str, allowed: Iterable[str], default: str) -> str:
    """
    File extension for a downloaded asset.
    Prefers the URL suffix, then the Content-Type, then `default`.
    """
    allowed = set(allowed)
    ext = url_extension(url)
    if ext in allowed:
        return ext
    if content_type:
        guessed = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if guessed and guessed.lstrip(".") in allowed:
            return guessed.lstrip(".")
    return default


class AssetDownloader:
    """
    Downloads a single asset over HTTP.
    Every failure (transport error, timeout, non-2xx) is raised as AssetFailure.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = REQUEST_TIMEOUT,
                 user_agent: str = USER_AGENT):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.9",
        }

    def download(self, url: str) -> Tuple[bytes, str]:
        try:
            r = self._session.get(url, timeout=self._timeout, headers=self._headers)
        except requests.exceptions.RequestException as e:
            raise AssetFailure(url, str(e)) from e

        if not (200 <= r.status_code < 300):
            raise AssetFailure(url, f"HTTP {r.status_code}")

        return r.content, r.headers.get("Content-Type", "")
