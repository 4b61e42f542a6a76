import hashlib
import json
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from pagewatch.rendering.models import FetchedPage
from pagewatch.snapshot.models import Snapshot

MAX_PARAGRAPHS = 10
MAX_LINKS = 20
MAX_PRICES = 20

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

# "$" followed by digits/commas with an optional decimal part
PRICE_REGEX = re.compile(r"\$\d[\d,]*(?:\.\d+)?")


def hash_content(normalized_content: str) -> str:
    sha = hashlib.sha256()
    sha.update(normalized_content.encode("utf-8"))
    return sha.hexdigest()


def _clean_text(text: str) -> str:
    return " ".join(text.split())


class SnapshotExtractor:
    """
    Builds Snapshots from rendered HTML.
    Invariants:
    - Determinism: same projection (title, headings, first 10 paragraphs, first 20 links) = same content hash.
    - Bounded: markup outside the projection (ads, timestamps, attributes) never affects the hash.
    - Isolated: no network access.
    """

    def from_page(self, page: FetchedPage) -> Snapshot:
        """
        Builds a Snapshot from a fetched page.
        A page carrying a fetch error raises FetchFailure; it is never treated as content.
        """
        page.raise_for_error()
        return self.extract(page.html, page.url)

    def extract(self, html: str, url: str) -> Snapshot:
        projection = self.project(html)
        return Snapshot(
            url=url,
            content_hash=self.content_hash(projection),
            price_hash=self.price_hash(html),
            title=projection["title"],
            headings=projection["headings"],
            paragraphs=projection["paragraphs"],
            links=projection["links"],
            html=html,
        )

    def project(self, html: str) -> Dict[str, Any]:
        """Normalized, size-bounded projection of the page's text content."""
        soup = BeautifulSoup(html or "", "lxml")

        title: Optional[str] = None
        if soup.title is not None:
            title = _clean_text(soup.title.get_text())

        headings = [_clean_text(h.get_text(" ")) for h in soup.find_all(HEADING_TAGS)]
        paragraphs = [_clean_text(p.get_text(" ")) for p in soup.find_all("p", limit=MAX_PARAGRAPHS)]
        links = [a["href"].strip() for a in soup.find_all("a", href=True, limit=MAX_LINKS)]

        return {
            "title": title,
            "headings": headings,
            "paragraphs": paragraphs,
            "links": links,
        }

    def content_hash(self, projection: Dict[str, Any]) -> str:
        payload = json.dumps(
            [projection["title"], projection["headings"], projection["paragraphs"], projection["links"]],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hash_content(payload)

    def price_hash(self, html: str) -> str:
        return hash_content("|".join(extract_prices(html)))


def extract_prices(html: str) -> List[str]:
    """Distinct currency strings in document order, capped at MAX_PRICES."""
    prices: List[str] = []
    for match in PRICE_REGEX.findall(html or ""):
        if match not in prices:
            prices.append(match)
            if len(prices) >= MAX_PRICES:
                break
    return prices
