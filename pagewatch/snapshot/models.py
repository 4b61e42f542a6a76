from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable capture of a monitored page at one instant.
    The baseline for a target is the most recently stored Snapshot.
    """
    url: str
    content_hash: str  # SHA256(normalized projection)
    price_hash: str    # SHA256(distinct currency strings)
    title: Optional[str]
    headings: List[str]
    paragraphs: List[str]  # first 10
    links: List[str]       # first 20
    html: str
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "content_hash": self.content_hash,
            "price_hash": self.price_hash,
            "title": self.title,
            "headings": list(self.headings),
            "paragraphs": list(self.paragraphs),
            "links": list(self.links),
            "html": self.html,
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            url=data["url"],
            content_hash=data["content_hash"],
            price_hash=data["price_hash"],
            title=data.get("title"),
            headings=list(data.get("headings") or []),
            paragraphs=list(data.get("paragraphs") or []),
            links=list(data.get("links") or []),
            html=data.get("html") or "",
            captured_at=datetime.fromisoformat(data["captured_at"]),
        )
