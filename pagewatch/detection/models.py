from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ChangeType(Enum):
    CONTENT = "content"
    PRICE = "price"
    STRUCTURE = "structure"
    NONE = "none"


@dataclass(frozen=True)
class ChangeResult:
    """
    Immutable output of one detection cycle.
    Not persisted here; consumers (dispatcher, callers) decide retention.
    """
    target_id: str
    url: str
    changed: bool
    change_type: ChangeType
    differences: List[str]
    previous_hash: Optional[str]
    current_hash: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetId": self.target_id,
            "url": self.url,
            "changed": self.changed,
            "changeType": self.change_type.value,
            "differences": list(self.differences),
            "previousHash": self.previous_hash,
            "currentHash": self.current_hash,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeResult":
        timestamp = data.get("timestamp")
        return cls(
            target_id=data["targetId"],
            url=data["url"],
            changed=bool(data["changed"]),
            change_type=ChangeType(data.get("changeType", "none")),
            differences=list(data.get("differences") or []),
            previous_hash=data.get("previousHash"),
            current_hash=data.get("currentHash", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
        )
