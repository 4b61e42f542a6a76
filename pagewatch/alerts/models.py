from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class AlertChannel(Enum):
    WEBHOOK = "webhook"
    EMAIL = "email"
    SLACK = "slack"


@dataclass(frozen=True)
class WebhookEndpoint:
    """
    A registered webhook receiver.
    target_id=None subscribes the endpoint to every monitored target.
    """
    endpoint_id: str
    url: str
    target_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.endpoint_id, "url": self.url, "targetId": self.target_id}


@dataclass(frozen=True)
class AlertDeliveryRecord:
    endpoint_id: str
    channel: AlertChannel
    success: bool
    http_status: Optional[int] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpointId": self.endpoint_id,
            "channel": self.channel.value,
            "success": self.success,
            "httpStatus": self.http_status,
            "error": self.error_message,
        }


@dataclass(frozen=True)
class DispatchReport:
    """
    Outcome of one dispatch: one record per attempted endpoint.
    A partially failed batch is still a completed dispatch.
    """
    target_id: str
    records: List[AlertDeliveryRecord] = field(default_factory=list)
    dispatched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> List[AlertDeliveryRecord]:
        return [r for r in self.records if r.success]

    @property
    def failed(self) -> List[AlertDeliveryRecord]:
        return [r for r in self.records if not r.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetId": self.target_id,
            "dispatchedAt": self.dispatched_at.isoformat(),
            "delivered": len(self.succeeded),
            "failed": len(self.failed),
            "records": [r.to_dict() for r in self.records],
        }


def build_payload(target, result) -> Dict[str, Any]:
    """Alert body sent to every channel: {url, changeType, differences, timestamp}."""
    return {
        "url": target.url,
        "changeType": result.change_type.value,
        "differences": list(result.differences),
        "timestamp": result.timestamp.isoformat(),
    }
