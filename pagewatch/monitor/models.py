from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List

from pagewatch.alerts.models import AlertChannel, WebhookEndpoint
from pagewatch.detection.models import ChangeResult, ChangeType


class Schedule(Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def interval(self) -> timedelta:
        return {
            Schedule.HOURLY: timedelta(hours=1),
            Schedule.DAILY: timedelta(days=1),
            Schedule.WEEKLY: timedelta(weeks=1),
        }[self]


class AlertTrigger(Enum):
    ANY_CHANGE = "any-change"
    CONTENT_CHANGE = "content-change"
    PRICE_CHANGE = "price-change"
    STRUCTURE_CHANGE = "structure-change"

    def matches(self, result: ChangeResult) -> bool:
        if not result.changed:
            return False
        if self is AlertTrigger.ANY_CHANGE:
            return True
        return {
            AlertTrigger.CONTENT_CHANGE: ChangeType.CONTENT,
            AlertTrigger.PRICE_CHANGE: ChangeType.PRICE,
            AlertTrigger.STRUCTURE_CHANGE: ChangeType.STRUCTURE,
        }[self] is result.change_type


@dataclass(frozen=True)
class MonitorTarget:
    """
    A registered watch.
    INVARIANT: target_id is unique and stable; the target changes only through re-registration.
    """
    target_id: str
    url: str
    schedule: Schedule = Schedule.DAILY
    alert_trigger: AlertTrigger = AlertTrigger.ANY_CHANGE
    alert_channels: FrozenSet[AlertChannel] = field(default_factory=frozenset)
    channel_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MonitorTarget":
        """Builds a target from the camelCase registration payload. Raises ValueError on bad input."""
        target_id = str(config.get("id") or "").strip()
        url = str(config.get("url") or "").strip()
        if not target_id:
            raise ValueError("monitor config requires an 'id'")
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"monitor config requires an http(s) 'url', got {url!r}")

        channels = config.get("alertChannels") or []
        if isinstance(channels, str):
            channels = [channels]

        return cls(
            target_id=target_id,
            url=url,
            schedule=Schedule(config.get("schedule", Schedule.DAILY.value)),
            alert_trigger=AlertTrigger(config.get("alertTrigger", AlertTrigger.ANY_CHANGE.value)),
            alert_channels=frozenset(AlertChannel(c) for c in channels),
            channel_config=dict(config.get("channelConfig") or {}),
        )

    def webhook_endpoints(self) -> List[WebhookEndpoint]:
        """Endpoints declared inline in channel_config['webhook'] as {'url': ...} or {'urls': [...]}."""
        if AlertChannel.WEBHOOK not in self.alert_channels:
            return []
        webhook = self.channel_config.get("webhook") or {}
        urls = list(webhook.get("urls") or [])
        if webhook.get("url"):
            urls.insert(0, webhook["url"])
        return [
            WebhookEndpoint(endpoint_id=f"{self.target_id}:webhook:{i}", url=u, target_id=self.target_id)
            for i, u in enumerate(urls)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.target_id,
            "url": self.url,
            "schedule": self.schedule.value,
            "alertTrigger": self.alert_trigger.value,
            "alertChannels": sorted(c.value for c in self.alert_channels),
            "channelConfig": self.channel_config,
        }
