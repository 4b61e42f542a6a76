import threading
from typing import Dict, List, Optional

from pagewatch.alerts.models import WebhookEndpoint
from pagewatch.core import logger


class EndpointRegistry:
    """
    Thread-safe webhook endpoint map keyed by endpoint id.
    Registering an existing id replaces the previous endpoint.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._endpoints: Dict[str, WebhookEndpoint] = {}

    def register(self, endpoint: WebhookEndpoint) -> None:
        with self._lock:
            replaced = endpoint.endpoint_id in self._endpoints
            self._endpoints[endpoint.endpoint_id] = endpoint
        action = "Replaced" if replaced else "Registered"
        logger.info(f"[ALERT] {action} webhook {endpoint.endpoint_id} -> {endpoint.url}")

    def unregister(self, endpoint_id: str) -> Optional[WebhookEndpoint]:
        with self._lock:
            return self._endpoints.pop(endpoint_id, None)

    def unregister_target(self, target_id: str) -> List[WebhookEndpoint]:
        """Drops every endpoint scoped to `target_id`. Global endpoints are kept."""
        with self._lock:
            removed = [e for e in self._endpoints.values() if e.target_id == target_id]
            for endpoint in removed:
                del self._endpoints[endpoint.endpoint_id]
            return removed

    def endpoints_for(self, target_id: str) -> List[WebhookEndpoint]:
        with self._lock:
            return [
                e for e in self._endpoints.values()
                if e.target_id is None or e.target_id == target_id
            ]

    def all(self) -> List[WebhookEndpoint]:
        with self._lock:
            return list(self._endpoints.values())
