from pagewatch.alerts.models import (
    AlertChannel,
    AlertDeliveryRecord,
    DispatchReport,
    WebhookEndpoint,
    build_payload,
)
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.alerts.retry import RetryPolicy
from pagewatch.alerts.sinks import AlertSink, EmailSink, SlackSink, WebhookSink
from pagewatch.alerts.dispatcher import AlertDispatcher
