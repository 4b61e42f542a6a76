"""
FILE DESCRIPTION: Delivery channels for change alerts.
KEY FUNCTIONS/CLASSES: AlertSink, WebhookSink, EmailSink, SlackSink

Each endpoint is delivered independently. A DeliveryFailure for one endpoint becomes a failed
AlertDeliveryRecord and never stops delivery to the others.
"""

import json
import smtplib
import ssl
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import requests

from pagewatch.alerts.models import AlertChannel, AlertDeliveryRecord, build_payload
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.alerts.retry import RetryPolicy
from pagewatch.core import (
    ALERT_FROM,
    REQUEST_TIMEOUT,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USER,
    logger,
)
from pagewatch.errors import DeliveryFailure


class AlertSink(ABC):
    channel: AlertChannel

    @abstractmethod
    def deliver(self, target, result) -> List[AlertDeliveryRecord]:
        """Deliver one alert for `target`. Returns one record per attempted endpoint."""
        pass

    def _attempt(self, endpoint_id: str, send) -> AlertDeliveryRecord:
        try:
            status = self.retry.run(send)
        except DeliveryFailure as e:
            logger.error(f"[ALERT] {self.channel.value} delivery to {endpoint_id} failed: {e.reason}")
            return AlertDeliveryRecord(
                endpoint_id=endpoint_id,
                channel=self.channel,
                success=False,
                http_status=e.http_status,
                error_message=e.reason,
            )
        logger.info(f"[ALERT] {self.channel.value} alert delivered to {endpoint_id}")
        return AlertDeliveryRecord(
            endpoint_id=endpoint_id,
            channel=self.channel,
            success=True,
            http_status=status,
        )


def post_json(session: requests.Session, endpoint_id: str, url: str, body: dict,
              timeout: int = REQUEST_TIMEOUT) -> int:
    """POSTs a JSON body. Returns the HTTP status, raising DeliveryFailure unless it is 2xx."""
    try:
        response = session.post(
            url,
            json=body,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
    except requests.exceptions.RequestException as e:
        raise DeliveryFailure(endpoint_id, str(e)) from e

    if not (200 <= response.status_code < 300):
        raise DeliveryFailure(endpoint_id, f"HTTP {response.status_code}", http_status=response.status_code)
    return response.status_code


class WebhookSink(AlertSink):
    """POSTs the alert payload to every registered endpoint subscribed to the target."""
    channel = AlertChannel.WEBHOOK

    def __init__(self, registry: EndpointRegistry, session: Optional[requests.Session] = None,
                 retry: Optional[RetryPolicy] = None, timeout: int = REQUEST_TIMEOUT):
        self.registry = registry
        self.session = session or requests.Session()
        self.retry = retry or RetryPolicy()
        self.timeout = timeout

    def deliver(self, target, result) -> List[AlertDeliveryRecord]:
        payload = build_payload(target, result)
        endpoints = self.registry.endpoints_for(target.target_id)
        if not endpoints:
            logger.info(f"[ALERT] No webhook endpoints registered for {target.target_id}")

        records = []
        for endpoint in endpoints:
            records.append(self._attempt(
                endpoint.endpoint_id,
                lambda e=endpoint: post_json(self.session, e.endpoint_id, e.url, payload, self.timeout),
            ))
        return records


class SlackSink(AlertSink):
    """Posts a formatted message to the target's Slack incoming webhook (channel_config['slack'])."""
    channel = AlertChannel.SLACK

    def __init__(self, session: Optional[requests.Session] = None, retry: Optional[RetryPolicy] = None,
                 timeout: int = REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.retry = retry or RetryPolicy()
        self.timeout = timeout

    @staticmethod
    def format_message(payload: dict) -> dict:
        lines = [f"*Change detected* on {payload['url']} ({payload['changeType']})"]
        lines.extend(f"- {d}" for d in payload["differences"])
        lines.append(f"_{payload['timestamp']}_")
        return {"text": "\n".join(lines)}

    def deliver(self, target, result) -> List[AlertDeliveryRecord]:
        endpoint_id = f"slack:{target.target_id}"
        webhook_url = (target.channel_config.get("slack") or {}).get("webhook_url")
        if not webhook_url:
            return [AlertDeliveryRecord(
                endpoint_id=endpoint_id,
                channel=self.channel,
                success=False,
                error_message="slack webhook_url not configured",
            )]

        body = self.format_message(build_payload(target, result))
        return [self._attempt(
            endpoint_id,
            lambda: post_json(self.session, endpoint_id, webhook_url, body, self.timeout),
        )]


class EmailSink(AlertSink):
    """
    Sends the alert over SMTP with STARTTLS.
    Recipients come from channel_config['email']['to'] (a string or a list).
    """
    channel = AlertChannel.EMAIL

    def __init__(self, host: str = SMTP_HOST, port: int = SMTP_PORT, user: Optional[str] = SMTP_USER,
                 password: Optional[str] = SMTP_PASSWORD, sender: Optional[str] = ALERT_FROM,
                 retry: Optional[RetryPolicy] = None, smtp_factory=smtplib.SMTP):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.retry = retry or RetryPolicy()
        self._smtp_factory = smtp_factory

    @staticmethod
    def _recipients(target) -> List[str]:
        to = (target.channel_config.get("email") or {}).get("to") or []
        return [to] if isinstance(to, str) else list(to)

    def build_message(self, payload: dict, recipients: List[str]) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.sender or ""
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"[PAGEWATCH] {payload['changeType']} change on {payload['url']}"

        body = "\n".join(
            [f"A {payload['changeType']} change was detected on {payload['url']}.", ""]
            + [f"- {d}" for d in payload["differences"]]
            + ["", "---", json.dumps(payload, indent=2)]
        )
        msg.attach(MIMEText(body, "plain"))
        return msg

    def deliver(self, target, result) -> List[AlertDeliveryRecord]:
        recipients = self._recipients(target)
        endpoint_id = f"email:{','.join(recipients) or target.target_id}"
        if not recipients or not self.host:
            return [AlertDeliveryRecord(
                endpoint_id=endpoint_id,
                channel=self.channel,
                success=False,
                error_message="email channel not configured",
            )]

        msg = self.build_message(build_payload(target, result), recipients)
        return [self._attempt(endpoint_id, lambda: self._send(endpoint_id, recipients, msg))]

    def _send(self, endpoint_id: str, recipients: List[str], msg: MIMEMultipart) -> Optional[int]:
        try:
            with self._smtp_factory(self.host, self.port, timeout=REQUEST_TIMEOUT) as server:
                server.starttls(context=ssl.create_default_context())
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailure(endpoint_id, str(e)) from e
        return None
