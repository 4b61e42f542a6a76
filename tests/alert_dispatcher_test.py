"""
Verification Scenarios for Alert Dispatch
"""

import smtplib
import unittest
from unittest.mock import MagicMock

import requests

from pagewatch.alerts.dispatcher import AlertDispatcher
from pagewatch.alerts.models import AlertChannel, WebhookEndpoint, build_payload
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.alerts.retry import RetryPolicy
from pagewatch.alerts.sinks import EmailSink, SlackSink, WebhookSink
from pagewatch.detection.models import ChangeResult, ChangeType
from pagewatch.errors import DeliveryFailure
from pagewatch.monitor.models import MonitorTarget


def make_target(channels=("webhook",), channel_config=None):
    return MonitorTarget.from_config({
        "id": "shop",
        "url": "https://shop.example.com/",
        "schedule": "hourly",
        "alertTrigger": "any-change",
        "alertChannels": list(channels),
        "channelConfig": channel_config or {},
    })


def make_result():
    return ChangeResult(
        target_id="shop",
        url="https://shop.example.com/",
        changed=True,
        change_type=ChangeType.PRICE,
        differences=["Prices have changed."],
        previous_hash="a" * 64,
        current_hash="b" * 64,
    )


def response(status):
    r = MagicMock()
    r.status_code = status
    return r


class TestWebhookDispatch(unittest.TestCase):
    def setUp(self):
        self.registry = EndpointRegistry()
        self.session = MagicMock()
        self.dispatcher = AlertDispatcher([WebhookSink(self.registry, session=self.session)])

    def test_partial_delivery(self):
        """Scenario: one endpoint returns 200, the other 500. Dispatch completes with one of each."""
        self.registry.register(WebhookEndpoint("ok", "https://hooks.example.com/ok", "shop"))
        self.registry.register(WebhookEndpoint("down", "https://hooks.example.com/down", "shop"))
        self.session.post.side_effect = lambda url, **kwargs: response(200 if url.endswith("/ok") else 500)

        report = self.dispatcher.dispatch(make_target(), make_result())

        self.assertEqual(len(report.records), 2)
        self.assertEqual([r.endpoint_id for r in report.succeeded], ["ok"])
        self.assertEqual([r.endpoint_id for r in report.failed], ["down"])
        self.assertEqual(report.failed[0].http_status, 500)
        self.assertFalse(report.all_succeeded)

    def test_transport_error_recorded(self):
        self.registry.register(WebhookEndpoint("dead", "https://dead.example.com/", None))
        self.registry.register(WebhookEndpoint("ok", "https://hooks.example.com/ok", None))

        def post(url, **kwargs):
            if "dead" in url:
                raise requests.exceptions.ConnectionError("connection refused")
            return response(204)

        self.session.post.side_effect = post
        report = self.dispatcher.dispatch(make_target(), make_result())

        self.assertEqual(len(report.succeeded), 1)
        self.assertIn("connection refused", report.failed[0].error_message)
        self.assertIsNone(report.failed[0].http_status)

    def test_payload_envelope(self):
        self.registry.register(WebhookEndpoint("ok", "https://hooks.example.com/ok", "shop"))
        self.session.post.return_value = response(200)
        result = make_result()

        self.dispatcher.dispatch(make_target(), result)

        body = self.session.post.call_args.kwargs["json"]
        self.assertEqual(body, build_payload(make_target(), result))
        self.assertEqual(set(body), {"url", "changeType", "differences", "timestamp"})
        self.assertEqual(body["changeType"], "price")

    def test_endpoints_scoped_to_other_targets_skipped(self):
        self.registry.register(WebhookEndpoint("other", "https://hooks.example.com/other", "blog"))
        report = self.dispatcher.dispatch(make_target(), make_result())
        self.assertEqual(report.records, [])
        self.session.post.assert_not_called()

    def test_registry_replaces_by_id(self):
        self.registry.register(WebhookEndpoint("ok", "https://old.example.com/"))
        self.registry.register(WebhookEndpoint("ok", "https://new.example.com/"))
        self.assertEqual([e.url for e in self.registry.all()], ["https://new.example.com/"])


class TestChannelIsolation(unittest.TestCase):
    def test_crashing_sink_does_not_abort_batch(self):
        crashing = MagicMock()
        crashing.channel = AlertChannel.EMAIL
        crashing.deliver.side_effect = RuntimeError("smtp client exploded")

        registry = EndpointRegistry()
        registry.register(WebhookEndpoint("ok", "https://hooks.example.com/ok"))
        session = MagicMock()
        session.post.return_value = response(200)

        dispatcher = AlertDispatcher([crashing, WebhookSink(registry, session=session)])
        report = dispatcher.dispatch(make_target(channels=("webhook", "email")), make_result())

        self.assertEqual(len(report.succeeded), 1)
        self.assertEqual(report.failed[0].channel, AlertChannel.EMAIL)
        self.assertIn("exploded", report.failed[0].error_message)

    def test_records_follow_channel_name_order(self):
        target = make_target(channels=("webhook", "slack", "email"))
        report = AlertDispatcher([]).dispatch(target, make_result())
        self.assertEqual(
            [r.channel for r in report.records],
            [AlertChannel.EMAIL, AlertChannel.SLACK, AlertChannel.WEBHOOK],
        )

    def test_channel_without_sink_is_a_failure(self):
        report = AlertDispatcher([]).dispatch(make_target(channels=("slack",)), make_result())
        self.assertEqual(len(report.failed), 1)
        self.assertEqual(report.failed[0].channel, AlertChannel.SLACK)


class TestRetryPolicy(unittest.TestCase):
    def test_default_delivers_once(self):
        calls = MagicMock(side_effect=DeliveryFailure("ep", "HTTP 502", 502))
        with self.assertRaises(DeliveryFailure):
            RetryPolicy().run(calls)
        self.assertEqual(calls.call_count, 1)

    def test_backoff_then_success(self):
        sleep = MagicMock()
        calls = MagicMock(side_effect=[DeliveryFailure("ep", "HTTP 502", 502), DeliveryFailure("ep", "HTTP 502", 502), 200])

        status = RetryPolicy(max_attempts=3, backoff_seconds=1.0, sleep=sleep).run(calls)

        self.assertEqual(status, 200)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0])

    def test_webhook_sink_with_retry(self):
        registry = EndpointRegistry()
        registry.register(WebhookEndpoint("flaky", "https://hooks.example.com/flaky"))
        session = MagicMock()
        session.post.side_effect = [response(503), response(200)]
        sink = WebhookSink(registry, session=session, retry=RetryPolicy(max_attempts=2, sleep=MagicMock()))

        records = sink.deliver(make_target(), make_result())

        self.assertTrue(records[0].success)
        self.assertEqual(session.post.call_count, 2)


class TestEmailAndSlackSinks(unittest.TestCase):
    def test_email_sent_over_starttls(self):
        smtp_factory = MagicMock()
        server = smtp_factory.return_value.__enter__.return_value
        sink = EmailSink(host="smtp.example.com", port=587, user="bot@example.com", password="secret",
                         sender="bot@example.com", smtp_factory=smtp_factory)
        target = make_target(channels=("email",), channel_config={"email": {"to": "ops@example.com"}})

        records = sink.deliver(target, make_result())

        self.assertTrue(records[0].success)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@example.com", "secret")
        sender, recipients, _ = server.sendmail.call_args.args
        self.assertEqual(recipients, ["ops@example.com"])

    def test_email_failure_recorded(self):
        smtp_factory = MagicMock()
        smtp_factory.return_value.__enter__.return_value.sendmail.side_effect = smtplib.SMTPException("rejected")
        sink = EmailSink(host="smtp.example.com", smtp_factory=smtp_factory)
        target = make_target(channels=("email",), channel_config={"email": {"to": ["ops@example.com"]}})

        records = sink.deliver(target, make_result())

        self.assertFalse(records[0].success)
        self.assertIn("rejected", records[0].error_message)

    def test_email_without_recipients(self):
        records = EmailSink(smtp_factory=MagicMock()).deliver(make_target(channels=("email",)), make_result())
        self.assertFalse(records[0].success)

    def test_slack_posts_text(self):
        session = MagicMock()
        session.post.return_value = response(200)
        target = make_target(channels=("slack",),
                             channel_config={"slack": {"webhook_url": "https://hooks.slack.com/services/T/B/X"}})

        records = SlackSink(session=session).deliver(target, make_result())

        self.assertTrue(records[0].success)
        self.assertIn("Prices have changed.", session.post.call_args.kwargs["json"]["text"])

    def test_slack_not_configured(self):
        records = SlackSink(session=MagicMock()).deliver(make_target(channels=("slack",)), make_result())
        self.assertFalse(records[0].success)
        self.assertIn("not configured", records[0].error_message)


if __name__ == "__main__":
    unittest.main()
