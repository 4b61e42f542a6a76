"""
Verification Scenarios for Monitor Registration, Checks and Scheduling
"""

import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from pagewatch.alerts.dispatcher import AlertDispatcher
from pagewatch.alerts.registry import EndpointRegistry
from pagewatch.alerts.sinks import WebhookSink
from pagewatch.errors import BaselineMissing, FetchFailure
from pagewatch.monitor.models import AlertTrigger, MonitorTarget, Schedule
from pagewatch.monitor.scheduler import MonitorScheduler
from pagewatch.monitor.service import MonitorService
from pagewatch.rendering.models import FetchedPage
from pagewatch.snapshot.storage import InMemorySnapshotStore

URL = "https://shop.example.com/"


def html(title="Shop", price="$10.00"):
    return f"<html><head><title>{title}</title></head><body><h1>Deals</h1><p>Only {price}</p></body></html>"


def config(**overrides):
    base = {
        "id": "shop",
        "url": URL,
        "schedule": "hourly",
        "alertTrigger": "any-change",
        "alertChannels": ["webhook"],
        "channelConfig": {"webhook": {"url": "https://hooks.example.com/shop"}},
    }
    base.update(overrides)
    return base


class TestMonitorService(unittest.TestCase):
    def setUp(self):
        self.fetcher = MagicMock()
        self.serve(html())
        self.snapshots = InMemorySnapshotStore()
        self.registry = EndpointRegistry()
        self.session = MagicMock()
        self.session.post.return_value.status_code = 200
        self.dispatcher = AlertDispatcher([WebhookSink(self.registry, session=self.session)])
        self.service = MonitorService(self.fetcher, self.snapshots, self.dispatcher, registry=self.registry)

    def serve(self, body):
        self.fetcher.fetch.return_value = FetchedPage(url=URL, final_url=URL, html=body)

    def test_register_captures_baseline(self):
        target = self.service.register_monitor(config())

        self.assertEqual(target.schedule, Schedule.HOURLY)
        self.assertIsNotNone(self.snapshots.get("shop"))
        self.assertEqual([t.target_id for t in self.service.list_monitors()], ["shop"])
        self.assertEqual([e.url for e in self.registry.endpoints_for("shop")], ["https://hooks.example.com/shop"])

    def test_register_fails_loudly_without_baseline(self):
        self.fetcher.fetch.side_effect = FetchFailure(URL, "HTTP 503")

        with self.assertRaises(FetchFailure):
            self.service.register_monitor(config())

        self.assertEqual(self.service.list_monitors(), [])
        self.assertIsNone(self.snapshots.get("shop"))

    def test_reregistration_replaces_target(self):
        self.service.register_monitor(config())
        self.service.register_monitor(config(schedule="weekly", channelConfig={"webhook": {"url": "https://new.example.com/"}}))

        self.assertEqual(self.service.get_monitor("shop").schedule, Schedule.WEEKLY)
        self.assertEqual([e.url for e in self.registry.endpoints_for("shop")], ["https://new.example.com/"])

    def test_invalid_config(self):
        with self.assertRaises(ValueError):
            self.service.register_monitor(config(schedule="monthly"))
        with self.assertRaises(ValueError):
            self.service.register_monitor(config(url="ftp://shop.example.com/"))
        self.fetcher.fetch.assert_not_called()

    def test_check_unknown_target(self):
        with self.assertRaises(BaselineMissing):
            self.service.check_for_changes("ghost")

    def test_check_detects_change(self):
        self.service.register_monitor(config())
        self.serve(html(price="$12.00"))

        result = self.service.check_for_changes("shop")

        self.assertTrue(result.changed)
        self.assertEqual(result.change_type.value, "price")

    def test_check_fetch_failure_propagates(self):
        self.service.register_monitor(config())
        baseline = self.snapshots.get("shop")
        self.fetcher.fetch.side_effect = FetchFailure(URL, "timeout", timed_out=True)

        with self.assertRaises(FetchFailure):
            self.service.check_for_changes("shop")
        self.assertIs(self.snapshots.get("shop"), baseline)

    def test_run_check_dispatches_when_trigger_matches(self):
        self.service.register_monitor(config(alertTrigger="price-change"))
        self.serve(html(price="$12.00"))

        outcome = self.service.run_check("shop")

        self.assertTrue(outcome.alerted)
        self.assertTrue(outcome.report.all_succeeded)
        self.session.post.assert_called_once()

    def test_run_check_skips_unmatched_trigger(self):
        self.service.register_monitor(config(alertTrigger="price-change"))
        self.serve(html(title="Renamed shop"))

        outcome = self.service.run_check("shop")

        self.assertTrue(outcome.result.changed)
        self.assertFalse(outcome.alerted)
        self.session.post.assert_not_called()

    def test_overlapping_checks_are_serialised(self):
        """Scenario: a slow check fetching the old page overlaps a check fetching the new page."""
        self.service.register_monitor(config())
        slow_fetching = threading.Event()
        release_slow = threading.Event()
        calls = []

        def fetch(url, options):
            calls.append(len(calls))
            if len(calls) == 1:
                slow_fetching.set()
                release_slow.wait(5)
                return FetchedPage(url=URL, final_url=URL, html=html())
            return FetchedPage(url=URL, final_url=URL, html=html(title="Shop v2"))

        self.fetcher.fetch.side_effect = fetch
        results = {}

        slow = threading.Thread(target=lambda: results.__setitem__("slow", self.service.check_for_changes("shop")))
        slow.start()
        self.assertTrue(slow_fetching.wait(5))
        fast = threading.Thread(target=lambda: results.__setitem__("fast", self.service.check_for_changes("shop")))
        fast.start()
        time.sleep(0.2)
        # The second check waits on the target lock instead of fetching
        self.assertEqual(len(calls), 1)
        release_slow.set()
        slow.join(5)
        fast.join(5)

        self.assertFalse(results["slow"].changed)
        self.assertTrue(results["fast"].changed)
        self.assertEqual(self.snapshots.get("shop").title, "Shop v2")

        # Live page and baseline agree: no further alert
        self.assertFalse(self.service.check_for_changes("shop").changed)

    def test_unregister(self):
        self.service.register_monitor(config())

        self.assertTrue(self.service.unregister_monitor("shop"))
        self.assertFalse(self.service.unregister_monitor("shop"))
        self.assertIsNone(self.snapshots.get("shop"))
        self.assertEqual(self.registry.all(), [])


class TestAlertTrigger(unittest.TestCase):
    def test_unchanged_never_matches(self):
        result = MagicMock(changed=False)
        for trigger in AlertTrigger:
            self.assertFalse(trigger.matches(result))


class TestMonitorScheduler(unittest.TestCase):
    def setUp(self):
        self.service = MagicMock()
        self.targets = [
            MonitorTarget.from_config({"id": "hourly", "url": URL, "schedule": "hourly"}),
            MonitorTarget.from_config({"id": "daily", "url": URL, "schedule": "daily"}),
        ]
        self.service.list_monitors.return_value = self.targets
        self.scheduler = MonitorScheduler(self.service, max_workers=2)
        self.t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_first_sight_is_not_due(self):
        self.assertEqual(self.scheduler.due_targets(self.t0), [])

    def test_due_after_interval(self):
        self.scheduler.due_targets(self.t0)
        due = self.scheduler.due_targets(self.t0 + timedelta(hours=1))
        self.assertEqual([t.target_id for t in due], ["hourly"])

        due = self.scheduler.due_targets(self.t0 + timedelta(days=1))
        self.assertEqual(sorted(t.target_id for t in due), ["daily", "hourly"])

    def test_failing_target_is_isolated(self):
        def run_check(target_id):
            if target_id == "hourly":
                raise FetchFailure(URL, "HTTP 500")
            return "ok"

        self.service.run_check.side_effect = run_check
        self.scheduler.due_targets(self.t0)

        outcomes = self.scheduler.run_due(self.t0 + timedelta(days=1))

        self.assertEqual(outcomes, {"daily": "ok"})
        self.assertEqual(self.service.run_check.call_count, 2)
        # Both targets wait a full interval before the next attempt
        self.assertEqual(self.scheduler.due_targets(self.t0 + timedelta(days=1, minutes=30)), [])


if __name__ == "__main__":
    unittest.main()
