import unittest
from unittest.mock import MagicMock

import requests
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pagewatch.errors import FetchFailure
from pagewatch.rendering.engine import HttpPageFetcher, PlaywrightPageFetcher, build_fetcher
from pagewatch.rendering.models import FetchOptions, Viewport


class TestPlaywrightPageFetcher(unittest.TestCase):
    def setUp(self):
        self.factory = MagicMock()
        playwright = self.factory.return_value.__enter__.return_value
        self.browser = playwright.chromium.launch.return_value
        self.context_args = self.browser.new_context
        self.page = self.browser.new_context.return_value.new_page.return_value

        self.page.goto.return_value.status = 200
        self.page.content.return_value = "<html><title>Home</title></html>"
        self.page.url = "https://example.com/home"
        self.page.title.return_value = "Home"
        self.page.screenshot.return_value = b"\x89PNG"

        self.fetcher = PlaywrightPageFetcher(playwright_factory=self.factory)

    def test_rendered_fetch_with_screenshot(self):
        options = FetchOptions(timeout_ms=30000, viewport=Viewport(1280, 720), settle_ms=500, screenshot=True)

        page = self.fetcher.fetch("https://example.com/", options)

        self.assertEqual(page.html, "<html><title>Home</title></html>")
        self.assertEqual(page.final_url, "https://example.com/home")
        self.assertEqual(page.screenshot, b"\x89PNG")
        self.assertEqual(page.metadata["title"], "Home")

        self.assertEqual(
            self.context_args.call_args.kwargs["viewport"], {"width": 1280, "height": 720}
        )
        self.assertEqual(self.page.goto.call_args.kwargs["timeout"], 30000)
        self.page.wait_for_timeout.assert_called_once_with(500)
        self.browser.close.assert_called_once()

    def test_no_screenshot_unless_requested(self):
        page = self.fetcher.fetch("https://example.com/", FetchOptions(settle_ms=0))
        self.assertIsNone(page.screenshot)
        self.page.screenshot.assert_not_called()
        self.page.wait_for_timeout.assert_not_called()

    def test_navigation_timeout(self):
        self.page.goto.side_effect = PlaywrightTimeoutError("Timeout 60000ms exceeded")

        with self.assertRaises(FetchFailure) as cm:
            self.fetcher.fetch("https://example.com/")

        self.assertTrue(cm.exception.timed_out)
        self.browser.close.assert_called_once()

    def test_http_error_status(self):
        self.page.goto.return_value.status = 503

        with self.assertRaises(FetchFailure) as cm:
            self.fetcher.fetch("https://example.com/")

        self.assertFalse(cm.exception.timed_out)
        self.assertIn("503", cm.exception.reason)


class TestHttpPageFetcher(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.fetcher = HttpPageFetcher(session=self.session)

    def test_success(self):
        response = self.session.get.return_value
        response.status_code = 200
        response.text = "<html></html>"
        response.url = "https://example.com/"
        response.headers = {"Content-Type": "text/html"}

        page = self.fetcher.fetch("https://example.com/", FetchOptions(timeout_ms=5000))

        self.assertEqual(page.html, "<html></html>")
        self.assertEqual(self.session.get.call_args.kwargs["timeout"], 5.0)

    def test_timeout(self):
        self.session.get.side_effect = requests.exceptions.Timeout("read timed out")
        with self.assertRaises(FetchFailure) as cm:
            self.fetcher.fetch("https://example.com/")
        self.assertTrue(cm.exception.timed_out)

    def test_non_2xx(self):
        self.session.get.return_value.status_code = 404
        with self.assertRaises(FetchFailure):
            self.fetcher.fetch("https://example.com/")


class TestBuildFetcher(unittest.TestCase):
    def test_backends(self):
        self.assertIsInstance(build_fetcher("playwright"), PlaywrightPageFetcher)
        self.assertIsInstance(build_fetcher("HTTP"), HttpPageFetcher)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_fetcher("selenium")


if __name__ == "__main__":
    unittest.main()
