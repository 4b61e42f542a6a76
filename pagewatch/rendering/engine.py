"""
Page fetcher backends.

PlaywrightPageFetcher renders with headless Chromium and can take screenshots.
HttpPageFetcher is a plain GET for pages that do not need JS execution.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from pagewatch.core import USER_AGENT, logger
from pagewatch.errors import FetchFailure
from pagewatch.rendering.models import FetchedPage, FetchOptions

# Grace period for the "load" event once the settle delay has elapsed
LOAD_STATE_TIMEOUT_MS = 5000


class PageFetcher(ABC):
    """
    Abstraction for the page-fetcher capability.
    Contractual Requirements for Implementers:
    - MUST enforce the navigation timeout given in options.
    - MUST wait options.settle_ms after navigation before reading content.
    - MUST raise FetchFailure (timed_out=True on timeout) instead of returning partial pages.
    """

    @abstractmethod
    def fetch(self, url: str, options: Optional[FetchOptions] = None) -> FetchedPage:
        pass


class PlaywrightPageFetcher(PageFetcher):
    """
    FLOW: Starts a Playwright instance in the calling thread -> Opens a fresh browser context
    (no shared page state between fetches) -> Navigates and waits the settle delay ->
    Reads the DOM and optional PNG screenshot -> Closes the browser.

    One Playwright instance per call keeps the sync API safe to use from worker threads.
    """

    def __init__(self, user_agent: str = USER_AGENT, playwright_factory=sync_playwright):
        self._user_agent = user_agent
        self._playwright_factory = playwright_factory

    def fetch(self, url: str, options: Optional[FetchOptions] = None) -> FetchedPage:
        options = options or FetchOptions()
        started = time.time()

        try:
            with self._playwright_factory() as p:
                browser = p.chromium.launch(
                    headless=True,
                    args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
                )
                try:
                    context = browser.new_context(
                        user_agent=self._user_agent,
                        viewport={"width": options.viewport.width, "height": options.viewport.height},
                    )
                    page = context.new_page()

                    response = page.goto(url, wait_until="domcontentloaded", timeout=options.timeout_ms)
                    status_code = response.status if response else 0
                    if status_code >= 400:
                        raise FetchFailure(url, f"HTTP {status_code}")

                    # Stability wait
                    if options.settle_ms > 0:
                        page.wait_for_timeout(options.settle_ms)

                    try:
                        page.wait_for_load_state("load", timeout=LOAD_STATE_TIMEOUT_MS)
                    except PlaywrightTimeoutError:
                        pass

                    html = page.content()
                    final_url = page.url
                    title = page.title()

                    screenshot = None
                    if options.screenshot:
                        screenshot = page.screenshot(
                            full_page=options.full_page,
                            type="png",
                            timeout=options.timeout_ms,
                        )
                finally:
                    browser.close()

        except FetchFailure:
            raise
        except PlaywrightTimeoutError as e:
            logger.warning(f"[FETCH] Navigation timeout for {url} after {options.timeout_ms}ms")
            raise FetchFailure(url, f"navigation timed out after {options.timeout_ms}ms", timed_out=True) from e
        except PlaywrightError as e:
            logger.warning(f"[FETCH] Browser error for {url}: {e}")
            raise FetchFailure(url, str(e)) from e

        duration_ms = int((time.time() - started) * 1000)
        logger.info(f"[FETCH] Rendered {url} ({len(html)} bytes, {duration_ms}ms)")

        return FetchedPage(
            url=url,
            final_url=final_url,
            html=html,
            status_code=status_code,
            screenshot=screenshot,
            metadata={"title": title, "fetch_duration_ms": duration_ms},
        )


class HttpPageFetcher(PageFetcher):
    """
    Plain HTTP fetch through requests. No JS execution and no screenshots;
    options.viewport, settle_ms and screenshot are ignored.
    """

    def __init__(self, session: Optional[requests.Session] = None, user_agent: str = USER_AGENT):
        self._session = session or requests.Session()
        self._user_agent = user_agent

    def fetch(self, url: str, options: Optional[FetchOptions] = None) -> FetchedPage:
        options = options or FetchOptions()
        started = time.time()

        try:
            r = self._session.get(
                url,
                timeout=options.timeout_ms / 1000,
                headers={"User-Agent": self._user_agent},
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as e:
            raise FetchFailure(url, "timeout", timed_out=True) from e
        except requests.exceptions.RequestException as e:
            raise FetchFailure(url, str(e)) from e

        if not (200 <= r.status_code < 300):
            raise FetchFailure(url, f"HTTP {r.status_code}")

        duration_ms = int((time.time() - started) * 1000)
        return FetchedPage(
            url=url,
            final_url=r.url,
            html=r.text,
            status_code=r.status_code,
            metadata={
                "content_type": r.headers.get("Content-Type", ""),
                "fetch_duration_ms": duration_ms,
            },
        )


def build_fetcher(backend: Optional[str] = None) -> PageFetcher:
    """Select the fetcher configured by FETCHER_BACKEND."""
    from pagewatch.core import FETCHER_BACKEND

    backend = (backend or FETCHER_BACKEND).lower()
    if backend == "playwright":
        return PlaywrightPageFetcher()
    if backend == "http":
        return HttpPageFetcher()
    raise ValueError(f"Unknown fetcher backend: {backend}")
