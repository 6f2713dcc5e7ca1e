# scanner/browser.py
"""
Browser capability used by discovery and extraction.

One ``BrowserSession`` per analysis run: Chromium is launched lazily on the
first ``new_page()`` and closed by ``close()``. Every page gets its own
browser context, so cookies and storage never leak between URLs of the same
run. Uses the sync Playwright API, which plays well with Celery workers.
"""
import logging
import time

from playwright.sync_api import (
    sync_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from scanner.config import USER_AGENT

logger = logging.getLogger("scanner")

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-translate",
    "--disable-default-apps",
    "--no-first-run",
    "--disable-blink-features=AutomationControlled",
]

# Only heavy payloads are dropped. Trackers must load, they are what we observe.
BLOCKED_RESOURCE_TYPES = ("media", "font")

LINKS_JS = "() => Array.from(document.querySelectorAll('a[href]')).map(a => a.href)"


class NavigationError(Exception):
    """A per-URL navigation failure (timeout, network, bad response)."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


def humanize_error(err: Exception) -> str:
    msg = str(err)
    if "ERR_HTTP2_PROTOCOL_ERROR" in msg:
        return "Site blocked the connection (HTTP/2 protocol error)"
    if "ERR_NAME_NOT_RESOLVED" in msg:
        return "Domain name could not be resolved"
    if "ERR_CONNECTION_REFUSED" in msg:
        return "Connection refused"
    if isinstance(err, PlaywrightTimeoutError) or "Timeout" in msg:
        return "Page took too long to load (timeout)"
    return msg.split("\n")[0][:300]


class PageHandle:
    """A single page living in its own browser context."""

    def __init__(self, context, page):
        self._context = context
        self._page = page
        self.status = None

    def on_request(self, callback):
        self._page.on("request", callback)

    def on_response(self, callback):
        self._page.on("response", callback)

    def on_request_finished(self, callback):
        self._page.on("requestfinished", callback)

    def navigate(self, url: str, timeout_ms: int, cancel_token=None) -> int | None:
        """
        Load ``url`` and return the HTTP status.

        Raises ``NavigationError`` on timeout or network failure. Returns
        None without navigating when the run was cancelled.
        """
        if cancel_token is not None and cancel_token.cancelled:
            return None
        try:
            response = self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            raise NavigationError(url, humanize_error(e)) from e
        self.status = response.status if response is not None else None
        return self.status

    def settle(self, ms: int):
        if ms > 0:
            self._page.wait_for_timeout(ms)

    @property
    def url(self) -> str:
        return self._page.url

    def cookies(self) -> list:
        return self._context.cookies()

    def evaluate(self, script: str, arg=None):
        if arg is None:
            return self._page.evaluate(script)
        return self._page.evaluate(script, arg)

    def links(self) -> list:
        return self._page.evaluate(LINKS_JS) or []

    def close(self):
        try:
            self._context.close()
        except PlaywrightError as e:
            logger.debug(f"[browser] context close failed: {e}")


class BrowserSession:
    """Owns one Chromium process for the lifetime of an analysis run."""

    def __init__(self, config, headless: bool = True):
        self.config = config
        self.headless = headless
        self._playwright = None
        self._browser = None

    @property
    def started(self) -> bool:
        return self._browser is not None

    def _ensure_browser(self):
        if self._browser is not None:
            return self._browser
        started = time.time()
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        except PlaywrightError:
            self._playwright.stop()
            self._playwright = None
            raise
        logger.info(f"[browser] Chromium launched in {time.time() - started:.2f}s")
        return self._browser

    def new_page(self) -> PageHandle:
        browser = self._ensure_browser()
        context = browser.new_context(
            viewport=dict(self.config.viewport),
            user_agent=self.config.user_agent,
            ignore_https_errors=True,
            extra_http_headers={"Accept-Language": ",".join(self.config.accept_languages)},
        )
        context.route(
            "**/*",
            lambda route: route.abort()
            if route.request.resource_type in BLOCKED_RESOURCE_TYPES
            else route.continue_(),
        )
        return PageHandle(context, context.new_page())

    def close(self):
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"[browser] close failed: {e}")
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
