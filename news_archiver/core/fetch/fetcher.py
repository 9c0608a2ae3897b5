from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

import requests
from requests.adapters import HTTPAdapter
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from urllib3.util.retry import Retry

from ..config import FetchConfig
from ..errors import FetcherInitError, FetchError
from ..models import RenderedPage

logger = logging.getLogger(__name__)

CONTENT_READY_SELECTOR = (
    'article, .article, [class*="article"], [class*="content"], main'
)

_SCROLL_SCRIPT = """
const step = 400;
let y = 0;
const height = document.body ? document.body.scrollHeight : 0;
while (y < height) { window.scrollBy(0, step); y += step; }
window.scrollTo(0, 0);
"""


class PageFetcher(Protocol):
    def start(self) -> None: ...

    def render(
        self, url: str, timeout: Optional[float] = None, capture: bool = False
    ) -> RenderedPage: ...

    def close(self) -> None: ...


def build_session(user_agent: str) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


class SeleniumPageFetcher:
    """Render pages in a headless browser.

    One driver per fetcher; every render opens its own tab and closes it on
    the way out, whatever happens in between. Navigation returns once the DOM
    content is loaded (``page_load_strategy = "eager"``), never waiting for
    network idle.
    """

    def __init__(self, config: FetchConfig | None = None) -> None:
        self.config = config or FetchConfig()
        self._driver: Optional[WebDriver] = None

    def _build_driver(self) -> WebDriver:
        if self.config.browser == "firefox":
            ff_options = webdriver.FirefoxOptions()
            if self.config.headless:
                ff_options.add_argument("-headless")
            ff_options.page_load_strategy = "eager"
            ff_options.set_preference("general.useragent.override", self.config.user_agent)
            return webdriver.Firefox(options=ff_options)
        options = webdriver.ChromeOptions()
        if self.config.headless:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_argument("--window-size=1920,1080")
        options.add_argument(f"--user-agent={self.config.user_agent}")
        options.page_load_strategy = "eager"
        return webdriver.Chrome(options=options)

    def start(self) -> None:
        if self._driver is not None:
            return
        try:
            self._driver = self._build_driver()
        except WebDriverException as exc:
            raise FetcherInitError(f"Could not start {self.config.browser}: {exc.msg}") from exc
        self._driver.set_page_load_timeout(self.config.page_timeout_sec)
        logger.info("Started %s (headless=%s)", self.config.browser, self.config.headless)

    def close(self) -> None:
        if self._driver is None:
            return
        try:
            self._driver.quit()
        except WebDriverException as exc:
            logger.warning("Browser did not quit cleanly: %s", exc.msg)
        finally:
            self._driver = None

    def __enter__(self) -> "SeleniumPageFetcher":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _tab(self) -> Iterator[WebDriver]:
        self.start()
        driver = self._driver
        assert driver is not None
        parent_handle = driver.current_window_handle
        driver.switch_to.new_window("tab")
        try:
            yield driver
        finally:
            try:
                driver.close()
                driver.switch_to.window(parent_handle)
            except WebDriverException as exc:
                logger.warning("Could not close tab cleanly: %s", exc.msg)

    def _wait_for_content(self, driver: WebDriver) -> None:
        try:
            WebDriverWait(driver, self.config.content_wait_sec).until(
                EC.presence_of_element_located((By.CSS_SELECTOR, CONTENT_READY_SELECTOR))
            )
        except TimeoutException:
            # content may live elsewhere; go on with whatever rendered
            logger.debug("No content container appeared on %s", driver.current_url)

    @staticmethod
    def _screenshot(driver: WebDriver) -> Optional[bytes]:
        try:
            full_page = getattr(driver, "get_full_page_screenshot_as_png", None)
            if callable(full_page):
                return full_page()
            return driver.get_screenshot_as_png()
        except WebDriverException as exc:
            logger.warning("Screenshot failed: %s", exc.msg)
            return None

    def render(
        self, url: str, timeout: Optional[float] = None, capture: bool = False
    ) -> RenderedPage:
        try:
            return self._render_in_tab(url, timeout, capture)
        except WebDriverException as exc:
            # raised outside navigation, e.g. a crashed tab
            raise FetchError(url, f"Browser error: {exc.msg}") from exc

    def _render_in_tab(
        self, url: str, timeout: Optional[float], capture: bool
    ) -> RenderedPage:
        with self._tab() as driver:
            if timeout is not None:
                driver.set_page_load_timeout(timeout)
            try:
                driver.get(url)
            except TimeoutException as exc:
                raise FetchError(url, "Navigation timed out") from exc
            except WebDriverException as exc:
                raise FetchError(url, f"Navigation failed: {exc.msg}") from exc
            finally:
                if timeout is not None:
                    driver.set_page_load_timeout(self.config.page_timeout_sec)
            self._wait_for_content(driver)
            if self.config.wait_for_content_sec > 0:
                time.sleep(self.config.wait_for_content_sec)
            try:
                if self.config.scroll:
                    driver.execute_script(_SCROLL_SCRIPT)
                    time.sleep(self.config.scroll_pause_sec)
                html = driver.page_source
                final_url = driver.current_url
            except WebDriverException as exc:
                raise FetchError(url, f"Page read failed: {exc.msg}") from exc
            screenshot = self._screenshot(driver) if capture else None
        return RenderedPage(
            url=url,
            final_url=final_url,
            html=html,
            fetched_from="selenium",
            screenshot=screenshot,
        )


class HttpPageFetcher:
    """Fetch pages over plain HTTP. No scripts run; no screenshots."""

    def __init__(
        self,
        config: FetchConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or FetchConfig()
        self.session = session or build_session(self.config.user_agent)

    def start(self) -> None:
        return None

    def close(self) -> None:
        self.session.close()

    def _decode_bytes(
        self,
        body: bytes,
        content_type: Optional[str],
        apparent: Optional[str] = None,
    ) -> tuple[str, Optional[str]]:
        # 1) charset from HTTP header
        header_enc: Optional[str] = None
        if content_type:
            lower = content_type.lower()
            if "charset=" in lower:
                header_enc = lower.split("charset=")[-1].split(";")[0].strip()

        # 2) charset from HTML <meta>
        meta_enc: Optional[str] = None
        m = re.search(rb"charset\s*=\s*[\"']?([A-Za-z0-9_\-]+)", body[:4096], flags=re.IGNORECASE)
        if m:
            meta_enc = m.group(1).decode("ascii", errors="ignore").lower()

        candidates = [
            header_enc,
            meta_enc,
            apparent.lower() if apparent else None,
            "utf-8",
            "latin-1",
        ]
        for enc in candidates:
            if not enc:
                continue
            try:
                return body.decode(enc, errors="strict"), enc
            except (LookupError, UnicodeDecodeError):
                continue
        return body.decode("utf-8", errors="replace"), "utf-8"

    def render(
        self, url: str, timeout: Optional[float] = None, capture: bool = False
    ) -> RenderedPage:
        try:
            response = self.session.get(url, timeout=timeout or self.config.page_timeout_sec)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(url, f"HTTP fetch failed: {exc}") from exc
        html, _encoding = self._decode_bytes(
            response.content,
            response.headers.get("Content-Type"),
            getattr(response, "apparent_encoding", None),
        )
        if capture:
            logger.debug("Screenshots need a browser; skipping for %s", url)
        return RenderedPage(
            url=url,
            final_url=getattr(response, "url", None) or url,
            html=html,
            fetched_from="http",
        )


def build_fetcher(config: FetchConfig) -> PageFetcher:
    if config.backend == "http":
        return HttpPageFetcher(config)
    return SeleniumPageFetcher(config)
