# listing_extractor/fetch.py
# Purpose: Get the HTML of one listing page: plain HTTP first, then a headless
# browser, then (optional) the Firecrawl hosted scraper.
from __future__ import annotations
import logging
import random
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

import requests
from playwright.sync_api import sync_playwright, Page, Route, TimeoutError as PlaywrightTimeoutError

from listing_extractor.errors import ExtractionCancelled, FetchFailed
from listing_extractor.extractors import BATHS_RE, BEDS_RE, PRICE_RE, soup_of
from listing_extractor.firecrawl_client import Firecrawl
from listing_extractor.settings import Settings, default_headers, load_settings
from listing_extractor.utils import jitter_sleep

log = logging.getLogger(__name__)

BLOCK_MARKERS = (
    "captcha",
    "px-captcha",
    "security check",
    "verify you are a human",
    "are you a human",
    "robot check",
    "access denied",
    "unusual traffic",
    "bot detection",
)

LISTING_LD_MARKERS = (
    "realestatelisting",
    "singlefamilyresidence",
    "numberofbedrooms",
    "numberofbathrooms",
)

BLOCKED_RESOURCE_TYPES = ("image", "font", "media")
LOAD_POLL_MS = 500
BODY_CHUNK_BYTES = 64 * 1024

STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""

# ============================ data classes ============================

@dataclass
class FetchResult:
    html: str
    final_url: str
    status: int
    strategy: str

# ============================ helpers ============================

def is_blocked_page(html: Optional[str], min_chars: int = 4000) -> bool:
    """Challenge pages and near-empty shells count as blocked."""
    t = (html or "").lower()
    if len(t) < min_chars:
        return True
    return any(b in t for b in BLOCK_MARKERS)

def looks_like_listing(html: Optional[str]) -> bool:
    """Listing JSON-LD, or a price plus a bed or bath count in the visible text."""
    if not html:
        return False
    if any(m in html.lower() for m in LISTING_LD_MARKERS):
        return True
    text = soup_of(html).get_text(" ", strip=True)
    return bool(PRICE_RE.search(text)) and bool(BEDS_RE.search(text) or BATHS_RE.search(text))

def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise ExtractionCancelled("extraction cancelled by caller")

def _read_body(r: requests.Response, cancel: Optional[threading.Event]) -> str:
    """Stream the body; a cancel between chunks closes the connection."""
    chunks: List[bytes] = []
    try:
        for chunk in r.iter_content(chunk_size=BODY_CHUNK_BYTES):
            check_cancelled(cancel)
            chunks.append(chunk)
    finally:
        r.close()
    declared = "charset" in (r.headers.get("Content-Type") or "").lower()
    return b"".join(chunks).decode(r.encoding if declared and r.encoding else "utf-8", errors="replace")

def _should_retry(status: int) -> bool:
    return status == 429 or (500 <= status <= 599)

def choose_headers_for(url: str, settings: Settings) -> Dict[str, str]:
    h = default_headers(random.choice(settings.user_agents or [settings.user_agent]))
    if "redfin.com" in url:
        h["Referer"] = "https://www.redfin.com/"
    elif "zillow.com" in url:
        h["Referer"] = "https://www.zillow.com/"
    return h

# ============================ strategies ============================

class DirectFetcher:
    """Plain requests.get with browser-like headers."""

    name = "direct"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None, max_retries: int = 1):
        self.settings = settings
        self.session = session or requests.Session()
        self.max_retries = max_retries

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> FetchResult:
        attempt = 0
        while True:
            check_cancelled(cancel)
            try:
                r = self.session.get(
                    url,
                    headers=choose_headers_for(url, self.settings),
                    timeout=self.settings.request_timeout_sec,
                    allow_redirects=True,
                    stream=True,
                )
            except requests.RequestException as e:
                raise FetchFailed(url, [f"direct: {type(e).__name__}: {e}"]) from e

            if _should_retry(r.status_code) and attempt < self.max_retries:
                backoff = 1.5 ** attempt + random.uniform(0.0, 0.5)
                log.info(f"[fetch] direct status={r.status_code} retrying in {backoff:.1f}s url={url}")
                r.close()
                time.sleep(backoff)
                attempt += 1
                continue
            break

        if not (200 <= r.status_code < 300):
            r.close()
            raise FetchFailed(url, [f"direct: http {r.status_code}"])
        try:
            html = _read_body(r, cancel)
        except requests.RequestException as e:
            raise FetchFailed(url, [f"direct: {type(e).__name__}: {e}"]) from e
        if is_blocked_page(html, self.settings.min_html_chars):
            raise FetchFailed(url, [f"direct: blocked or empty page ({len(html)} chars)"])
        return FetchResult(html=html, final_url=r.url or url, status=r.status_code, strategy=self.name)


def _abort_heavy(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()

@contextmanager
def browser_page(settings: Settings) -> Iterator[Page]:
    """Headless Chromium page; the browser is closed on every exit path."""
    with sync_playwright() as pw:
        browser = pw.chromium.launch(
            headless=True,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-dev-shm-usage",
                "--no-sandbox",
            ],
        )
        try:
            context = browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=random.choice(settings.user_agents or [settings.user_agent]),
                locale="en-US",
                extra_http_headers={"Accept-Language": "en-US,en;q=0.9", "DNT": "1"},
            )
            context.add_init_script(STEALTH_JS)
            context.clear_cookies()
            page = context.new_page()
            page.route("**/*", _abort_heavy)
            yield page
        finally:
            browser.close()


class BrowserFetcher:
    """Playwright fetch: networkidle, human-ish mouse/scroll, one retry on a CAPTCHA page."""

    name = "browser"

    def __init__(self, settings: Settings):
        self.settings = settings

    def _move_mouse(self, page: Page) -> None:
        for _ in range(random.randint(2, 4)):
            page.mouse.move(random.randint(100, 1000), random.randint(100, 700))
            time.sleep(random.uniform(0.1, 0.3))

    def _auto_scroll(self, page: Page, cancel: Optional[threading.Event]) -> None:
        for _ in range(self.settings.max_scroll_steps):
            check_cancelled(cancel)
            at_bottom = page.evaluate(
                "() => { window.scrollBy(0, 400);"
                " return window.innerHeight + window.scrollY >= document.body.scrollHeight; }"
            )
            time.sleep(0.1)
            if at_bottom:
                break

    def _wait_until_idle(self, page: Page, cancel: Optional[threading.Event], timeout_ms: int) -> None:
        """networkidle in short slices so a cancel abandons the load between them."""
        deadline = time.monotonic() + timeout_ms / 1000.0
        while True:
            check_cancelled(cancel)
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            try:
                page.wait_for_load_state("networkidle", timeout=max(1, min(LOAD_POLL_MS, remaining_ms)))
                return
            except PlaywrightTimeoutError:
                if remaining_ms <= LOAD_POLL_MS:
                    raise

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> FetchResult:
        check_cancelled(cancel)
        timeout_ms = self.settings.browser_timeout_sec * 1000
        try:
            with browser_page(self.settings) as page:
                resp = page.goto(url, wait_until="commit", timeout=timeout_ms)
                self._wait_until_idle(page, cancel, timeout_ms)
                self._move_mouse(page)
                self._auto_scroll(page, cancel)
                check_cancelled(cancel)
                jitter_sleep(*self.settings.sleep_range_sec)
                html = page.content()

                if is_blocked_page(html, self.settings.min_html_chars):
                    log.info(f"[fetch] browser hit a challenge page, retrying once url={url}")
                    self._move_mouse(page)
                    check_cancelled(cancel)
                    resp = page.reload(wait_until="commit", timeout=timeout_ms)
                    self._wait_until_idle(page, cancel, timeout_ms)
                    jitter_sleep(*self.settings.sleep_range_sec)
                    html = page.content()
                    if is_blocked_page(html, self.settings.min_html_chars):
                        raise FetchFailed(url, ["browser: blocked by challenge page"])

                status = resp.status if resp is not None else 200
                return FetchResult(html=html, final_url=page.url or url, status=status, strategy=self.name)
        except PlaywrightTimeoutError as e:
            raise FetchFailed(url, [f"browser: timeout after {self.settings.browser_timeout_sec}s"]) from e


class FirecrawlFetcher:
    """Hosted scrape via the Firecrawl SDK; only wired in when an API key exists."""

    name = "firecrawl"

    def __init__(self, settings: Settings, client: Optional[Firecrawl] = None):
        self.settings = settings
        self.client = client or Firecrawl(
            api_key=settings.firecrawl_api_key,
            timeout=settings.browser_timeout_sec,
        )

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> FetchResult:
        check_cancelled(cancel)
        data = self.client.scrape(url)
        html = data.get("raw_html") or data.get("html") or ""
        if is_blocked_page(html, self.settings.min_html_chars):
            raise FetchFailed(url, [f"firecrawl: blocked or empty page ({len(html)} chars)"])
        meta = data.get("metadata") or {}
        final_url = meta.get("sourceURL") or meta.get("url") or url
        status = int(meta.get("statusCode") or 200)
        return FetchResult(html=html, final_url=final_url, status=status, strategy=self.name)

# ============================ chain ============================

class HtmlFetcher:
    """Try each strategy in order; FetchFailed only when all of them failed."""

    def __init__(self, strategies: List):
        self.strategies = list(strategies)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "HtmlFetcher":
        settings = settings or load_settings()
        strategies: List = [DirectFetcher(settings)]
        if settings.enable_browser:
            strategies.append(BrowserFetcher(settings))
        if settings.enable_firecrawl and settings.firecrawl_api_key:
            strategies.append(FirecrawlFetcher(settings))
        return cls(strategies)

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> FetchResult:
        reasons: List[str] = []
        for strategy in self.strategies:
            check_cancelled(cancel)
            started = time.monotonic()
            try:
                res = strategy.fetch(url, cancel)
            except ExtractionCancelled:
                raise
            except FetchFailed as e:
                reasons.extend(e.reasons or [str(e)])
                log.warning(f"[fetch] {strategy.name} failed url={url} err={e}")
                continue
            except Exception as e:
                reasons.append(f"{strategy.name}: {type(e).__name__}: {e}")
                log.error(f"[fetch] {strategy.name} crashed url={url} err={e}")
                continue
            log.info(
                f"[fetch] {strategy.name} ok url={url} status={res.status} "
                f"chars={len(res.html)} took={time.monotonic() - started:.1f}s"
            )
            if not looks_like_listing(res.html):
                log.warning(f"[fetch] page has no listing markers url={res.final_url}")
            return res
        raise FetchFailed(url, reasons)


def fetch_listing_html(
    url: str,
    *,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> FetchResult:
    return HtmlFetcher.from_settings(settings).fetch(url, cancel)
