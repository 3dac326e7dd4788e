"""
HTTP fetching module for the competitor monitor.
Issues throttled GET/HEAD requests with spoofed browser headers.
Only HTML content counts as a successful fetch.
"""

import time
from dataclasses import dataclass
from typing import Optional

import requests

from crawler.config import (
    ACCEPT,
    ACCEPT_LANGUAGE,
    MAX_REDIRECTS,
    PROBE_TIMEOUT,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from crawler.errors import FetchError
from crawler.logger import logger
from crawler.throttle import HostThrottle

DEFAULT_429_PAUSE = 5


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single GET. `html` is only set for successful HTML answers."""
    url: str
    status: Optional[int]
    html: Optional[str] = None
    content_type: str = ""
    error_type: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error_type is None and self.html is not None


class ContentFetcher:
    """
    Thin wrapper over a requests.Session.
    Every outbound request waits on the shared HostThrottle first.
    """

    def __init__(self, throttle: HostThrottle = None, session: requests.Session = None,
                 timeout: float = REQUEST_TIMEOUT, probe_timeout: float = PROBE_TIMEOUT):
        self.throttle = throttle or HostThrottle()
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.session = session or requests.Session()
        self.session.max_redirects = MAX_REDIRECTS
        self.headers = {
            "User-Agent": USER_AGENT,
            "Accept": ACCEPT,
            "Accept-Language": ACCEPT_LANGUAGE,
        }

    def probe(self, url: str) -> Optional[int]:
        """
        Cheap existence check (HEAD, redirects followed).
        Returns the HTTP status, or None when the request itself failed.
        """
        self.throttle.wait(url)
        try:
            r = self.session.head(
                url,
                timeout=self.probe_timeout,
                headers={"User-Agent": USER_AGENT},
                allow_redirects=True,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"[FETCH] probe failed {url}: {e}")
            return None

        self._respect_rate_limit(url, r)
        return r.status_code

    def fetch(self, url: str) -> FetchResult:
        """Fetch a URL and classify the outcome. Never raises."""
        self.throttle.wait(url)
        start_time = time.time()

        try:
            r = self.session.get(
                url,
                timeout=self.timeout,
                headers=self.headers,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout:
            return self._failure(url, "timeout", start_time)
        except requests.exceptions.ConnectionError:
            return self._failure(url, "connection_error", start_time)
        except requests.exceptions.RequestException:
            return self._failure(url, "request_error", start_time)

        fetch_time_ms = int((time.time() - start_time) * 1000)
        ct = r.headers.get("Content-Type", "").lower()
        self._respect_rate_limit(url, r)

        if not 200 <= r.status_code < 300:
            logger.info(f"[FETCH] {url} -> HTTP {r.status_code}")
            return FetchResult(url, r.status_code, content_type=ct,
                               error_type="http_error", elapsed_ms=fetch_time_ms)

        # Servers that omit the header are given the benefit of the doubt
        if ct and "html" not in ct:
            logger.info(f"[FETCH] {url} ignored, content type {ct}")
            return FetchResult(url, r.status_code, content_type=ct,
                               error_type="non_html", elapsed_ms=fetch_time_ms)

        return FetchResult(url, r.status_code, html=r.text, content_type=ct,
                           elapsed_ms=fetch_time_ms)

    def get_html(self, url: str) -> str:
        """Like fetch() but raises FetchError instead of returning a failed result."""
        result = self.fetch(url)
        if not result.ok:
            raise FetchError(url, result.error_type or "request_error", status=result.status)
        return result.html

    def _respect_rate_limit(self, url, response):
        if response.status_code != 429:
            return
        retry_after = response.headers.get("Retry-After", "")
        seconds = int(retry_after) if retry_after.isdigit() else DEFAULT_429_PAUSE
        self.throttle.pause(url, seconds)

    def _failure(self, url, error_type, start_time):
        fetch_time_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[FETCH] {url} failed: {error_type}")
        return FetchResult(url, None, error_type=error_type, elapsed_ms=fetch_time_ms)
