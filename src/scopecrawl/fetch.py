"""
HTTP session setup and single-page fetching.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


def default_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    """Headers sent with every request."""
    return {
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    }


def build_session(user_agent: Optional[str] = None) -> requests.Session:
    """Create an HTTP session carrying the crawler's default headers."""
    session = requests.Session()
    session.headers.update(default_headers(user_agent))
    return session


class FetchStatus(str, Enum):
    """Why a fetch did or did not produce a page body."""

    FETCHED = "fetched"
    SKIPPED_HTTP_STATUS = "skipped_http_status"
    SKIPPED_NOT_HTML = "skipped_not_html"
    SKIPPED_TRANSPORT_ERROR = "skipped_transport_error"
    SKIPPED_CANCELLED = "skipped_cancelled"


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one page fetch."""

    url: str
    status: FetchStatus
    body: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.FETCHED


def is_html(content_type: Optional[str]) -> bool:
    """Check if a content-type header value denotes an HTML document."""
    return "text/html" in (content_type or "").lower()


class PageFetcher:
    """
    Fetch HTML pages, one GET per URL, never raising on network problems.

    Each worker thread gets its own requests.Session from session_factory.
    """

    def __init__(
        self,
        timeout: float,
        session_factory: Callable[[], requests.Session] = build_session,
    ) -> None:
        self.timeout = timeout
        self._session_factory = session_factory
        self._thread_local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = self._session_factory()
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch url and return its body only for successful HTML responses.

        The response is streamed so that bodies of skipped responses are
        never downloaded.
        """
        try:
            resp = self._session().get(url, timeout=self.timeout, allow_redirects=True, stream=True)
        except requests.RequestException as e:
            logger.debug("Fetch failed for %s: %s", url, e)
            return FetchResult(url, FetchStatus.SKIPPED_TRANSPORT_ERROR, error=str(e))

        try:
            if not 200 <= resp.status_code < 300:
                logger.debug("Skipping %s: HTTP %s", url, resp.status_code)
                return FetchResult(url, FetchStatus.SKIPPED_HTTP_STATUS, status_code=resp.status_code)

            if not is_html(resp.headers.get("content-type")):
                logger.debug("Skipping %s: not HTML", url)
                return FetchResult(url, FetchStatus.SKIPPED_NOT_HTML, status_code=resp.status_code)

            body = resp.text
        except requests.RequestException as e:
            logger.debug("Body download failed for %s: %s", url, e)
            return FetchResult(
                url,
                FetchStatus.SKIPPED_TRANSPORT_ERROR,
                status_code=resp.status_code,
                error=str(e),
            )
        finally:
            resp.close()

        return FetchResult(url, FetchStatus.FETCHED, body=body, status_code=resp.status_code)

    def close(self) -> None:
        """Close every session opened by this fetcher."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
