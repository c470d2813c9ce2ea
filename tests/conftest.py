from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from scopecrawl import core
from scopecrawl.fetch import FetchResult, FetchStatus


class FakeFetcher:
    """Serves canned HTML by URL and records what was requested."""

    def __init__(self, pages: Dict[str, str], latency: float = 0.0) -> None:
        self.pages = pages
        self.latency = latency
        self.requested: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.requested.append(url)
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.latency:
                time.sleep(self.latency)
            body = self.pages.get(url)
            if body is None:
                return FetchResult(url, FetchStatus.SKIPPED_HTTP_STATUS, status_code=404)
            return FetchResult(url, FetchStatus.FETCHED, body=body, status_code=200)
        finally:
            with self._lock:
                self.in_flight -= 1


def make_response(
    status_code: int = 200,
    text: str = "",
    content_type: Optional[str] = "text/html; charset=utf-8",
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.headers = {"content-type": content_type} if content_type else {}
    return resp


def anchors(*hrefs: str) -> str:
    links = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return f"<html><body>{links}</body></html>"


@pytest.fixture(autouse=True)
def no_jitter(monkeypatch):
    """Keep politeness jitter out of test run times."""
    monkeypatch.setattr(core, "JITTER_SECONDS", 0.0)
