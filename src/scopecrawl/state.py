"""
Shared crawl state: the visited set, result accumulators and the frontier.
"""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set

from scopecrawl.scope import ScopePolicy
from scopecrawl.urls import extract_directory, extract_subdomain


class AdmitStatus(str, Enum):
    """Result of an admission attempt."""

    ADMITTED = "admitted"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_DISALLOWED = "skipped_disallowed"
    SKIPPED_DEPTH = "skipped_depth"


@dataclass(frozen=True, slots=True)
class FrontierEntry:
    """A URL waiting to be fetched, with its distance from the seed."""
    url: str
    depth: int


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Sorted copies of the result sets."""
    urls: List[str]
    directories: List[str]
    subdomains: List[str]


class CrawlState:
    """
    Visited URLs, directories and subdomains for one crawl.

    All access goes through admit() and snapshot(), which take one lock for
    the duration of a set lookup/insert only.
    """

    def __init__(self, scope: ScopePolicy, max_depth: int) -> None:
        self.scope = scope
        self.max_depth = max_depth
        self._lock = threading.Lock()
        self._visited: Set[str] = set()
        self._directories: Set[str] = set()
        self._subdomains: Set[str] = set()

    def admit(self, url: str, depth: int) -> AdmitStatus:
        """
        Mark url as visited if it may be crawled at this depth.

        Two threads admitting the same URL get exactly one ADMITTED.
        """
        if depth > self.max_depth:
            return AdmitStatus.SKIPPED_DEPTH
        if not self.scope.is_allowed(url):
            return AdmitStatus.SKIPPED_DISALLOWED

        # Derivations are pure, so compute them outside the lock
        subdomain = extract_subdomain(url, self.scope.seed_host)
        directory = extract_directory(url)

        with self._lock:
            if url in self._visited:
                return AdmitStatus.SKIPPED_SEEN
            self._visited.add(url)
            if subdomain:
                self._subdomains.add(subdomain)
            if directory:
                self._directories.add(directory)

        return AdmitStatus.ADMITTED

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return url in self._visited

    def snapshot(self) -> StateSnapshot:
        """Return sorted copies of the three result sets."""
        with self._lock:
            return StateSnapshot(
                urls=sorted(self._visited),
                directories=sorted(self._directories),
                subdomains=sorted(self._subdomains),
            )


class Frontier:
    """
    Queue of admitted entries shared by the worker threads.

    Every put() must be balanced by a task_done() once the entry has been
    fully handled; join() returns when nothing is queued or in flight.
    close() wakes each blocked worker with a None sentinel.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Optional[FrontierEntry]] = queue.Queue()
        self._closed = threading.Event()

    def put(self, entry: FrontierEntry) -> None:
        self._queue.put(entry)

    def pop(self, timeout: Optional[float] = None) -> Optional[FrontierEntry]:
        """
        Block for the next entry.

        Returns None once the frontier is closed, or when timeout expires.
        """
        try:
            return self._queue.get(block=True, timeout=timeout)
        except queue.Empty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    def join(self) -> None:
        """Block until every queued entry has been marked done."""
        self._queue.join()

    def close(self, workers: int = 1) -> None:
        """Release `workers` consumers blocked in pop()."""
        self._closed.set()
        for _ in range(workers):
            self._queue.put(None)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        """Approximate queue size."""
        return self._queue.qsize()
