"""
Crawl engine: depth-bounded traversal with a fixed-size worker pool.
"""
from __future__ import annotations

import logging
import random
import threading
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from functools import partial
from typing import Callable, Dict, List, Optional, Protocol

import requests

from scopecrawl.fetch import FetchResult, FetchStatus, PageFetcher, build_session
from scopecrawl.links import extract_links
from scopecrawl.robots import RobotsRules, load_robots_rules
from scopecrawl.scope import ScopePolicy
from scopecrawl.state import AdmitStatus, CrawlState, Frontier, FrontierEntry
from scopecrawl.urls import host_of, prepare_seed

logger = logging.getLogger(__name__)

# Upper bound of the random extra pause added to every politeness delay
JITTER_SECONDS = 0.5


class Fetcher(Protocol):
    def fetch(self, url: str) -> FetchResult: ...


@dataclass(slots=True)
class CrawlConfig:
    """Settings for one crawl run."""
    seed: str
    max_depth: int = 3
    delay: float = 0.5
    timeout: float = 10.0
    user_agent: Optional[str] = None
    respect_robots: bool = True
    concurrency: int = 100
    max_duration: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.max_duration is not None and self.max_duration <= 0:
            raise ValueError("max_duration must be > 0")


@dataclass(slots=True)
class CrawlResults:
    """Sorted output sets of a crawl."""
    urls: List[str] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)
    subdomains: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


@dataclass(slots=True)
class CrawlStats:
    """Counters collected during a crawl for summary output."""
    pages_fetched: int = 0
    links_found: int = 0
    peak_in_flight: int = 0
    skipped: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    admissions: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    robots_rules: int = 0
    cancelled: bool = False
    deadline_reached: bool = False
    interrupted: bool = False
    _in_flight: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_admit(self, status: AdmitStatus) -> None:
        with self._lock:
            self.admissions[status.value] += 1

    def record_fetch(self, result: FetchResult, links_found: int = 0) -> None:
        with self._lock:
            if result.ok:
                self.pages_fetched += 1
                self.links_found += links_found
            else:
                self.skipped[result.status.value] += 1

    def enter_fetch(self) -> None:
        with self._lock:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)

    def leave_fetch(self) -> None:
        with self._lock:
            self._in_flight -= 1


class Crawler:
    """
    Crawl one site starting from a seed URL.

    Construction validates the seed and loads robots.txt; run() performs the
    traversal. Admitted URLs go through a shared frontier consumed by exactly
    `concurrency` worker threads, so no more than that many URLs are being
    delayed/fetched at once across the whole crawl.
    """

    def __init__(
        self,
        config: CrawlConfig,
        *,
        fetcher: Optional[Fetcher] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.seed_url = prepare_seed(config.seed)
        # prepare_seed guarantees a host
        self.seed_host = host_of(self.seed_url) or ""

        self._session_factory = session_factory or partial(build_session, config.user_agent)
        self._owns_fetcher = fetcher is None
        self.fetcher: Fetcher = fetcher or PageFetcher(config.timeout, self._session_factory)

        self.robots = self._load_robots() if config.respect_robots else RobotsRules()
        self.scope = ScopePolicy(
            seed_host=self.seed_host,
            disallowed_paths=self.robots.disallowed,
            respect_robots=config.respect_robots,
        )

        self.state = CrawlState(self.scope, config.max_depth)
        self.stats = CrawlStats(robots_rules=len(self.robots.disallowed))
        self._cancel = cancel_event or threading.Event()
        self._frontier = Frontier()

    def _load_robots(self) -> RobotsRules:
        session = self._session_factory()
        try:
            return load_robots_rules(session, self.seed_url, self.config.timeout)
        finally:
            session.close()

    def cancel(self) -> None:
        """Stop starting new fetches; run() returns what was gathered so far."""
        self._cancel.set()

    @property
    def stopped(self) -> bool:
        return self._cancel.is_set()

    def _expire(self) -> None:
        logger.info("Crawl deadline of %ss reached, stopping", self.config.max_duration)
        self.stats.deadline_reached = True
        self._cancel.set()

    def run(self) -> CrawlResults:
        """Crawl until the frontier is exhausted, cancelled or out of time."""
        logger.info(
            "Starting crawl of %s (depth %d, concurrency %d, robots: %s)",
            self.seed_url,
            self.config.max_depth,
            self.config.concurrency,
            "on" if self.config.respect_robots else "off",
        )

        self._enqueue(self.seed_url, depth=0)

        timer = None
        if self.config.max_duration is not None:
            timer = threading.Timer(self.config.max_duration, self._expire)
            timer.daemon = True
            timer.start()

        workers = [
            threading.Thread(target=self._worker, name=f"crawler-worker-{idx}", daemon=True)
            for idx in range(self.config.concurrency)
        ]
        for worker in workers:
            worker.start()

        try:
            self._frontier.join()
        except KeyboardInterrupt:
            logger.info("Interrupted, waiting for in-flight requests to finish")
            self.stats.interrupted = True
            self.cancel()
            self._frontier.join()
        finally:
            self._frontier.close(workers=len(workers))
            if timer is not None:
                timer.cancel()

        for worker in workers:
            worker.join(timeout=5.0)

        if self._owns_fetcher and isinstance(self.fetcher, PageFetcher):
            self.fetcher.close()

        self.stats.cancelled = self.stopped
        snapshot = self.state.snapshot()
        logger.info(
            "Crawl finished: %d URLs, %d directories, %d subdomains",
            len(snapshot.urls),
            len(snapshot.directories),
            len(snapshot.subdomains),
        )
        return CrawlResults(
            urls=snapshot.urls,
            directories=snapshot.directories,
            subdomains=snapshot.subdomains,
        )

    def _enqueue(self, url: str, depth: int) -> bool:
        """Admit url at depth and queue it for fetching."""
        status = self.state.admit(url, depth)
        self.stats.record_admit(status)
        if status != AdmitStatus.ADMITTED:
            return False
        self._frontier.put(FrontierEntry(url, depth))
        return True

    def _worker(self) -> None:
        while True:
            entry = self._frontier.pop()
            if entry is None:
                return

            try:
                self._process(entry)
            except Exception:
                logger.exception("Unexpected error while processing %s", entry.url)
            finally:
                self._frontier.task_done()

    def _process(self, entry: FrontierEntry) -> None:
        """Delay, fetch and expand one admitted entry."""
        if self.stopped:
            self.stats.record_fetch(FetchResult(entry.url, FetchStatus.SKIPPED_CANCELLED))
            return

        self.stats.enter_fetch()
        try:
            # Cancellation cuts the politeness pause short
            if self._cancel.wait(self.config.delay + random.random() * JITTER_SECONDS):
                result = FetchResult(entry.url, FetchStatus.SKIPPED_CANCELLED)
            else:
                result = self.fetcher.fetch(entry.url)
        finally:
            self.stats.leave_fetch()

        if not result.ok:
            self.stats.record_fetch(result)
            return

        links = extract_links(result.body or "", entry.url, self.scope)
        self.stats.record_fetch(result, links_found=len(links))
        logger.debug("Fetched %s (depth %d, %d links)", entry.url, entry.depth, len(links))

        if entry.depth >= self.config.max_depth or self.stopped:
            return

        for link in sorted(links):
            self._enqueue(link, entry.depth + 1)


def crawl(
    seed: str,
    max_depth: int = 3,
    delay: float = 0.5,
    timeout: float = 10.0,
    user_agent: Optional[str] = None,
    respect_robots: bool = True,
    concurrency: int = 100,
    max_duration: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CrawlResults:
    """
    Crawl a site and return its visited URLs, directories and subdomains.

    Args:
        seed: Start URL; http:// is assumed when no scheme is given.
        max_depth: Links are followed at most this many hops from the seed.
        delay: Base politeness delay in seconds before every request.
        timeout: HTTP request timeout in seconds.
        user_agent: User-Agent header; a desktop browser string by default.
        respect_robots: Whether to honor robots.txt Disallow rules.
        concurrency: Maximum number of requests in flight at once.
        max_duration: Optional overall deadline in seconds.
        cancel_event: Optional event that stops the crawl when set.

    Raises:
        InvalidSeedError: If the seed cannot be parsed or has no host.
    """
    config = CrawlConfig(
        seed=seed,
        max_depth=max_depth,
        delay=delay,
        timeout=timeout,
        user_agent=user_agent,
        respect_robots=respect_robots,
        concurrency=concurrency,
        max_duration=max_duration,
    )
    return Crawler(config, cancel_event=cancel_event).run()
