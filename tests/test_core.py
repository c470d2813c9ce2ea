from __future__ import annotations

import json
import threading
from unittest.mock import MagicMock

import pytest
import requests

from scopecrawl import core
from scopecrawl.core import CrawlConfig, Crawler
from scopecrawl.state import Frontier
from scopecrawl.urls import InvalidSeedError, host_of

from conftest import FakeFetcher, anchors, make_response


def run_crawl(pages, seed="http://example.com", fetcher=None, **overrides):
    options = {"max_depth": 1, "delay": 0.0, "respect_robots": False, "concurrency": 10}
    options.update(overrides)
    fetcher = fetcher or FakeFetcher(pages)
    crawler = Crawler(CrawlConfig(seed=seed, **options), fetcher=fetcher)
    return crawler, crawler.run(), fetcher


SITE = {
    "http://example.com/": anchors(
        "/about.html",
        "http://blog.example.com/post",
        "javascript:void(0)",
        "http://other.com/x",
    ),
    "http://example.com/about.html": anchors("/deep.html"),
    "http://blog.example.com/post/": anchors("/"),
}


def test_end_to_end_depth_one():
    crawler, results, fetcher = run_crawl(SITE)

    assert results.urls == [
        "http://blog.example.com/post/",
        "http://example.com/",
        "http://example.com/about.html",
    ]
    assert results.directories == ["/post/"]
    assert results.subdomains == ["blog"]

    assert "http://example.com/deep.html" not in fetcher.requested
    assert "deep" not in json.dumps(results.to_dict())
    assert sorted(fetcher.requested) == results.urls


def test_results_serialize_with_expected_keys():
    _, results, _ = run_crawl(SITE)
    assert set(results.to_dict()) == {"urls", "directories", "subdomains"}


def test_depth_zero_only_visits_seed():
    _, results, fetcher = run_crawl(SITE, max_depth=0)
    assert results.urls == ["http://example.com/"]
    assert fetcher.requested == ["http://example.com/"]


def test_depth_bound_on_chain():
    pages = {
        "http://example.com/": anchors("/1.html"),
        "http://example.com/1.html": anchors("/2.html"),
        "http://example.com/2.html": anchors("/3.html"),
        "http://example.com/3.html": anchors("/4.html"),
    }
    _, results, fetcher = run_crawl(pages, max_depth=2)
    assert results.urls == [
        "http://example.com/",
        "http://example.com/1.html",
        "http://example.com/2.html",
    ]
    assert "http://example.com/3.html" not in fetcher.requested


def test_every_url_fetched_once_despite_many_references():
    children = [f"/page{i}.html" for i in range(12)]
    pages = {"http://example.com/": anchors(*children)}
    for child in children:
        # Every child links back to the seed and to all siblings
        pages[f"http://example.com{child}"] = anchors("/", *children)

    _, results, fetcher = run_crawl(pages, max_depth=3, fetcher=FakeFetcher(pages, latency=0.01))
    assert len(fetcher.requested) == len(set(fetcher.requested)) == 13
    assert len(results.urls) == 13


def test_equivalent_spellings_are_admitted_once():
    pages = {
        "http://example.com/": anchors(
            "/b.html",
            "http://example.com/a/../b.html",
            "http://example.com:80/b.html",
            "//example.com/./b.html",
        ),
        "http://example.com/b.html": anchors(),
    }
    crawler, results, fetcher = run_crawl(pages)

    assert results.urls == ["http://example.com/", "http://example.com/b.html"]
    assert results.directories == []
    assert fetcher.requested.count("http://example.com/b.html") == 1
    assert crawler.stats.admissions["admitted"] == 2


def test_concurrency_cap_is_global():
    children = [f"/p{i}/" for i in range(8)]
    pages = {"http://example.com/": anchors(*children)}
    for child in children:
        pages[f"http://example.com{child}"] = anchors(*(f"{child}{j}.html" for j in range(4)))

    fetcher = FakeFetcher(pages, latency=0.05)
    crawler, results, _ = run_crawl(pages, max_depth=2, concurrency=3, fetcher=fetcher)

    assert len(results.urls) == 1 + 8 + 32
    assert fetcher.peak_in_flight <= 3
    assert crawler.stats.peak_in_flight <= 3
    assert results.directories == sorted(children)


def test_scope_containment():
    pages = {
        "http://example.com/": anchors(
            "http://a.example.com/",
            "http://example.org/",
            "http://fakeexample.com/",
            "https://b.a.example.com/x.html",
        ),
    }
    _, results, _ = run_crawl(pages)
    for url in results.urls:
        host = host_of(url)
        assert host == "example.com" or host.endswith(".example.com")
    assert results.subdomains == ["a", "b.a"]


def test_unreachable_site_completes_with_only_the_seed():
    crawler, results, _ = run_crawl({})
    assert results.urls == ["http://example.com/"]
    assert results.directories == []
    assert results.subdomains == []
    assert crawler.stats.pages_fetched == 0
    assert crawler.stats.skipped == {"skipped_http_status": 1}


def test_invalid_seed_raises():
    with pytest.raises(InvalidSeedError):
        Crawler(CrawlConfig(seed="http://", respect_robots=False), fetcher=FakeFetcher({}))


@pytest.mark.parametrize("overrides", [
    {"max_depth": -1},
    {"delay": -0.1},
    {"timeout": 0},
    {"concurrency": 0},
    {"max_duration": 0},
])
def test_config_validation(overrides):
    with pytest.raises(ValueError):
        CrawlConfig(seed="http://example.com", **overrides)


class TestRobotsEnforcement:
    pages = {
        "http://example.com/": anchors("/private/secret.html", "/public.html"),
        "http://example.com/public.html": anchors(),
    }

    def crawler_with_robots(self, session: MagicMock) -> Crawler:
        config = CrawlConfig(seed="http://example.com", max_depth=1, delay=0.0, respect_robots=True)
        return Crawler(config, fetcher=FakeFetcher(self.pages), session_factory=lambda: session)

    def test_disallowed_paths_are_not_admitted(self):
        session = MagicMock()
        session.get.return_value = make_response(200, "User-agent: *\nDisallow: /private", "text/plain")
        crawler = self.crawler_with_robots(session)
        results = crawler.run()

        assert crawler.robots.disallowed == frozenset({"/private"})
        assert results.urls == ["http://example.com/", "http://example.com/public.html"]
        assert crawler.stats.admissions["skipped_disallowed"] == 1
        session.close.assert_called_once()

    def test_robots_failure_fails_open(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        crawler = self.crawler_with_robots(session)
        results = crawler.run()

        assert not crawler.robots.loaded
        assert "http://example.com/private/secret.html" in results.urls


class TestStopping:
    def test_cancel_before_run_fetches_nothing(self):
        cancel = threading.Event()
        cancel.set()
        fetcher = FakeFetcher(SITE)
        config = CrawlConfig(seed="http://example.com", delay=0.0, respect_robots=False)
        crawler = Crawler(config, fetcher=fetcher, cancel_event=cancel)
        results = crawler.run()

        assert fetcher.requested == []
        assert results.urls == ["http://example.com/"]
        assert crawler.stats.cancelled
        assert crawler.stats.skipped == {"skipped_cancelled": 1}

    def test_deadline_stops_expansion(self):
        pages = {
            "http://example.com/": anchors("/1.html"),
            "http://example.com/1.html": anchors("/2.html"),
        }
        fetcher = FakeFetcher(pages, latency=0.3)
        config = CrawlConfig(
            seed="http://example.com",
            max_depth=5,
            delay=0.0,
            respect_robots=False,
            max_duration=0.1,
        )
        crawler = Crawler(config, fetcher=fetcher)
        results = crawler.run()

        assert fetcher.requested == ["http://example.com/"]
        assert results.urls == ["http://example.com/"]
        assert crawler.stats.deadline_reached
        assert crawler.stats.cancelled

    def test_keyboard_interrupt_returns_partial_results(self, monkeypatch):
        original_join = Frontier.join
        joins = []

        def join_interrupted_once(frontier):
            joins.append(frontier)
            if len(joins) == 1:
                raise KeyboardInterrupt
            original_join(frontier)

        monkeypatch.setattr(Frontier, "join", join_interrupted_once)
        fetcher = FakeFetcher(SITE)
        # A long delay keeps the seed waiting until the interrupt cancels it
        config = CrawlConfig(seed="http://example.com", delay=5.0, respect_robots=False)
        crawler = Crawler(config, fetcher=fetcher)
        results = crawler.run()

        assert len(joins) == 2
        assert crawler.stats.interrupted
        assert crawler.stats.cancelled
        assert fetcher.requested == []
        assert results.urls == ["http://example.com/"]


class RecordingEvent(threading.Event):
    """Cancel event that records politeness waits instead of sleeping."""

    def __init__(self) -> None:
        super().__init__()
        self.timeouts = []
        self._timeouts_lock = threading.Lock()

    def wait(self, timeout=None):
        with self._timeouts_lock:
            self.timeouts.append(timeout)
        return self.is_set()


class TestPoliteness:
    def crawl_with(self, event: RecordingEvent, delay: float) -> Crawler:
        config = CrawlConfig(seed="http://example.com", max_depth=1, delay=delay, respect_robots=False)
        crawler = Crawler(config, fetcher=FakeFetcher(SITE), cancel_event=event)
        crawler.run()
        return crawler

    def test_wait_is_delay_plus_jitter(self, monkeypatch):
        monkeypatch.setattr(core, "JITTER_SECONDS", 0.5)
        monkeypatch.setattr(core.random, "random", lambda: 0.4)
        event = RecordingEvent()
        self.crawl_with(event, delay=1.5)

        # One wait per fetched page: the seed, about.html and the blog post
        assert event.timeouts == [pytest.approx(1.7)] * 3

    def test_jitter_stays_below_half_a_second(self, monkeypatch):
        monkeypatch.setattr(core, "JITTER_SECONDS", 0.5)
        event = RecordingEvent()
        self.crawl_with(event, delay=2.0)

        assert len(event.timeouts) == 3
        assert all(2.0 <= timeout < 2.5 for timeout in event.timeouts)


def test_crawl_through_session_factory():
    responses = {
        "http://example.com/robots.txt": make_response(200, "Disallow: /private", "text/plain"),
        "http://example.com/": make_response(200, anchors("/private/x.html", "/docs", "/logo.png")),
        "http://example.com/docs/": make_response(200, anchors("intro.html")),
        "http://example.com/logo.png": make_response(200, "PNG", "image/png"),
    }

    def get(url, **kwargs):
        return responses.get(url) or make_response(404, "")

    session = MagicMock()
    session.get.side_effect = get
    config = CrawlConfig(seed="example.com", max_depth=2, delay=0.0, concurrency=2)
    crawler = Crawler(config, session_factory=lambda: session)
    results = crawler.run()

    assert results.urls == [
        "http://example.com/",
        "http://example.com/docs/",
        "http://example.com/docs/intro.html",
        "http://example.com/logo.png",
    ]
    assert results.directories == ["/docs/"]
    assert crawler.robots.disallowed == frozenset({"/private"})
    assert crawler.stats.pages_fetched == 2
    assert crawler.stats.skipped == {"skipped_not_html": 1, "skipped_http_status": 1}

    requested = [call.args[0] for call in session.get.call_args_list]
    assert requested[0] == "http://example.com/robots.txt"
    assert sorted(requested[1:]) == results.urls
    page_call = session.get.call_args_list[1]
    assert page_call.kwargs == {"timeout": 10.0, "allow_redirects": True, "stream": True}
    assert session.close.called
