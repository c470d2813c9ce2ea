"""
Minimal robots.txt support: a set of Disallow path prefixes, fail-open.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

import requests

from scopecrawl.fetch import FetchStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RobotsRules:
    """Disallowed path prefixes, plus why the set is empty when loading failed."""
    disallowed: FrozenSet[str] = field(default_factory=frozenset)
    skip_reason: Optional[FetchStatus] = None

    @property
    def loaded(self) -> bool:
        return self.skip_reason is None


def robots_url(base_url: str) -> str:
    """Location of robots.txt for a base URL."""
    return f"{base_url.rstrip('/')}/robots.txt"


def parse_robots_txt(text: str) -> FrozenSet[str]:
    """
    Collect every Disallow path from robots.txt text.

    User-agent groups, Allow, Crawl-delay, Sitemap and comments are ignored.
    Lines are lower-cased before matching, paths included.
    """
    disallowed = set()
    for line in text.splitlines():
        line = line.strip().lower()
        if not line.startswith("disallow:"):
            continue
        path = line.split(":", 1)[1].strip()
        if path:
            disallowed.add(path)
    return frozenset(disallowed)


def load_robots_rules(
    session: requests.Session,
    base_url: str,
    timeout: float,
) -> RobotsRules:
    """Fetch and parse robots.txt; any failure yields an empty rule set."""
    url = robots_url(base_url)
    try:
        resp = session.get(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug("robots.txt unavailable at %s: %s", url, e)
        return RobotsRules(skip_reason=FetchStatus.SKIPPED_TRANSPORT_ERROR)

    if not 200 <= resp.status_code < 300:
        logger.debug("robots.txt at %s returned HTTP %s", url, resp.status_code)
        return RobotsRules(skip_reason=FetchStatus.SKIPPED_HTTP_STATUS)

    rules = RobotsRules(disallowed=parse_robots_txt(resp.text))
    logger.debug("Loaded %d disallow rules from %s", len(rules.disallowed), url)
    return rules
