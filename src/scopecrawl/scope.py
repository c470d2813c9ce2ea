"""
Scope and robots policy checks applied to normalized crawl targets.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet
from urllib.parse import urlsplit

from scopecrawl.urls import host_of


@dataclass(frozen=True, slots=True)
class ScopePolicy:
    """
    Decides which URLs belong to the crawl.

    Immutable, so workers can share one instance without locking.
    """
    seed_host: str
    disallowed_paths: FrozenSet[str] = field(default_factory=frozenset)
    respect_robots: bool = True

    def in_scope(self, url: str) -> bool:
        """Check if URL is on the seed host or one of its subdomains."""
        host = host_of(url)
        if not host:
            return False
        return host == self.seed_host or host.endswith(f".{self.seed_host}")

    def is_allowed(self, url: str) -> bool:
        """Check URL path against the robots.txt disallow prefixes."""
        if not self.respect_robots or not self.disallowed_paths:
            return True
        try:
            path = urlsplit(url).path
        except ValueError:
            return True
        return not any(path.startswith(prefix) for prefix in self.disallowed_paths)
