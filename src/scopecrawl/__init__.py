"""
Same-site crawler that collects visited URLs, directory paths and subdomains
reachable from a seed URL within a bounded depth.
"""
from scopecrawl.core import crawl, CrawlConfig, Crawler, CrawlResults, CrawlStats
from scopecrawl.urls import CrawlerError, InvalidSeedError, MalformedUrlError

__version__ = "1.0.0"
__all__ = [
    "crawl",
    "CrawlConfig",
    "Crawler",
    "CrawlerError",
    "CrawlResults",
    "CrawlStats",
    "InvalidSeedError",
    "MalformedUrlError",
]
