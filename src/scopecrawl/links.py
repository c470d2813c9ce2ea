"""
Link extraction from HTML pages.
"""
from __future__ import annotations

import logging
from typing import List, Set

from bs4 import BeautifulSoup, SoupStrainer

from scopecrawl.scope import ScopePolicy
from scopecrawl.urls import MalformedUrlError, normalize_url

logger = logging.getLogger(__name__)

# Hrefs that never lead to another page
SKIP_HREF_PREFIXES = ("javascript:", "mailto:", "tel:", "#")

# SoupStrainer to parse only <a> tags (faster link extraction)
LINK_STRAINER = SoupStrainer("a", href=True)


def extract_hrefs(html: str) -> List[str]:
    """Extract all href values from <a> tags."""
    soup = BeautifulSoup(html, "lxml", parse_only=LINK_STRAINER)
    return [a["href"] for a in soup.find_all("a") if a.get("href")]


def extract_links(html: str, source_url: str, scope: ScopePolicy) -> Set[str]:
    """Return the in-scope, normalized link targets found on one page."""
    try:
        hrefs = extract_hrefs(html)
    except Exception as e:  # lxml/bs4 raise assorted errors on broken input
        logger.debug("Could not parse HTML from %s: %s", source_url, e)
        return set()

    links: Set[str] = set()
    for href in hrefs:
        if href.startswith(SKIP_HREF_PREFIXES):
            continue

        try:
            target = normalize_url(href, source_url)
        except MalformedUrlError:
            logger.debug("Dropping malformed link %r on %s", href, source_url)
            continue

        if scope.in_scope(target):
            links.add(target)

    return links
