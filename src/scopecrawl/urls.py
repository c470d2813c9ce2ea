"""
URL normalization and the path/host derivations built on top of it.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import SplitResult, urldefrag, urljoin, urlsplit, urlunsplit


class CrawlerError(Exception):
    """Base class for crawler errors."""


class MalformedUrlError(CrawlerError, ValueError):
    """Raised when a link or its source page cannot be parsed as a URL."""


class InvalidSeedError(CrawlerError, ValueError):
    """Raised when the seed URL is unparsable or has no host."""


def _split(url: str) -> SplitResult:
    """Split a URL, turning parser errors into MalformedUrlError."""
    try:
        parsed = urlsplit(url)
        # Accessing the port validates it
        parsed.port
    except ValueError as e:
        raise MalformedUrlError(f"Cannot parse URL {url!r}: {e}") from e
    return parsed


def _remove_dot_segments(path: str) -> str:
    """
    Resolve '.' and '..' segments of an absolute path (RFC 3986 5.2.4).

    urljoin only does this for relative links; absolute links come back as
    written. Empty segments ('//') are kept.
    """
    segments = path.split("/")
    output = []
    for segment in segments:
        if segment == ".":
            continue
        if segment == "..":
            # Never pop the leading empty segment of "/..."
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)

    # "/a/.." and "/a/." name a directory
    if segments[-1] in (".", ".."):
        output.append("")

    normalized = "/".join(output)
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    return normalized


def _normalize_netloc(parsed: SplitResult) -> str:
    """Lower-case the host and drop default ports (:80 for http, :443 for https)."""
    hostname = (parsed.hostname or "").lower()
    if ":" in hostname:
        hostname = f"[{hostname}]"

    userinfo, sep, _ = parsed.netloc.rpartition("@")
    scheme = parsed.scheme.lower()
    port = parsed.port

    if (scheme == "http" and port == 80) or (scheme == "https" and port == 443):
        netloc = hostname
    elif port is not None:
        netloc = f"{hostname}:{port}"
    else:
        netloc = hostname

    return f"{userinfo}{sep}{netloc}"


def _with_directory_slash(path: str) -> str:
    """Append '/' to paths whose last segment has no file extension."""
    last_segment = path.rsplit("/", 1)[-1]
    if "." not in last_segment and not path.endswith("/"):
        return path + "/"
    return path


def normalize_url(link: str, source_url: str) -> str:
    """
    Normalize a link found on source_url into a crawl target.

    - Resolves relative, protocol-relative and absolute links against source_url
    - Drops fragments (#...)
    - Resolves '.' and '..' path segments, absolute links included
    - Lower-cases scheme and host, removes default ports (:80, :443)
    - Adds a trailing slash to directory-like paths (no extension in the last segment)

    Raises MalformedUrlError when either URL cannot be parsed or the result
    is not an absolute URL with a host.
    """
    if link is None or source_url is None:
        raise MalformedUrlError("URL must not be None")

    base = _split(source_url)
    if not base.scheme:
        raise MalformedUrlError(f"Source URL is not absolute: {source_url!r}")

    try:
        joined, _ = urldefrag(urljoin(source_url, link.strip()))
    except ValueError as e:
        raise MalformedUrlError(f"Cannot resolve {link!r} against {source_url!r}: {e}") from e

    parsed = _split(joined)
    if not parsed.scheme or not parsed.hostname:
        raise MalformedUrlError(f"Resolved URL has no host: {joined!r}")

    return urlunsplit((
        parsed.scheme.lower(),
        _normalize_netloc(parsed),
        _with_directory_slash(_remove_dot_segments(parsed.path or "/")),
        parsed.query,
        "",  # No fragment
    ))


def prepare_seed(raw: str) -> str:
    """
    Turn user input into a normalized seed URL.

    A missing scheme defaults to http://.
    """
    seed = (raw or "").strip()
    if not seed.startswith(("http://", "https://")):
        seed = f"http://{seed}"

    try:
        normalized = normalize_url(seed, seed)
    except MalformedUrlError as e:
        raise InvalidSeedError(f"Invalid seed URL {raw!r}: {e}") from e

    return normalized


def host_of(url: str) -> Optional[str]:
    """Return the host of a URL, or None if it has none or cannot be parsed."""
    try:
        return _split(url).hostname
    except MalformedUrlError:
        return None


def extract_directory(url_or_path: str) -> Optional[str]:
    """
    Derive the directory a URL lives in.

    /a/b/c.html -> /a/b/, /a/b/ -> /a/b/, top-level files and the root -> None.
    """
    if "://" in url_or_path:
        try:
            path = _split(url_or_path).path
        except MalformedUrlError:
            return None
    else:
        path = url_or_path

    if not path or path == "/":
        return None

    if path.endswith("/"):
        return path

    last_slash = path.rfind("/")
    if last_slash > 0:
        return path[:last_slash + 1]
    return None


def extract_subdomain(url: str, base_host: str) -> Optional[str]:
    """Return the subdomain label(s) of url relative to base_host, if any."""
    host = host_of(url)
    if not host or host == base_host:
        return None

    suffix = f".{base_host}"
    if host.endswith(suffix):
        return host[:-len(suffix)]
    return None
