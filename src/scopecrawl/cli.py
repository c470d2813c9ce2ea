"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from scopecrawl.core import CrawlConfig, Crawler, CrawlResults, CrawlStats
from scopecrawl.urls import InvalidSeedError


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr; DEBUG shows every skipped page and link."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_summary(results: CrawlResults, stats: CrawlStats) -> None:
    """Print crawl summary."""
    print("\nCrawl Summary:")
    print(f"Total URLs discovered: {len(results.urls)}")
    print(f"Directories found: {len(results.directories)}")
    print(f"Subdomains discovered: {len(results.subdomains)}")

    sys.stderr.write(f"Pages fetched:          {stats.pages_fetched}\n")
    sys.stderr.write(f"Links found:            {stats.links_found}\n")
    sys.stderr.write(f"Peak requests in flight: {stats.peak_in_flight}\n")
    if stats.skipped:
        sys.stderr.write("Pages skipped by reason:\n")
        for reason, count in sorted(stats.skipped.items()):
            sys.stderr.write(f"  {reason}: {count}\n")
    if stats.deadline_reached:
        sys.stderr.write("Stopped early: deadline reached\n")
    elif stats.interrupted:
        sys.stderr.write("Stopped early: interrupted\n")


def print_listing(results: CrawlResults) -> None:
    """Print discovered directories and subdomains to stdout."""
    print("\nDiscovered Directories:")
    for directory in results.directories:
        print(f"  {directory}")

    print("\nDiscovered Subdomains:")
    for subdomain in results.subdomains:
        print(f"  {subdomain}")


def write_results(results: CrawlResults, output_path: Path) -> None:
    """Write results as pretty-printed JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(results.to_dict(), indent=2), encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scopecrawl",
        description="Crawl a site and its subdomains, collecting URLs, directories and subdomains.",
    )
    parser.add_argument("url", help="Base URL to crawl (http:// is assumed if no scheme is given)")
    parser.add_argument("-d", "--depth", type=int, default=3, help="Maximum recursion depth (default: 3)")
    parser.add_argument("-w", "--wait", type=float, default=0.5, help="Delay between requests in seconds (default: 0.5)")
    parser.add_argument("-t", "--timeout", type=float, default=10.0, help="Request timeout in seconds (default: 10)")
    parser.add_argument("-u", "--user-agent", help="Custom User-Agent string")
    parser.add_argument("-o", "--output", help="Output file path for results (JSON format)")
    parser.add_argument("--ignore-robots", action="store_true", help="Ignore robots.txt restrictions")
    parser.add_argument(
        "-c", "--concurrency", type=int, default=100,
        help="Maximum number of concurrent requests (default: 100)",
    )
    parser.add_argument("--max-duration", type=float, help="Stop crawling after this many seconds")
    parser.add_argument("--verbose", action="store_true", help="Log skipped pages and links")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    print(f"Starting crawl of {args.url}")
    print(
        f"Max depth: {args.depth}, Delay: {args.wait}s, Timeout: {args.timeout}s, "
        f"Concurrent requests: {args.concurrency}"
    )
    print(f"Respecting robots.txt: {not args.ignore_robots}")

    try:
        config = CrawlConfig(
            seed=args.url,
            max_depth=args.depth,
            delay=args.wait,
            timeout=args.timeout,
            user_agent=args.user_agent,
            respect_robots=not args.ignore_robots,
            concurrency=args.concurrency,
            max_duration=args.max_duration,
        )
        crawler = Crawler(config)
    except (InvalidSeedError, ValueError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return 2
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted before crawling started\n")
        return 130

    try:
        results = crawler.run()
    except KeyboardInterrupt:
        # A second Ctrl-C while in-flight requests were draining
        sys.stderr.write("Interrupted, no results written\n")
        return 130

    print_summary(results, crawler.stats)

    if args.output:
        output_path = Path(args.output)
        write_results(results, output_path)
        print(f"\nDetailed results saved to {output_path}")
    else:
        print_listing(results)

    return 130 if crawler.stats.interrupted else 0


if __name__ == "__main__":
    raise SystemExit(main())
