#!/usr/bin/env python3
"""
Probe eSewa endpoints and report how each one answers.

Usage:
    python probe_esewa.py
    python probe_esewa.py --base-url https://rc-epay.esewa.com.np --path /api/epay/main/v2/form --method POST
    python probe_esewa.py --url https://uat.esewa.com.np/epay/main --json
"""

import sys
import json
import logging
import argparse

from services.probe_service import ESEWA_KNOWN_URLS, build_urls, probe_urls


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Check which payment gateway URLs are reachable")
    parser.add_argument("--base-url", help="Base URL to combine with --path values")
    parser.add_argument("--path", action="append", default=[], help="Path under --base-url (repeatable)")
    parser.add_argument("--url", action="append", default=[], help="Full URL to probe (repeatable)")
    parser.add_argument("--method", default="GET", choices=["GET", "POST", "HEAD"])
    parser.add_argument("--timeout", type=float, default=5.0, help="Seconds per request")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    if args.path and not args.base_url:
        parser.error("--path requires --base-url")
    return args


def collect_urls(args):
    urls = list(args.url)
    if args.base_url:
        urls.extend(build_urls(args.base_url, args.path or ["/"]))
    return urls or list(ESEWA_KNOWN_URLS)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    results = probe_urls(collect_urls(args), method=args.method, timeout=args.timeout)

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        for r in results:
            if r.reachable:
                print(f"{r.method} {r.url}: {r.status_code} {r.reason} ({r.verdict}, {r.elapsed_ms} ms)")
            else:
                print(f"{r.method} {r.url}: error {r.error}")

    return 0 if all(r.reachable for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
