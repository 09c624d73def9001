#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from typing import Any

import httpx


def _call(client: httpx.Client, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
    try:
        resp = client.request(method, path, json=payload)
    except httpx.HTTPError as exc:
        raise RuntimeError(f"{method} {path} failed: {exc}") from exc
    if resp.status_code >= 400:
        raise RuntimeError(f"{method} {path} returned {resp.status_code}: {resp.text[:600]}")
    return resp.json() if resp.content else {}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a region's analysis server-side so later streams replay from cache.")
    parser.add_argument("--api-base", default="http://localhost:8000", help="API base URL (default: http://localhost:8000)")
    parser.add_argument("--region", required=True, help="Region id, used as the cache key")
    parser.add_argument("--council", required=True, help="Council name")
    parser.add_argument(
        "--bounds",
        required=True,
        type=float,
        nargs=4,
        metavar=("WEST", "SOUTH", "EAST", "NORTH"),
        help="Bounding box in WGS84 degrees",
    )
    parser.add_argument("--plan-corpus", default=None, help="Plan corpus (council) to ground prompts in")
    parser.add_argument("--force", action="store_true", help="Ignore cached stages and re-run everything")
    parser.add_argument("--clear", action="store_true", help="Clear the region's cache before running")
    parser.add_argument("--timeout-seconds", type=float, default=900.0, help="Request timeout (default: 900s)")
    args = parser.parse_args(argv)

    payload = {
        "region": args.region,
        "council": args.council,
        "bounds": args.bounds,
        "planCorpus": args.plan_corpus,
        "force": bool(args.force),
    }
    try:
        with httpx.Client(base_url=args.api_base.rstrip("/"), timeout=args.timeout_seconds) as client:
            if args.clear:
                cleared = _call(client, "DELETE", "/council/cache", {"region": args.region})
                print(f"Cleared: {json.dumps(cleared)}")
            result = _call(client, "POST", "/council/preload", payload)
    except RuntimeError as exc:
        print(f"ERROR: preload failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
