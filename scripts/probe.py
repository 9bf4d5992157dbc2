# scripts/probe.py
from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List

from apimanager.config import get_settings
from apimanager.executor import request
from apimanager.models import Collection, Failed, Success
from apimanager.utils.log import setup_logging


def _parse_params(pairs: List[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"--param expects key=value, got {pair!r}")
        params[key] = value
    return params


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue one request through the shared session")
    parser.add_argument("url")
    parser.add_argument("--post", action="store_true", help="send parameters as a JSON body")
    parser.add_argument("--param", action="append", default=[], metavar="KEY=VALUE")
    parser.add_argument("--retries", type=int, default=0)
    parser.add_argument("--wait", type=float, default=60.0, help="seconds to wait for an outcome")
    args = parser.parse_args()

    s = get_settings()
    setup_logging(s.log_level)

    signal = request(
        args.url,
        "POST" if args.post else "GET",
        parameters=_parse_params(args.param) or None,
        retry_count=args.retries,
    )
    signal.subscribe(lambda event: print(f"[EVENT] {type(event).__name__}"))

    outcome = signal.wait(timeout=args.wait)

    if isinstance(outcome, Success):
        data = outcome.data
        if isinstance(data, Collection):
            print(json.dumps([item.value for item in data.items], indent=2)[:2000])
        else:
            value = data.value.value if data.value is not None else None
            print(json.dumps(value, indent=2)[:2000])
        sys.exit(0)

    if isinstance(outcome, Failed):
        print(f"Failed: {outcome.kind.value} | {outcome.error}")
        sys.exit(1)

    print(f"No outcome after {args.wait}s (body was probably not JSON)")
    sys.exit(2)


if __name__ == "__main__":
    main()
