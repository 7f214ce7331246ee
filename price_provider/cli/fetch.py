"""
Fetch the latest price per market for a list of items.
Usage: price-provider fetch --symbols "AK-47 | Redline (Field-Tested),AWP | Asiimov (Field-Tested)"
       [--side all|sell|bid] [--market BUFF] [--format json|table|csv] [--timeout 15]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from price_provider.aggregate import LatestRow
from price_provider.config import get_config, split_csv
from price_provider.providers.defaults import create_fanout
from price_provider.providers.errors import FanoutError

logger = logging.getLogger(__name__)

MAX_SYMBOLS = 1000
COLUMNS = ["symbol", "market", "side", "currency", "price", "provider", "received_at"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="price-provider fetch",
        description="Fetch latest item prices from all enabled upstreams",
    )
    parser.add_argument("--symbols", required=True, help="Comma-separated item names")
    parser.add_argument("--side", default="all", choices=["all", "sell", "bid"], help="Side filter (default: all)")
    parser.add_argument("--market", default=None, help="Only rows for this market (aliases accepted)")
    parser.add_argument("--format", dest="fmt", default="table", choices=["json", "table", "csv"])
    parser.add_argument("--timeout", type=float, default=None, help="Fan-out timeout in seconds")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    return parser


def rows_frame(rows: List[LatestRow]) -> pd.DataFrame:
    return pd.DataFrame([r.to_dict() for r in rows], columns=COLUMNS)


def render(rows: List[LatestRow], fmt: str) -> str:
    if fmt == "json":
        return json.dumps({"latest": [r.to_dict() for r in rows]}, ensure_ascii=False, indent=2)
    df = rows_frame(rows)
    if fmt == "csv":
        return df.to_csv(index=False)
    if df.empty:
        return "(no quotes)"
    return df.to_string(index=False)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return 0 if exc.code in (0, None) else 2

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    symbols = split_csv(args.symbols)
    if not symbols:
        print("--symbols cannot be empty", file=sys.stderr)
        return 2
    if len(symbols) > MAX_SYMBOLS:
        print(f"too many symbols (max {MAX_SYMBOLS})", file=sys.stderr)
        return 2

    config = get_config(Path(args.config) if args.config else None)
    fanout = create_fanout(config)
    if not fanout.providers:
        print("No upstreams enabled; check config.yaml or *_ENABLED env vars", file=sys.stderr)
        return 1

    try:
        rows = fanout.latest(symbols, side=args.side, market=args.market, timeout_s=args.timeout)
    except FanoutError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print(render(rows, args.fmt))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
