"""
Top-level CLI dispatcher: price-provider <command> [args...].
"""

from __future__ import annotations

import argparse
import copy
import json
import sys
from typing import List, Optional

from price_provider import __version__


def _main_fetch(argv: List[str]) -> int:
    from price_provider.cli.fetch import main as fetch_main

    return fetch_main(argv)


def _main_config(argv: List[str]) -> int:
    from price_provider.config import get_config

    cfg = copy.deepcopy(get_config())
    # never echo credentials
    for section in cfg.values():
        if isinstance(section, dict) and section.get("api_key"):
            section["api_key"] = "***"
    print(json.dumps(cfg, indent=2, sort_keys=True))
    return 0


_COMMANDS = {
    "fetch": _main_fetch,
    "config": _main_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(
        prog="price-provider",
        description="Item price quotes from rate-limited upstream pricing services",
    )
    parser.add_argument("--version", action="version", version=f"price-provider {__version__}")
    parser.add_argument("command", choices=sorted(_COMMANDS), help="command")
    if not argv:
        parser.print_help()
        return 2
    args, rest = parser.parse_known_args(argv[:1])
    return _COMMANDS[args.command](argv[1:] + rest)


if __name__ == "__main__":
    raise SystemExit(main())
