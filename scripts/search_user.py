#!/usr/bin/env python3
"""Search GitHub users as you type.

Each line read from stdin is treated as the current contents of a search
box. Lines are debounced, and every settled query supersedes the one
before it, so only the newest answer is printed.

Usage
-----
::

    printf 'a\\nal\\nali\\nalice\\n' | python scripts/search_user.py
    python scripts/search_user.py --window 0.3 --initial gabriel -v

Options::

    --initial LOGIN   Query issued when the scope starts (default: gabriel)
    --window SECS     Debounce window (default: REQSCOPE_DEBOUNCE_WINDOW or 0.5)
    --base-url URL    API root (default: https://api.github.com)
    --verbose / -v    Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from reqscope import (  # noqa: E402
    AiohttpTransport,
    HttpRequest,
    RequestScope,
    ResourceState,
    ScopeConfig,
    debounce,
)


def search_users(query: str) -> HttpRequest:
    return HttpRequest(url="/search/users", params={"q": query, "per_page": 5})


def _print_state(state: ResourceState[Any]) -> None:
    if state.is_loading:
        return
    if state.error is not None:
        print(f"error: {state.error}")
        return
    if not isinstance(state.data, dict):
        return
    logins = [item.get("login", "?") for item in state.data.get("items", [])]
    print(f"{state.data.get('total_count', len(logins))} matches: {', '.join(logins) or '-'}")


async def _stdin_lines() -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        text = line.strip()
        if text:
            yield text


async def main(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {
        "base_url": args.base_url,
        "headers": {"Accept": "application/vnd.github+json"},
    }
    if args.window is not None:
        overrides["debounce_window"] = args.window
    config = ScopeConfig.from_env(**overrides)

    async with AiohttpTransport(config) as transport, RequestScope(transport, config=config) as scope:
        users, search = scope.use_resource(search_users, (args.initial,))
        users.subscribe(_print_state)

        async for query in debounce(_stdin_lines(), config.debounce_window):
            print(f"> {query}")
            search(query)

        await users.join()
    return 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Debounced GitHub user search")
    parser.add_argument("--initial", default="gabriel", help="Query issued on start")
    parser.add_argument("--window", type=float, default=None, help="Debounce window in seconds")
    parser.add_argument("--base-url", default="https://api.github.com", help="API root")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


if __name__ == "__main__":
    cli_args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if cli_args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    try:
        sys.exit(asyncio.run(main(cli_args)))
    except KeyboardInterrupt:
        sys.exit(130)
