"""Command line entrypoint.

Examples:
  spotify-token serve --port 3000
  spotify-token fetch
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .browser import BrowserAutomationClient
from .config import HOST, PORT
from .errors import TokenFetchError

logger = logging.getLogger(__name__)


async def _fetch_once(client: BrowserAutomationClient) -> dict:
    try:
        credential = await client.fetch()
    finally:
        await client.close()
    return credential.to_payload()


def cmd_fetch(client: BrowserAutomationClient | None = None) -> int:
    try:
        payload = asyncio.run(_fetch_once(client or BrowserAutomationClient()))
    except TokenFetchError as exc:
        print(f"{exc.kind.value}: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spotify-token",
        description="Anonymous Spotify web-player token service.",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP token server (default).")
    serve.add_argument("--host", default=HOST, help=f"Bind address (default: {HOST}).")
    serve.add_argument("--port", type=int, default=PORT, help=f"Port (default: {PORT}).")

    sub.add_parser("fetch", help="Capture one token with the browser and print it as JSON.")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "fetch":
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
        raise SystemExit(cmd_fetch())

    from .app import main as serve_main

    if args.command == "serve":
        serve_main(host=args.host, port=args.port)
    else:
        serve_main()
