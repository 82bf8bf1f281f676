"""Run the reference endpoint server: ``python -m server --port 8080``."""
from __future__ import annotations

import argparse
import logging

from aiohttp import web
from rich.logging import RichHandler

from .app import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Speed test endpoint server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on (default: 8080)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every request")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )
    web.run_app(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
