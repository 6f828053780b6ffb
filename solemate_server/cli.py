"""CLI entry point for SoleMate MCP server."""

import argparse
import asyncio
import logging
import sys

from .config import Settings


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="SoleMate MCP Server - session and cart client for the SoleMate storefront"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http", "api"],
        default="stdio",
        help="stdio (MCP protocol), http (local REST API) or api (reference storefront API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (http/api modes only, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: 8000 for http, 3001 for api)",
    )

    args = parser.parse_args()
    settings = Settings.from_env()

    # MCP speaks over stdout, so logs go to stderr
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        stream=sys.stderr,
    )

    try:
        if args.mode == "http":
            from .http_server import run_http_server

            port = args.port or 8000
            print(f"Starting SoleMate HTTP Server on {args.host}:{port}", file=sys.stderr)
            print(f"API documentation available at http://{args.host}:{port}/docs", file=sys.stderr)
            run_http_server(host=args.host, port=port)
        elif args.mode == "api":
            from .storefront_api import run_storefront_api

            run_storefront_api(host=args.host, port=args.port or 3001, environment=settings.environment)
        else:
            from .server import main as server_main

            asyncio.run(server_main())
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
