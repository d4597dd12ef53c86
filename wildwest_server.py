#!/usr/bin/env python3
"""
Wild West Frontend Server - entry point

Serves the game page and proxies /ws/* to the linked backend component.
The backend is discovered from COMPONENT_<NAME>_HOST/_PORT variables
(set by `odo link`), or given directly with BACKEND_SERVICE.

Usage:
    # Discover the backend from the environment
    python wildwest_server.py

    # Explicit backend, custom port
    BACKEND_SERVICE=localhost:9000 python wildwest_server.py --port 8000

    # Show the resolved configuration and exit
    python wildwest_server.py --show-config
"""

import argparse
import os
import sys
from pathlib import Path

from wildwest.config import autoconfig, load_env_file
from wildwest.logging import configure_logging, load_env_config
from wildwest.web.server import FrontendServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Wild West Frontend - game page server and backend API proxy',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  COMPONENT_<NAME>_HOST/_PORT  Linked backend components
  BACKEND_COMPONENT_NAME       Which linked component to use
  BACKEND_SERVICE              Backend host:port (overrides discovery)
  BACKEND_PATH                 Proxy mount path (default: /ws)
  URL_PREFIX                   Frontend mount path (default: /)
  PORT, IP                     Listen address
        """
    )

    parser.add_argument(
        '--host',
        default=None,
        help='Interface to bind (default: IP env var or 0.0.0.0)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Port to listen on (default: PORT env var or 8080)'
    )
    parser.add_argument(
        '--env-file',
        type=Path,
        default=None,
        help='Load environment variables from this .env file (default: ./.env if present)'
    )
    parser.add_argument(
        '--frontend-dir',
        type=Path,
        default=None,
        help='Directory with index.html and assets/ (default: WW_FRONTEND_DIR or bundled page)'
    )
    parser.add_argument(
        '--log-level',
        choices=['TRACE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'OFF'],
        default=None,
        help='Log level for all modules (default: WW_LOG_LEVEL or INFO)'
    )
    parser.add_argument(
        '--show-config',
        action='store_true',
        help='Print the resolved configuration as JSON and exit'
    )
    return parser


def main(argv=None) -> int:
    """Main entry point for the frontend server."""
    args = build_parser().parse_args(argv)

    if args.log_level:
        configure_logging(level=args.log_level)

    load_env_file(args.env_file)
    # .env may set WW_LOG_* levels; --log-level still wins
    load_env_config()
    if args.log_level:
        configure_logging(level=args.log_level)

    config = autoconfig()
    frontend_dir = args.frontend_dir or os.environ.get('WW_FRONTEND_DIR')

    if args.show_config:
        print(config.model_dump_json(indent=2))
        return 0

    server = FrontendServer(
        config,
        host=args.host,
        port=args.port,
        frontend_dir=frontend_dir,
    )
    try:
        server.run()
    except KeyboardInterrupt:
        print("\nShutting down server.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
