#!/usr/bin/env python3
"""
Siteadmin - Entry Point
=======================
One-command startup for the Siteadmin admin backend.

Usage:
    python app.py              # Start with default settings
    python app.py --port 9000  # Start on custom port

This script:
    1. Loads configuration from config.yaml
    2. Loads secrets from .env (ADMIN_PASSWORD, JWT_SECRET)
    3. Creates the FastAPI web application
    4. Starts the uvicorn server

The server refuses to start when ADMIN_PASSWORD or JWT_SECRET is missing.
"""

import os
import sys
import argparse
import logging
import uvicorn


def main():
    """Parse arguments, load config, and start the web server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        description="Siteadmin - Website admin backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port number for the API (overrides config.yaml)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides config.yaml)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    project_dir = os.path.dirname(os.path.abspath(__file__))

    # -- Load configuration to get web server settings -------------------------
    from server import __version__
    from server.auth import AuthManager
    from server.config import ConfigManager, ConfigError

    config_manager = ConfigManager(project_dir)
    try:
        config = config_manager.load()
        secrets = config_manager.require_secrets()
        AuthManager(secrets["ADMIN_PASSWORD"], secrets["JWT_SECRET"])
    except (ConfigError, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)

    # Command-line args override config file
    host = args.host or config["web"]["host"]
    port = args.port or config["web"]["port"]

    print()
    print(f"  SITEADMIN v{__version__}")
    print(f"  API       : http://{host}:{port}")
    print(f"  WebSocket : ws://{host}:{port}/ws")
    print()

    # -- Start the web server --------------------------------------------------
    uvicorn.run(
        "server.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
