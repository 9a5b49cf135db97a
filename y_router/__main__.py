#!/usr/bin/env python3
"""
Main entry point for the y_router package.
This allows the package to be run as: python -m y_router
"""

import argparse

import uvicorn

from .config import config, setup_logging


def main():
    """Main entry point for the package."""
    parser = argparse.ArgumentParser(description="Run the y-router server.")
    parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload on code changes."
    )
    parser.add_argument("--host", default=config.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.port, help="Port to bind to")
    args = parser.parse_args()

    # Setup logging for the main process
    setup_logging()

    # Print initial configuration status
    print(f"✅ Configuration loaded: Upstream={config.openrouter_base_url}")
    print(
        f"⚙️  Limits: MaxBody={config.max_body_size} bytes, "
        f"UpstreamTimeout={config.upstream_timeout}s, "
        f"LogLevel={config.log_level}"
    )

    # Run the Server
    uvicorn.run(
        "y_router.server:app",
        host=args.host,
        port=args.port,
        log_config=None,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
