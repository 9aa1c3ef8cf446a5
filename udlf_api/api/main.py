"""Launcher for the UDLF HTTP API."""

import argparse
import logging
import os

import uvicorn

from ..settings import Settings
from .app import create_app

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, level: str = "info"):
    """Configure logging."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="UDLF API server")
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: 127.0.0.1 or HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: 8080 or PORT env var)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    settings = Settings.from_env(dotenv_path=args.env_file)
    setup_logging(args.verbose, settings.log_level)

    host = args.host or settings.host
    port = args.port or settings.port

    logger.info(f"Starting UDLF API on {host}:{port}")
    logger.info(f"Deployment: {settings.deployment.value} (API_MODE={settings.api_mode or 'unset'})")
    logger.info(f"Executable: {settings.executable_path}")
    if not os.path.exists(settings.executable_path):
        logger.warning(f"Executable not found at {settings.executable_path}, executions will fail")

    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level="debug" if args.verbose else settings.log_level)


if __name__ == "__main__":
    main()
