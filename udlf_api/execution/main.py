"""Command-line interface for running the UDLF binary on one config."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ..errors import ExecutionFailed, UdlfError
from ..settings import Settings
from ..storage import build_storage
from .driver import ExecutionDriver
from .rewriter import PathRewriter


def exit_status(exit_code) -> int:
    """Shell-style exit status for a child exit code (128 + signal when killed)."""
    if exit_code is None:
        return 1
    if exit_code < 0:
        return 128 - exit_code
    return exit_code or 1


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the UDLF binary on a configuration file"
    )
    parser.add_argument(
        "config",
        type=Path,
        help="Path to the UDLF config file",
    )
    parser.add_argument(
        "--executable",
        type=Path,
        default=None,
        help="UDLF binary (default: EXECUTABLE_PATH env var)",
    )
    parser.add_argument(
        "--outputs-dir",
        type=Path,
        default=None,
        help="Working directory for the binary (default: OUTPUTS_DIR env var)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging (echoes the binary's output lines)",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    settings = Settings.from_env()
    if not args.config.exists():
        logger.error(f"Config file not found: {args.config}")
        sys.exit(1)

    storage = build_storage(settings)
    rewriter = PathRewriter(
        settings.deployment,
        storage=storage,
        mount_prefix=settings.gcs_mount_path,
    )
    driver = ExecutionDriver(
        executable=args.executable or settings.executable_path,
        outputs_dir=args.outputs_dir or settings.outputs_dir,
        rewriter=rewriter,
        kill_grace_seconds=settings.kill_grace_seconds,
    )

    try:
        result = asyncio.run(driver.execute(args.config.resolve()))
    except ExecutionFailed as e:
        sys.stdout.write(e.stdout)
        sys.stderr.write(e.stderr)
        logger.error(e.message)
        sys.exit(exit_status(e.exit_code))
    except UdlfError as e:
        logger.error(e.message)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        sys.exit(130)

    sys.stdout.write(result.stdout)
    sys.stderr.write(result.stderr)


if __name__ == "__main__":
    main()
