"""Command-line interface for AsyncRmTree."""

import argparse
import asyncio
import os
import signal
import sys

from . import __version__
from .cancellation import CancellationToken
from .deleter import async_main
from .engine import DEFAULT_BATCH_SIZE
from .errors import Cancelled
from .logging import LOG_FORMATS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="AsyncRmTree - Concurrent async recursive directory removal",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "path",
        help="Directory tree to remove",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=int(os.getenv("ASYNCRMTREE_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))),
        help="Entries read from a directory per batch",
    )

    parser.add_argument(
        "--max-concurrency-scanning",
        type=int,
        default=int(os.getenv("ASYNCRMTREE_MAX_CONCURRENCY_SCANNING", "64")),
        help="Maximum concurrent directory enumeration operations",
    )

    parser.add_argument(
        "--max-concurrency-deletion",
        type=int,
        default=int(os.getenv("ASYNCRMTREE_MAX_CONCURRENCY_DELETION", "256")),
        help="Maximum concurrent unlink/rmdir operations",
    )

    parser.add_argument(
        "--progress-interval",
        type=float,
        default=float(os.getenv("ASYNCRMTREE_PROGRESS_INTERVAL", "1.0")),
        help="Seconds between progress log records",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=os.getenv("ASYNCRMTREE_DRY_RUN", "").lower() in ("1", "true", "yes"),
        help="Don't actually delete anything, just report what would be deleted",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("ASYNCRMTREE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        default=os.getenv("ASYNCRMTREE_LOG_FORMAT", "json"),
        choices=LOG_FORMATS,
        help="Log output format",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"asyncrmtree {__version__}",
    )

    return parser.parse_args(argv)


async def run_with_signals(args: argparse.Namespace) -> dict:
    """Run the deletion, turning SIGINT/SIGTERM into a cooperative cancellation."""
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops, or not running in the main thread
            pass

    try:
        return await async_main(
            path=args.path,
            batch_size=args.batch_size,
            max_concurrency_scanning=args.max_concurrency_scanning,
            max_concurrency_deletion=args.max_concurrency_deletion,
            dry_run=args.dry_run,
            log_level=args.log_level,
            log_format=args.log_format,
            progress_interval=args.progress_interval,
            token=token,
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        asyncio.run(run_with_signals(args))

        # Exit with success
        sys.exit(0)

    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)
    except (Cancelled, KeyboardInterrupt):
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
