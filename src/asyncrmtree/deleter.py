"""Configured tree deletion runs with structured logging and progress reports."""

import asyncio
import logging
import os
import time
from pathlib import Path

import psutil

from . import __version__
from .cancellation import CancellationToken
from .engine import DEFAULT_BATCH_SIZE, delete_tree
from .errors import Cancelled, RmTreeError
from .fs import DryRunFileSystem, LocalFileSystem
from .logging import log_with_context, setup_logging
from .progress import ProgressCounter, RateTracker

# Directories that must never be removed as a whole or from within
PROTECTED_PATHS = frozenset(
    {
        "/proc",
        "/sys",
        "/dev",
        "/run",
        "/var/run",
        "/boot",
        "/bin",
        "/sbin",
        "/lib",
        "/lib64",
        "/usr/bin",
        "/usr/sbin",
        "/usr/lib",
        "/etc",
    }
)


def get_memory_usage_mb() -> float:
    """Get current memory usage in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


def check_root_path(root_path: Path) -> Path:
    """
    Make ``root_path`` absolute and refuse paths that must never be deleted.

    The path is not resolved through symlinks: a symlink root is removed as a
    link, not as the directory it points at.

    Raises:
        ValueError: If the path is the filesystem root or a system directory
    """
    # abspath + normpath collapse "." and ".." lexically without touching symlinks
    root_path = Path(os.path.normpath(os.path.abspath(root_path)))

    if root_path == Path(root_path.anchor):
        raise ValueError(f"Refusing to delete filesystem root: {root_path}")

    root_str = str(root_path)
    for protected in PROTECTED_PATHS:
        if root_str == protected or root_str.startswith(protected + "/"):
            raise ValueError(
                f"Refusing to delete system directory: {root_path}. "
                f"This path is inside '{protected}' which contains critical system files."
            )
    return root_path


class AsyncTreeDeleter:
    """
    Remove one directory tree with progress reporting.

    Wraps delete_tree() with:
    - Parameter validation and protected-path checks
    - A background reporter logging the deleted-entry count and rates
    - Final statistics, or a logged failure that is re-raised
    """

    def __init__(
        self,
        root_path: str | Path,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency_scanning: int = 64,
        max_concurrency_deletion: int = 256,
        dry_run: bool = False,
        log_level: str = "INFO",
        log_format: str = "json",
        progress_interval: float = 1.0,
        token: CancellationToken | None = None,
    ):
        """
        Initialize the tree deleter.

        Args:
            root_path: Directory tree to remove
            batch_size: Entries fetched per directory read
            max_concurrency_scanning: Maximum concurrent enumeration syscalls
            max_concurrency_deletion: Maximum concurrent unlink/rmdir syscalls
            dry_run: If True, enumerate the tree and only report what would be deleted
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_format: "json" or "text"
            progress_interval: Seconds between progress log records
            token: Cancellation token (a fresh one is created if omitted)

        Raises:
            ValueError: If invalid parameters are provided
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if progress_interval <= 0:
            raise ValueError(f"progress_interval must be > 0, got {progress_interval}")

        self.root_path = check_root_path(Path(root_path))
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.progress_interval = progress_interval
        self.token = token if token is not None else CancellationToken()

        fs_class = DryRunFileSystem if dry_run else LocalFileSystem
        self.fs = fs_class(
            max_concurrency_scanning=max_concurrency_scanning,
            max_concurrency_deletion=max_concurrency_deletion,
        )

        self.counter = ProgressCounter()
        self.rate_tracker = RateTracker()
        self.logger = setup_logging("asyncrmtree", log_level, log_format)

        self.start_time: float | None = None
        self.peak_memory_mb = 0.0

    def _progress_data(self) -> dict:
        now = time.time()
        deleted = self.counter.value
        self.rate_tracker.record(deleted, now)

        elapsed = now - self.start_time if self.start_time is not None else 0.0
        overall_rate = self.rate_tracker.get_overall_rate(deleted, now)
        self.rate_tracker.update_peak_rate(overall_rate)

        memory_mb = get_memory_usage_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

        data = {
            "elapsed_seconds": round(elapsed, 1),
            "entries_deleted": deleted,
            "entries_per_second": round(overall_rate, 1),
            "memory_mb": round(memory_mb, 1),
        }
        if self.logger.isEnabledFor(logging.DEBUG):
            data["entries_per_second_instant"] = round(self.rate_tracker.get_rate(10.0, now), 1)
            data["entries_per_second_short"] = round(self.rate_tracker.get_rate(60.0, now), 1)
            data["peak_entries_per_second"] = round(self.rate_tracker.peak_rate["value"], 1)
        return data

    async def _background_progress_reporter(self) -> None:
        """Log progress every progress_interval seconds until cancelled."""
        while True:
            await asyncio.sleep(self.progress_interval)
            log_with_context(self.logger, "info", "Progress update", self._progress_data())

    async def run(self) -> dict:
        """
        Delete the tree.

        Returns:
            Dictionary with operation statistics

        Raises:
            OperationFailed: The first filesystem operation that failed
            Cancelled: The token was set during the run
        """
        mode = "DRY RUN" if self.dry_run else "DELETE"
        log_with_context(
            self.logger,
            "info",
            f"Starting tree deletion - {mode} MODE",
            {
                "version": __version__,
                "root_path": str(self.root_path),
                "batch_size": self.batch_size,
                "max_concurrency_scanning": self.fs.max_concurrency_scanning,
                "max_concurrency_deletion": self.fs.max_concurrency_deletion,
                "dry_run": self.dry_run,
                "progress_interval_seconds": self.progress_interval,
            },
        )

        self.rate_tracker = RateTracker()
        self.start_time = self.rate_tracker.start_time
        progress_task = asyncio.create_task(self._background_progress_reporter())

        try:
            await delete_tree(
                self.root_path,
                self.token,
                counter=self.counter,
                fs=self.fs,
                batch_size=self.batch_size,
            )
        except RmTreeError as e:
            failure = {
                "root_path": str(self.root_path),
                "entries_deleted": self.counter.value,
                "duration_seconds": round(time.time() - self.start_time, 2),
                "error": str(e),
                "error_type": type(e).__name__,
            }
            if isinstance(e, Cancelled):
                log_with_context(self.logger, "warning", "Tree deletion cancelled", failure)
            else:
                log_with_context(self.logger, "error", "Tree deletion failed", failure)
            raise
        finally:
            progress_task.cancel()
            try:
                await progress_task
            except asyncio.CancelledError:
                pass  # Expected

        duration = time.time() - self.start_time
        deleted = self.counter.value
        self.peak_memory_mb = max(self.peak_memory_mb, get_memory_usage_mb())

        final_stats = {
            "duration_seconds": round(duration, 2),
            "entries_deleted": deleted,
            "entries_per_second": round(deleted / duration, 2) if duration > 0 else 0.0,
            "peak_memory_mb": round(self.peak_memory_mb, 1),
            "dry_run": self.dry_run,
        }
        if self.logger.isEnabledFor(logging.DEBUG):
            final_stats["peak_entries_per_second"] = round(self.rate_tracker.peak_rate["value"], 1)

        log_with_context(self.logger, "info", "Tree deletion completed", final_stats)
        return final_stats


async def async_main(
    path: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrency_scanning: int = 64,
    max_concurrency_deletion: int = 256,
    dry_run: bool = False,
    log_level: str = "INFO",
    log_format: str = "json",
    progress_interval: float = 1.0,
    token: CancellationToken | None = None,
) -> dict:
    """
    Async entry point for the tree deleter.

    Args:
        path: Tree to remove
        batch_size: Entries fetched per directory read
        max_concurrency_scanning: Maximum concurrent enumeration syscalls
        max_concurrency_deletion: Maximum concurrent unlink/rmdir syscalls
        dry_run: If True, don't actually delete anything
        log_level: Logging level
        log_format: "json" or "text"
        progress_interval: Seconds between progress log records
        token: Cancellation token

    Returns:
        Operation statistics
    """
    deleter = AsyncTreeDeleter(
        root_path=path,
        batch_size=batch_size,
        max_concurrency_scanning=max_concurrency_scanning,
        max_concurrency_deletion=max_concurrency_deletion,
        dry_run=dry_run,
        log_level=log_level,
        log_format=log_format,
        progress_interval=progress_interval,
        token=token,
    )

    return await deleter.run()
