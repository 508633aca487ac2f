"""Async filesystem primitives used by the deletion engine."""

import asyncio
import enum
import itertools
import logging
import os
import stat
import threading
from dataclasses import dataclass
from pathlib import Path

import aiofiles.os

from .cancellation import CancellationToken
from .errors import OperationFailed

DEFAULT_PRIORITY = 0

logger = logging.getLogger("asyncrmtree.fs")


class EntryType(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"  # sockets, FIFOs, device nodes

    @property
    def is_directory(self) -> bool:
        return self is EntryType.DIRECTORY


@dataclass(frozen=True)
class Entry:
    """One child found while enumerating a directory."""

    name: str
    type: EntryType


def entry_type_from_mode(mode: int) -> EntryType:
    """Classify an lstat() mode without following symlinks."""
    if stat.S_ISLNK(mode):
        return EntryType.SYMLINK
    if stat.S_ISDIR(mode):
        return EntryType.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryType.FILE
    return EntryType.OTHER


def entry_type_from_dir_entry(dir_entry: os.DirEntry) -> EntryType:
    """Classify a scandir entry from its cached d_type, never following symlinks."""
    if dir_entry.is_symlink():
        return EntryType.SYMLINK
    if dir_entry.is_dir(follow_symlinks=False):
        return EntryType.DIRECTORY
    if dir_entry.is_file(follow_symlinks=False):
        return EntryType.FILE
    return EntryType.OTHER


class AsyncFileSystem:
    """
    Interface of the filesystem capability the engine drives.

    Every operation takes the cancellation token and an I/O priority hint. An
    operation dispatched with the token already set raises Cancelled without
    touching the filesystem; any other failure raises OperationFailed.
    """

    async def open_child_enumerator(self, path: Path, token: CancellationToken, priority: int = DEFAULT_PRIORITY):
        """Start streaming the direct children of ``path`` (names and types only)."""
        raise NotImplementedError

    async def fetch_next_batch(
        self, enumerator, max_count: int, token: CancellationToken, priority: int = DEFAULT_PRIORITY
    ) -> list[Entry]:
        """Return up to ``max_count`` entries; an empty list means the stream is exhausted."""
        raise NotImplementedError

    async def close_enumerator(self, enumerator) -> None:
        """Release an enumerator. Callers do not wait for or act on the result."""
        raise NotImplementedError

    async def delete_entry(
        self, path: Path, token: CancellationToken, priority: int = DEFAULT_PRIORITY, *, directory: bool = False
    ) -> None:
        """Delete one entry; ``directory=True`` for an (already empty) directory."""
        raise NotImplementedError

    async def query_entry_type(
        self, path: Path, token: CancellationToken, priority: int = DEFAULT_PRIORITY
    ) -> EntryType:
        """Return the type of ``path`` itself, not following a symlink."""
        raise NotImplementedError


class ChildEnumerator:
    """
    Open scandir iterator over one directory.

    ``read()`` and ``close()`` run on executor threads. A lock keeps a close from
    running while a read on the same iterator is still in progress.
    """

    def __init__(self, path: Path, iterator):
        self.path = path
        self._iterator = iterator
        self._lock = threading.Lock()
        self.closed = False

    def read(self, max_count: int) -> list[Entry]:
        """Blocking read of the next batch; empty once the enumerator is closed."""
        with self._lock:
            if self.closed:
                return []
            return [
                Entry(dir_entry.name, entry_type_from_dir_entry(dir_entry))
                for dir_entry in itertools.islice(self._iterator, max_count)
            ]

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self._iterator.close()


class LocalFileSystem(AsyncFileSystem):
    """
    Local disk implementation backed by aiofiles and the default executor.

    Optimized for deep and wide trees with:
    - Separate concurrency limits for enumeration and deletion syscalls
    - Semaphores held for one syscall only, so recursive callers never deadlock
    - Symlinks reported as leaves and never followed

    The priority hint is accepted for interface compatibility; asyncio offers no
    I/O priority, so every operation is scheduled the same way.
    """

    def __init__(self, max_concurrency_scanning: int = 64, max_concurrency_deletion: int = 256):
        if max_concurrency_scanning < 1:
            raise ValueError(f"max_concurrency_scanning must be >= 1, got {max_concurrency_scanning}")
        if max_concurrency_deletion < 1:
            raise ValueError(f"max_concurrency_deletion must be >= 1, got {max_concurrency_deletion}")

        self.max_concurrency_scanning = max_concurrency_scanning
        self.max_concurrency_deletion = max_concurrency_deletion
        self.scanning_semaphore = asyncio.Semaphore(max_concurrency_scanning)
        self.deletion_semaphore = asyncio.Semaphore(max_concurrency_deletion)

    async def open_child_enumerator(self, path, token, priority=DEFAULT_PRIORITY):
        path = Path(path)
        token.raise_if_cancelled()
        async with self.scanning_semaphore:
            try:
                iterator = await aiofiles.os.scandir(path)
            except OSError as e:
                raise OperationFailed("open enumerator", path, e) from e
        return ChildEnumerator(path, iterator)

    async def fetch_next_batch(self, enumerator, max_count, token, priority=DEFAULT_PRIORITY):
        token.raise_if_cancelled()
        loop = asyncio.get_running_loop()
        async with self.scanning_semaphore:
            try:
                return await loop.run_in_executor(None, enumerator.read, max_count)
            except OSError as e:
                raise OperationFailed("fetch batch", enumerator.path, e) from e

    async def close_enumerator(self, enumerator):
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, enumerator.close)

    async def delete_entry(self, path, token, priority=DEFAULT_PRIORITY, *, directory=False):
        path = Path(path)
        token.raise_if_cancelled()
        async with self.deletion_semaphore:
            try:
                if directory:
                    await aiofiles.os.rmdir(path)
                else:
                    await aiofiles.os.remove(path)
            except OSError as e:
                raise OperationFailed("delete directory" if directory else "delete entry", path, e) from e
        logger.debug(f"Deleted: {path}")

    async def query_entry_type(self, path, token, priority=DEFAULT_PRIORITY):
        path = Path(path)
        token.raise_if_cancelled()
        async with self.scanning_semaphore:
            try:
                st = await aiofiles.os.stat(path, follow_symlinks=False)
            except OSError as e:
                raise OperationFailed("query type", path, e) from e
        return entry_type_from_mode(st.st_mode)


class DryRunFileSystem(LocalFileSystem):
    """Enumerate the real tree but only report the deletes that would happen."""

    async def delete_entry(self, path, token, priority=DEFAULT_PRIORITY, *, directory=False):
        token.raise_if_cancelled()
        logger.debug(f"Would delete {'directory' if directory else 'entry'}: {path}")
