"""Pytest configuration and shared fixtures."""

import asyncio
import itertools
import random
import sys
import tempfile
from pathlib import Path

import pytest

# Add src directory to Python path to ensure tests use local source code
# instead of installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from asyncrmtree.errors import OperationFailed  # noqa: E402
from asyncrmtree.fs import DEFAULT_PRIORITY, AsyncFileSystem, Entry, EntryType  # noqa: E402

_TYPES = {"file": EntryType.FILE, "symlink": EntryType.SYMLINK, "other": EntryType.OTHER}


class MemoryEnumerator:
    def __init__(self, path: Path, names: list[str]):
        self.path = path
        self.names = names
        self.position = 0


class MemoryFileSystem(AsyncFileSystem):
    """
    In-memory tree driven through the AsyncFileSystem interface.

    Every operation yields to the event loop a random number of times so
    completions interleave differently per seed. Failures can be injected per
    path, and every operation is recorded with a global sequence number.
    """

    def __init__(self, tree: dict, root: str = "/t", seed: int = 0):
        self.root = Path(root)
        self.rng = random.Random(seed)
        self.seq = itertools.count()
        self.types: dict[Path, EntryType] = {}
        self.children: dict[Path, list[str]] = {}
        self._add(self.root, tree)

        self.fail_open: set[Path] = set()
        self.fail_fetch: set[Path] = set()
        self.fail_delete: set[Path] = set()
        self.close_fails = False
        self.on_fetch = None  # callable(path) run before each fetch completes

        self.exhausted: set[Path] = set()
        self.closed: list[Path] = []
        # (dispatch sequence, completion sequence, path)
        self.deleted: list[tuple[int, int, Path]] = []
        self.violations: list[str] = []
        self.dispatched_ops = 0
        # ("open" | "fetch" | "delete", path) in dispatch order; closes are not included
        self.ops: list[tuple[str, Path]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _add(self, path: Path, node) -> None:
        if isinstance(node, dict):
            self.types[path] = EntryType.DIRECTORY
            self.children[path] = list(node)
            for name, child in node.items():
                self._add(path / name, child)
        else:
            self.types[path] = _TYPES[node]

    def exists(self, path) -> bool:
        return Path(path) in self.types

    @property
    def deleted_paths(self) -> list[Path]:
        return [path for _, _, path in self.deleted]

    async def _io(self) -> None:
        self.dispatched_ops += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(self.rng.randint(0, 3)):
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

    async def open_child_enumerator(self, path, token, priority=DEFAULT_PRIORITY):
        token.raise_if_cancelled()
        self.ops.append(("open", path))
        await self._io()
        if path in self.fail_open or self.types.get(path) is not EntryType.DIRECTORY:
            raise OperationFailed("open enumerator", path, OSError(f"cannot enumerate {path}"))
        return MemoryEnumerator(path, list(self.children[path]))

    async def fetch_next_batch(self, enumerator, max_count, token, priority=DEFAULT_PRIORITY):
        token.raise_if_cancelled()
        self.ops.append(("fetch", enumerator.path))
        await self._io()
        if self.on_fetch is not None:
            self.on_fetch(enumerator.path)
        if enumerator.path in self.fail_fetch:
            raise OperationFailed("fetch batch", enumerator.path, OSError("I/O error"))
        names = enumerator.names[enumerator.position : enumerator.position + max_count]
        enumerator.position += len(names)
        if not names:
            self.exhausted.add(enumerator.path)
        return [Entry(name, self.types[enumerator.path / name]) for name in names]

    async def close_enumerator(self, enumerator):
        await self._io()
        self.closed.append(enumerator.path)
        if self.close_fails:
            raise OSError("close failed")

    async def delete_entry(self, path, token, priority=DEFAULT_PRIORITY, *, directory=False):
        token.raise_if_cancelled()
        self.ops.append(("delete", path))
        dispatched = next(self.seq)
        await self._io()
        if path not in self.types:
            raise OperationFailed("delete entry", path, FileNotFoundError(str(path)))
        if path in self.fail_delete:
            raise OperationFailed("delete entry", path, PermissionError(f"Permission denied: {path}"))
        if directory:
            if self.children[path]:
                self.violations.append(f"{path} deleted with children {self.children[path]}")
                raise OperationFailed("delete directory", path, OSError("Directory not empty"))
            if path not in self.exhausted:
                self.violations.append(f"{path} deleted before its enumeration was exhausted")
            del self.children[path]
        elif self.types[path] is EntryType.DIRECTORY:
            raise OperationFailed("delete entry", path, IsADirectoryError(str(path)))
        del self.types[path]
        if path != self.root and path.parent in self.children:
            self.children[path.parent].remove(path.name)
        self.deleted.append((dispatched, next(self.seq), path))

    async def query_entry_type(self, path, token, priority=DEFAULT_PRIORITY):
        token.raise_if_cancelled()
        await self._io()
        if path not in self.types:
            raise OperationFailed("query type", path, FileNotFoundError(str(path)))
        return self.types[path]


@pytest.fixture
def memory_fs():
    """Factory for MemoryFileSystem instances."""
    return MemoryFileSystem


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
