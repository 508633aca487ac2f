"""
Concurrent recursive deletion engine.

Each directory gets a DeletionTask. Its children are streamed from an
enumerator in small batches and every child is dispatched immediately: files,
symlinks and special files are deleted directly, subdirectories recurse. The
directory itself is deleted by a one-shot join barrier that fires once the
enumerator is exhausted and no child is still pending. The first failure
anywhere resolves the whole call and halts it: nothing new is dispatched, and
work already in flight is left to finish with its outcome ignored.
"""

import asyncio
import enum
import functools
import logging
from pathlib import Path

from .cancellation import CancellationToken
from .errors import Cancelled
from .fs import DEFAULT_PRIORITY, AsyncFileSystem, Entry, LocalFileSystem
from .logging import log_with_context
from .progress import ProgressCounter

DEFAULT_BATCH_SIZE = 20

logger = logging.getLogger("asyncrmtree.engine")


class TaskState(enum.Enum):
    ENUMERATING = "enumerating"
    AWAITING_CHILDREN = "awaiting_children"
    READY_TO_DELETE = "ready_to_delete"
    DONE = "done"
    FAILED = "failed"


class DeletionScope:
    """
    State shared by every DeletionTask of one top-level delete() call.

    The first failure anywhere halts the scope; from then on no new enumerator,
    batch or delete is dispatched for the call. ``cancel_all()`` cancels every
    asyncio task the call still has running.
    """

    def __init__(self):
        self.reason: str | None = None
        self._deletions: set["DeletionTask"] = set()

    @property
    def halted(self) -> bool:
        return self.reason is not None

    def halt(self, reason: str) -> None:
        if self.reason is None:
            self.reason = reason

    def register(self, task: "DeletionTask") -> None:
        self._deletions.add(task)

    def release(self, task: "DeletionTask") -> None:
        self._deletions.discard(task)

    def cancel_all(self) -> None:
        for deletion in list(self._deletions):
            for pending in list(deletion._tasks):
                pending.cancel()


class DeletionTask:
    """
    Bookkeeping for the removal of one directory.

    ``pending_children`` grows by one for every entry discovered and shrinks by
    one for every child that was deleted successfully. The directory's own delete
    may start only when the count is zero and the enumeration is exhausted;
    ``try_begin_delete()`` returns True for exactly one such moment.
    ``completion`` resolves exactly once, and a failure halts the shared scope.
    """

    def __init__(
        self,
        path: Path,
        token: CancellationToken,
        priority: int = DEFAULT_PRIORITY,
        scope: DeletionScope | None = None,
    ):
        self.path = path
        self.token = token
        self.priority = priority
        self.scope = scope if scope is not None else DeletionScope()
        self.pending_children = 0
        self.enumeration_exhausted = False
        self.state = TaskState.ENUMERATING
        self.completion: asyncio.Future = asyncio.get_running_loop().create_future()
        # Strong references to in-flight asyncio tasks spawned for this directory
        self._tasks: set[asyncio.Task] = set()
        self.scope.register(self)

    @property
    def finished(self) -> bool:
        return self.state in (TaskState.DONE, TaskState.FAILED)

    def track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def add_child(self, task: asyncio.Task) -> None:
        """Register a dispatched child; must run before the child can complete."""
        self.pending_children += 1
        self.track(task)

    def child_succeeded(self) -> None:
        if self.pending_children <= 0:
            raise RuntimeError(f"child completion without a pending child in {self.path}")
        self.pending_children -= 1

    def mark_exhausted(self) -> None:
        self.enumeration_exhausted = True
        if self.state is TaskState.ENUMERATING:
            self.state = TaskState.AWAITING_CHILDREN

    def try_begin_delete(self) -> bool:
        """Fire the join barrier if it is due. True at most once per task."""
        if self.state not in (TaskState.ENUMERATING, TaskState.AWAITING_CHILDREN):
            return False
        if self.pending_children == 0 and self.enumeration_exhausted:
            self.state = TaskState.READY_TO_DELETE
            return True
        return False

    def succeed(self) -> None:
        if self.finished:
            return
        self.state = TaskState.DONE
        self.scope.release(self)
        if not self.completion.done():
            self.completion.set_result(None)

    def fail(self, error: BaseException) -> bool:
        """Resolve with ``error``. Returns False if already resolved (later errors are dropped)."""
        if self.finished:
            return False
        self.state = TaskState.FAILED
        self.scope.halt(f"{type(error).__name__} in {self.path}: {error}")
        # The awaiting frame may have been cancelled, which cancels the future
        if not self.completion.done():
            self.completion.set_exception(error)
        return True

    def __repr__(self) -> str:
        return (
            f"<DeletionTask {self.path} state={self.state.value} "
            f"pending={self.pending_children} exhausted={self.enumeration_exhausted}>"
        )


class TreeDeleteEngine:
    """
    Delete directory trees through an AsyncFileSystem.

    Args:
        fs: Filesystem capability used for every operation
        counter: Progress counter incremented once per deleted entry
        batch_size: Maximum entries fetched from an enumerator at a time
        priority: I/O priority hint passed to every operation
    """

    def __init__(
        self,
        fs: AsyncFileSystem,
        counter: ProgressCounter,
        batch_size: int = DEFAULT_BATCH_SIZE,
        priority: int = DEFAULT_PRIORITY,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.fs = fs
        self.counter = counter
        self.batch_size = batch_size
        self.priority = priority
        # Enumerator closes outlive the tasks that issued them
        self._closing: set[asyncio.Task] = set()

    async def delete(self, path: Path, token: CancellationToken) -> None:
        """
        Delete the directory ``path`` and everything below it.

        Returns once the directory itself is gone. Raises the first error any
        operation in the subtree ran into; after that no further operation is
        dispatched for this call. Cancelling the awaiting task cancels the
        whole subtree.
        """
        await self._delete(Path(path), token, DeletionScope())

    async def delete_leaf(self, path: Path, token: CancellationToken) -> None:
        """Delete a single non-directory entry (file, symlink, special file)."""
        await self.fs.delete_entry(Path(path), token, self.priority)
        self.counter.increment()

    async def _delete(self, path: Path, token: CancellationToken, scope: DeletionScope) -> None:
        task = DeletionTask(path, token, self.priority, scope)
        task.track(asyncio.create_task(self._enumerate(task)))
        try:
            await task.completion
        except asyncio.CancelledError:
            task.fail(Cancelled(f"deletion of {task.path} was cancelled"))
            scope.cancel_all()
            raise

    async def _delete_child_leaf(self, path: Path, task: DeletionTask) -> None:
        self._raise_if_halted(task)
        await self.delete_leaf(path, task.token)

    async def _enumerate(self, task: DeletionTask) -> None:
        enumerator = None
        try:
            self._raise_if_halted(task)
            enumerator = await self.fs.open_child_enumerator(task.path, task.token, task.priority)
            # Stop reading once the task has failed; nothing more is dispatched for it
            while not task.finished:
                self._raise_if_halted(task)
                batch = await self.fs.fetch_next_batch(enumerator, self.batch_size, task.token, task.priority)
                if task.finished:
                    break
                if not batch:
                    task.mark_exhausted()
                    self._close_enumerator(task, enumerator)
                    enumerator = None
                    self._check_join(task)
                    break
                for entry in batch:
                    self._raise_if_halted(task)
                    self._spawn_child(task, entry)
        except asyncio.CancelledError:
            task.fail(Cancelled(f"enumeration of {task.path} was cancelled"))
            raise
        except Exception as e:
            self._fail(task, e)
        finally:
            if enumerator is not None:
                self._close_enumerator(task, enumerator)

    def _spawn_child(self, task: DeletionTask, entry: Entry) -> None:
        child_path = task.path / entry.name
        if entry.type.is_directory:
            coro = self._delete(child_path, task.token, task.scope)
        else:
            coro = self._delete_child_leaf(child_path, task)
        child = asyncio.create_task(coro)
        task.add_child(child)
        child.add_done_callback(functools.partial(self._on_child_done, task))

    def _on_child_done(self, task: DeletionTask, child: asyncio.Task) -> None:
        if child.cancelled():
            self._fail(task, Cancelled(f"deletion below {task.path} was cancelled"))
            return
        error = child.exception()
        if error is not None:
            self._fail(task, error)
            return
        if task.finished:
            return
        task.child_succeeded()
        self._check_join(task)

    def _check_join(self, task: DeletionTask) -> None:
        if task.scope.halted and not task.finished:
            self._fail(task, Cancelled(task.scope.reason))
            return
        if task.try_begin_delete():
            task.track(asyncio.create_task(self._delete_directory(task)))

    @staticmethod
    def _raise_if_halted(task: DeletionTask) -> None:
        if task.scope.halted:
            raise Cancelled(task.scope.reason)

    async def _delete_directory(self, task: DeletionTask) -> None:
        try:
            self._raise_if_halted(task)
            await self.fs.delete_entry(task.path, task.token, task.priority, directory=True)
        except asyncio.CancelledError:
            task.fail(Cancelled(f"deletion of {task.path} was cancelled"))
            raise
        except Exception as e:
            self._fail(task, e)
            return
        self.counter.increment()
        task.succeed()

    def _close_enumerator(self, task: DeletionTask, enumerator) -> None:
        # Fire and forget: a close failure must never replace the deletion outcome
        closing = asyncio.create_task(self.fs.close_enumerator(enumerator))
        self._closing.add(closing)
        closing.add_done_callback(self._closing.discard)
        closing.add_done_callback(functools.partial(self._on_enumerator_closed, task.path))

    @staticmethod
    def _on_enumerator_closed(path: Path, closing: asyncio.Task) -> None:
        if closing.cancelled():
            return
        error = closing.exception()
        if error is not None:
            log_with_context(
                logger,
                "debug",
                "Ignoring enumerator close failure",
                {"directory": str(path), "error": str(error), "error_type": type(error).__name__},
            )

    @staticmethod
    def _fail(task: DeletionTask, error: BaseException) -> None:
        if task.fail(error):
            log_with_context(
                logger,
                "debug",
                "Directory deletion failed",
                {"directory": str(task.path), "error": str(error), "error_type": type(error).__name__},
            )


async def delete_tree(
    path: Path | str,
    token: CancellationToken | None = None,
    *,
    counter: ProgressCounter | None = None,
    fs: AsyncFileSystem | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    priority: int = DEFAULT_PRIORITY,
) -> None:
    """
    Remove ``path`` and everything below it.

    A root that is not a directory (including a symlink to one) is deleted as a
    single entry and never followed.

    Args:
        path: Tree to remove
        token: Cancellation token checked before every operation
        counter: Receives one increment per deleted entry, the root included
        fs: Filesystem capability (defaults to LocalFileSystem)
        batch_size: Entries fetched per enumerator read
        priority: I/O priority hint

    Raises:
        OperationFailed: The first filesystem operation that failed
        Cancelled: The token was set before an operation was dispatched
    """
    path = Path(path)
    if token is None:
        token = CancellationToken()
    if counter is None:
        counter = ProgressCounter()
    if fs is None:
        fs = LocalFileSystem()

    engine = TreeDeleteEngine(fs, counter, batch_size=batch_size, priority=priority)
    entry_type = await fs.query_entry_type(path, token, priority)
    if entry_type.is_directory:
        await engine.delete(path, token)
    else:
        await engine.delete_leaf(path, token)
