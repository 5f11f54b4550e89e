"""Runtime — the scheduler that owns one graph of cells.

Every top-level state-manager instance gets its own Runtime; nested state
managers join their parent's. Nothing here is module-global, so instances never
share cells or pending work.

Propagation works in two phases:

1. A write bumps the atom's revision and marks every transitive dependent
   dirty right away, so a read inside a batch still pulls fresh values.
2. When the outermost batch exits, dirty nodes are refreshed in rank order
   (dependencies first). Each node therefore evaluates at most once per batch
   and only ever sees the post-batch values of all of its inputs.

Thread safety: call set_scheduler() from the owning thread. After that, writes
from other threads are handed to the scheduler instead of running in place.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator

from cascadex import _tracking
from cascadex.errors import ReactiveUsageError
from cascadex.graph import DependencyGraph

if TYPE_CHECKING:
    from cascadex.atom import Atom, Cell
    from cascadex.reaction import Reaction

logger = logging.getLogger("cascadex.runtime")

# Reactions that keep writing to their own inputs never settle.
MAX_FLUSH_ROUNDS = 100

_runtime_names = itertools.count(1)


class Runtime:
    """Per-instance dependency graph, batch state and async bookkeeping."""

    def __init__(self, name: str | None = None, *, scheduler: Callable | None = None) -> None:
        self.name = name or f"runtime-{next(_runtime_names)}"
        self.graph: DependencyGraph = DependencyGraph()
        self._ids = itertools.count(1)
        self._batch_depth = 0
        self._stale: set = set()
        self._evaluating = 0
        self._queued: list[tuple[Atom, Any, asyncio.Future]] | None = None
        self._queued_done: asyncio.Future | None = None
        self._inflight: set[asyncio.Future] = set()
        self._mirrors: dict[Cell, Atom] = {}
        self._bridges: list[Reaction] = []
        self._disposed = False
        self._scheduler: Callable | None = None
        self._scheduler_thread: threading.Thread | None = None
        if scheduler is not None:
            self.set_scheduler(scheduler)

    def __repr__(self) -> str:
        return f"Runtime({self.name!r}, nodes={len(self.graph)})"

    @property
    def disposed(self) -> bool:
        return self._disposed

    def new_id(self) -> int:
        return next(self._ids)

    # ─── Configuration ──────────────────────────────────────────────────────

    def set_scheduler(self, scheduler: Callable[[Callable[[], None]], Any]) -> None:
        """Route writes from other threads through `scheduler`.

        Call from the owning thread, e.g. runtime.set_scheduler(loop.call_soon_threadsafe).
        Writes from the owning thread stay synchronous.
        """
        self._scheduler = scheduler
        self._scheduler_thread = threading.current_thread()

    def marshal(self, fn: Callable[[], None]) -> bool:
        """Hand fn to the scheduler if called off the owning thread."""
        if self._scheduler is not None and threading.current_thread() is not self._scheduler_thread:
            self._scheduler(fn)
            return True
        return False

    @contextmanager
    def active(self) -> Iterator[Runtime]:
        """Creators called inside this block build into this runtime."""
        with _tracking.building(self):
            yield self

    # ─── Graph ──────────────────────────────────────────────────────────────

    def register(self, node, dependencies=()) -> None:
        self.graph.add(node, dependencies)

    def unregister(self, node) -> None:
        self.graph.remove(node)
        self._stale.discard(node)

    def adopt(self, cell: Cell) -> Cell:
        """Return a cell of this runtime that mirrors `cell`.

        Cells of this runtime are returned as-is. A cell owned by another runtime
        is mirrored by a local atom, fed by a reaction in the owning runtime. The
        reaction only holds the mirror weakly, so an abandoned reader stops
        receiving updates once it is collected.
        """
        if cell.runtime is self:
            return cell
        mirror = self._mirrors.get(cell)
        if mirror is not None:
            return mirror

        from cascadex.atom import Atom
        from cascadex.reaction import Reaction

        mirror = Atom(self, cell.get(), name=f"{cell.name}@{self.name}")
        target = weakref.ref(mirror)

        def forward(value):
            local = target()
            if local is None:
                bridge.dispose()
            else:
                local.set(value)

        bridge = Reaction(cell.runtime, [cell], forward, name=f"bridge:{cell.name}->{self.name}")
        self._mirrors[cell] = mirror
        self._bridges.append(bridge)
        logger.debug("%s: mirroring %s from %s", self.name, cell.name, cell.runtime.name)
        return mirror

    # ─── Batching ───────────────────────────────────────────────────────────

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._batch_depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope. The outermost exit flushes dirty nodes."""
        self._batch_depth -= 1
        if self._batch_depth == 0:
            self._flush()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.begin_batch()
        try:
            yield
        finally:
            self.end_batch()

    @contextmanager
    def evaluating(self) -> Iterator[None]:
        self._evaluating += 1
        try:
            yield
        finally:
            self._evaluating -= 1

    def write(self, atom: Atom, value: Any) -> None:
        """Replace an atom's value and invalidate everything downstream."""
        if self._evaluating:
            raise ReactiveUsageError(
                f"cannot write {atom.name} while a computed evaluator is running"
            )
        with self.transaction():
            atom._store(value)
            self.invalidate(atom)

    def invalidate(self, node) -> None:
        """Mark every transitive dependent of node dirty and queue it for the flush."""
        for dependent in self.graph.descendants([node]):
            dependent._mark_dirty()
            self._stale.add(dependent)

    def _flush(self) -> None:
        if self._disposed:
            self._stale.clear()
            return
        # Writes made by reactions during the flush land in the next round.
        self._batch_depth += 1
        try:
            rounds = 0
            while self._stale:
                rounds += 1
                if rounds > MAX_FLUSH_ROUNDS:
                    names = sorted(node.name for node in self._stale)
                    self._stale.clear()
                    raise ReactiveUsageError(
                        f"{self.name}: propagation did not settle after "
                        f"{MAX_FLUSH_ROUNDS} rounds (still dirty: {', '.join(names)})"
                    )
                batch = self.graph.order(self._stale)
                self._stale = set()
                logger.debug("%s: flush round %d, %d node(s)", self.name, rounds, len(batch))
                for node in batch:
                    node._propagate()
        finally:
            self._batch_depth -= 1

    # ─── Asynchronous work ──────────────────────────────────────────────────

    def track(self, task: asyncio.Future) -> None:
        """Remember an in-flight evaluation until it completes."""
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def write_soon(self, atom: Atom, value: Any) -> asyncio.Future:
        """Queue a write on the running loop.

        All writes queued during the same loop iteration are applied as one
        batch. Each caller gets its own future, resolved once that batch has
        flushed; cancelling one caller's future leaves the others alone.
        """
        loop = asyncio.get_running_loop()
        if self._queued is None:
            self._queued = []
            self._queued_done = loop.create_future()
            loop.call_soon(self._apply_queued)
        waiter = loop.create_future()
        self._queued.append((atom, value, waiter))
        return waiter

    def _apply_queued(self) -> None:
        writes, done = self._queued, self._queued_done
        self._queued = self._queued_done = None
        error: Exception | None = None
        try:
            with self.transaction():
                for atom, value, _waiter in writes:
                    self.write(atom, value)
        except Exception as exc:
            error = exc
        for _atom, _value, waiter in writes:
            if waiter.done():
                continue
            if error is None:
                waiter.set_result(None)
            else:
                waiter.set_exception(error)
        done.set_result(None)

    async def settled(self) -> None:
        """Wait until no queued writes or asynchronous evaluations remain.

        Evaluations started by other evaluations completing are waited on too.
        """
        while self._queued_done is not None or self._inflight:
            if self._queued_done is not None:
                await asyncio.shield(self._queued_done)
            if self._inflight:
                await asyncio.wait(set(self._inflight))
            # Let completion callbacks scheduled by the tasks above run.
            await asyncio.sleep(0)

    # ─── Teardown ───────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """Stop reacting: detach bridges, skip further flushes, drop late results."""
        self._disposed = True
        for bridge in self._bridges:
            bridge.dispose()
        self._bridges.clear()
        self._mirrors.clear()
        self._stale.clear()
