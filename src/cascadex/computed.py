"""Computed values — cells derived from an explicit list of dependencies.

The evaluator is called with the current values of the dependencies, in the
order they were declared. The list is fixed when the cell is created, which
keeps the graph static: cycles are impossible to build by accident and the
scheduler can rank every cell up front.

Computeds are lazy until first read; after that the scheduler keeps them fresh
during each flush (eager=True evaluates at construction). A computed is only
re-evaluated when the revision of at least one dependency moved since its last
evaluation, so re-reading a settled cell never calls the evaluator again.

An evaluator may return an awaitable. The cell then keeps its previous value,
reports CellStatus.PENDING, and runs the awaitable as a task on the running
event loop. A result is only accepted if no newer evaluation started in the
meantime; stale results are dropped on arrival, whatever order they resolve in.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, TypeVar

from cascadex.atom import Cell
from cascadex.errors import ReactiveUsageError

if TYPE_CHECKING:
    from cascadex.runtime import Runtime

logger = logging.getLogger("cascadex.computed")

T = TypeVar("T")


class CellStatus(str, Enum):
    SETTLED = "settled"
    PENDING = "pending"
    ERROR = "error"


@dataclass(frozen=True)
class CellState(Generic[T]):
    """Snapshot of a computed's evaluation state machine."""

    value: T | None = None
    status: CellStatus = CellStatus.SETTLED
    error: BaseException | None = None

    @property
    def pending(self) -> bool:
        return self.status is CellStatus.PENDING


def _same(old: Any, new: Any) -> bool:
    if old is new:
        return True
    try:
        return bool(old == new)
    except Exception:
        # Values without a usable __eq__ are treated as changed.
        return False


def as_dependencies(dependencies: Iterable) -> tuple[Cell, ...]:
    deps = tuple(dependencies)
    for dep in deps:
        if not isinstance(dep, Cell):
            raise ReactiveUsageError(f"dependencies must be cells, got {dep!r}")
    return deps


class Computed(Cell[T]):
    """A derived value with explicit dependencies and a cached result."""

    __slots__ = (
        "_dependencies",
        "_evaluator",
        "_value",
        "_status",
        "_error",
        "_dirty",
        "_seen",
        "_generation",
        "_eager",
        "_state_view",
    )

    def __init__(
        self,
        runtime: Runtime,
        dependencies: Iterable[Cell],
        evaluator: Callable[..., T],
        *,
        eager: bool = False,
        initial: T | None = None,
        name: str | None = None,
    ) -> None:
        if not callable(evaluator):
            raise ReactiveUsageError(f"evaluator must be callable, got {evaluator!r}")
        deps = tuple(runtime.adopt(dep) for dep in as_dependencies(dependencies))
        fn_name = getattr(evaluator, "__name__", None)
        super().__init__(runtime, name or (fn_name if fn_name != "<lambda>" else None))
        self._dependencies = deps
        self._evaluator = evaluator
        self._value = initial
        self._status = CellStatus.SETTLED
        self._error: BaseException | None = None
        self._dirty = True
        self._seen: tuple[int, ...] | None = None
        self._generation = 0
        self._eager = eager
        self._state_view: Computed[CellState[T]] | None = None
        runtime.register(self, deps)
        if eager:
            self._refresh()

    @property
    def dependencies(self) -> tuple[Cell, ...]:
        return self._dependencies

    @property
    def status(self) -> CellStatus:
        self._refresh()
        return self._status

    @property
    def error(self) -> BaseException | None:
        self._refresh()
        return self._error

    def get(self) -> T:
        """Read the most recently settled value, re-evaluating first if dirty."""
        self._refresh()
        return self._value

    def snapshot(self) -> CellState[T]:
        self._refresh()
        return CellState(self._value, self._status, self._error)

    @property
    def state(self) -> Computed[CellState[T]]:
        """A derived cell tracking this computed's value, status and error."""
        if self._state_view is None:
            self._state_view = Computed(
                self._runtime,
                [self],
                lambda _value: CellState(self._value, self._status, self._error),
                name=f"{self.name}.state",
            )
        return self._state_view

    # ─── Scheduler hooks ────────────────────────────────────────────────────

    def _mark_dirty(self) -> None:
        self._dirty = True

    def _propagate(self) -> None:
        """Called during a flush. Cells nobody has read yet stay lazy."""
        if self._dirty and (self._eager or self._seen is not None):
            self._refresh()

    def _refresh(self) -> None:
        if not self._dirty:
            return
        for dep in self._dependencies:
            dep._refresh()
        seen = tuple(dep.revision for dep in self._dependencies)
        self._dirty = False
        if seen == self._seen:
            return
        self._seen = seen
        self._evaluate([dep.get() for dep in self._dependencies])

    # ─── Evaluation ─────────────────────────────────────────────────────────

    def _evaluate(self, values: list) -> None:
        self._generation += 1
        generation = self._generation
        try:
            with self._runtime.evaluating():
                result = self._evaluator(*values)
        except Exception as exc:
            logger.exception("Evaluator of %s raised", self.name)
            self._publish(self._value, CellStatus.ERROR, exc)
            return
        if inspect.isawaitable(result):
            self._start(result, generation)
        else:
            self._publish(result, CellStatus.SETTLED, None)

    def _start(self, awaitable, generation: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._publish(
                self._value,
                CellStatus.ERROR,
                ReactiveUsageError(f"{self.name} returned an awaitable outside a running event loop"),
            )
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._runtime.track(task)
        task.add_done_callback(functools.partial(self._settle, generation))
        self._publish(self._value, CellStatus.PENDING, None)

    def _settle(self, generation: int, task: asyncio.Future) -> None:
        if task.cancelled():
            exc: BaseException | None = asyncio.CancelledError()
        else:
            exc = task.exception()
        if generation != self._generation or self._runtime.disposed:
            logger.debug("Discarding stale result of %s (generation %d)", self.name, generation)
            return
        with self._runtime.transaction():
            before = self._revision
            if self._dirty:
                # Inputs may have moved while the task ran; if they did,
                # _refresh starts a newer evaluation and this result is stale.
                self._refresh()
            if self._generation != generation:
                logger.debug("Inputs of %s changed while pending, re-evaluating", self.name)
            elif exc is not None:
                logger.error("Asynchronous evaluator of %s failed", self.name, exc_info=exc)
                self._publish(self._value, CellStatus.ERROR, exc)
            else:
                self._publish(task.result(), CellStatus.SETTLED, None)
            if self._revision != before:
                self._runtime.invalidate(self)

    def _publish(self, value: T, status: CellStatus, error: BaseException | None) -> bool:
        old_value, old_status, old_error = self._value, self._status, self._error
        self._value, self._status, self._error = value, status, error
        if _same(old_value, value) and old_status is status and old_error is error:
            return False
        self._revision += 1
        return True

    def dispose(self) -> None:
        """Detach from the graph. In-flight results are dropped."""
        self._generation += 1
        self._runtime.unregister(self)
        if self._state_view is not None:
            self._state_view.dispose()

    def __repr__(self) -> str:
        state = "dirty" if self._dirty else f"{self._status.value}={self._value!r}"
        return f"Computed({self.name}, {state})"
