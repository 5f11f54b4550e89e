"""Reactions — side effects triggered by cell changes.

Unlike Computed (which is lazy and only evaluates on read), a Reaction runs
its effect during every flush in which one of its dependencies actually
changed. Reactions sit at the bottom of the graph: they have dependencies but
nothing can depend on them.

An effect that raises is logged and skipped; it never aborts the flush, so
sibling reactions and cells keep working.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable

from cascadex.atom import Cell
from cascadex.computed import as_dependencies
from cascadex.errors import ReactiveUsageError

if TYPE_CHECKING:
    from cascadex.runtime import Runtime

logger = logging.getLogger("cascadex.reaction")


class Reaction:
    """Calls effect(*values) whenever the dependencies' values change."""

    __slots__ = ("_runtime", "_id", "name", "_dependencies", "_effect", "_seen", "_dirty", "_disposed")

    def __init__(
        self,
        runtime: Runtime,
        dependencies: Iterable[Cell],
        effect: Callable[..., None],
        *,
        fire_immediately: bool = False,
        name: str | None = None,
    ) -> None:
        if not callable(effect):
            raise ReactiveUsageError(f"effect must be callable, got {effect!r}")
        self._runtime = runtime
        self._id = runtime.new_id()
        self._dependencies = tuple(runtime.adopt(dep) for dep in as_dependencies(dependencies))
        if not self._dependencies:
            raise ReactiveUsageError("a reaction needs at least one dependency")
        fn_name = getattr(effect, "__name__", "<lambda>")
        self.name = name or (fn_name if fn_name != "<lambda>" else f"reaction#{self._id}")
        self._effect = effect
        self._dirty = False
        self._disposed = False
        runtime.register(self, self._dependencies)
        values = [dep.get() for dep in self._dependencies]
        self._seen = self._revisions()
        if fire_immediately:
            self._run(values)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _revisions(self) -> tuple[int, ...]:
        return tuple(dep.revision for dep in self._dependencies)

    def _mark_dirty(self) -> None:
        self._dirty = True

    def _propagate(self) -> None:
        if self._disposed or not self._dirty:
            return
        self._dirty = False
        for dep in self._dependencies:
            dep._refresh()
        seen = self._revisions()
        if seen == self._seen:
            return
        self._seen = seen
        self._run([dep.get() for dep in self._dependencies])

    def _run(self, values: list) -> None:
        try:
            self._effect(*values)
        except Exception:
            logger.exception("Reaction %s raised", self.name)

    def dispose(self) -> None:
        """Stop this reaction. Disconnects from all dependencies."""
        if self._disposed:
            return
        self._disposed = True
        self._runtime.unregister(self)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Reaction({self.name}, {state})"


def reaction(
    dependencies: Iterable[Cell],
    effect: Callable[..., None],
    *,
    fire_immediately: bool = False,
) -> Reaction:
    """Call effect with the dependencies' values whenever one of them changes.

    The reaction joins the runtime of the first dependency; cells from other
    runtimes are mirrored into it.

    Usage:
        first = scope.atom("Alice")
        last = scope.atom("Smith")

        names = []
        r = reaction([first, last], lambda f, l: names.append(f"{f} {l}"))
        first.set("Bob")
        # names == ["Bob Smith"]

        r.dispose()
    """
    deps = as_dependencies(dependencies)
    if not deps:
        raise ReactiveUsageError("a reaction needs at least one dependency")
    return Reaction(deps[0].runtime, deps, effect, fire_immediately=fire_immediately)
