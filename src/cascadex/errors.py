"""Exceptions raised by the reactive engine.

Only construction-time problems are raised. Data errors from state managers
travel through the graph as values, and evaluator faults are captured on the
computed cell that produced them.
"""

from __future__ import annotations


class ReactiveError(Exception):
    """Base class for engine errors."""


class CycleError(ReactiveError, ValueError):
    """A cell would (directly or transitively) depend on itself."""

    def __init__(self, path: list) -> None:
        self.path = list(path)
        chain = " -> ".join(_label(node) for node in self.path)
        super().__init__(f"Dependency cycle detected: {chain}")


class ReactiveUsageError(ReactiveError, TypeError):
    """A primitive was used in a way the engine does not allow."""


class OwnershipError(ReactiveUsageError):
    """An atom was written through a scope that does not own it."""


def _label(node) -> str:
    return getattr(node, "name", None) or str(node)
