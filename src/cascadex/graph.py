"""Dependency graph — explicit edges between cells, ranked for propagation.

Edges are declared up front (a computed names its dependencies when it is
created), so the graph is static and can be checked for cycles at
construction time instead of at evaluation time.

Each node carries a rank: 0 for nodes with no dependencies, otherwise one more
than the highest-ranked dependency. Sorting by (rank, insertion order) yields a
deterministic topological order, which is what the scheduler uses to
recompute each dirty cell exactly once per batch.
"""

from __future__ import annotations

import itertools
from collections import deque
from typing import Generic, Hashable, Iterable, TypeVar

from cascadex.errors import CycleError

N = TypeVar("N", bound=Hashable)


class DependencyGraph(Generic[N]):
    """Directed graph where an edge A -> B means B depends on A."""

    def __init__(self) -> None:
        self._dependencies: dict[N, tuple[N, ...]] = {}
        self._dependents: dict[N, set[N]] = {}
        self._rank: dict[N, int] = {}
        self._serial: dict[N, int] = {}
        self._counter = itertools.count()

    def __contains__(self, node: object) -> bool:
        return node in self._dependencies

    def __len__(self) -> int:
        return len(self._dependencies)

    def add(self, node: N, dependencies: Iterable[N] = ()) -> None:
        """Register node with its dependencies.

        Unknown dependencies are registered as roots. Re-adding a node replaces
        its dependencies; raises CycleError if that would make the node reachable
        from itself.
        """
        deps = tuple(dict.fromkeys(dependencies))
        for dep in deps:
            if dep not in self._dependencies:
                self._register(dep, ())
        if node in self._dependencies:
            for dep in deps:
                path = self._path(node, dep)
                if path is not None:
                    raise CycleError(path + [node])
            for old in self._dependencies[node]:
                self._dependents[old].discard(node)
            self._dependencies[node] = deps
            for dep in deps:
                self._dependents[dep].add(node)
            self._rerank(node)
        else:
            self._register(node, deps)

    def remove(self, node: N) -> None:
        """Drop node and its incoming edges. Its dependents lose the edge too."""
        if node not in self._dependencies:
            return
        for dep in self._dependencies.pop(node):
            self._dependents[dep].discard(node)
        for dependent in self._dependents.pop(node):
            self._dependencies[dependent] = tuple(
                d for d in self._dependencies[dependent] if d != node
            )
        del self._rank[node]
        del self._serial[node]

    def dependencies(self, node: N) -> tuple[N, ...]:
        return self._dependencies[node]

    def dependents(self, node: N) -> frozenset[N]:
        return frozenset(self._dependents.get(node, ()))

    def rank(self, node: N) -> int:
        return self._rank[node]

    def descendants(self, nodes: Iterable[N]) -> set[N]:
        """All nodes that transitively depend on any of `nodes` (excluding them)."""
        seen: set[N] = set()
        queue = deque(nodes)
        while queue:
            for dependent in self._dependents.get(queue.popleft(), ()):
                if dependent not in seen:
                    seen.add(dependent)
                    queue.append(dependent)
        return seen

    def order(self, nodes: Iterable[N]) -> list[N]:
        """Sort nodes so every dependency precedes its dependents."""
        return sorted(
            (n for n in nodes if n in self._rank),
            key=lambda n: (self._rank[n], self._serial[n]),
        )

    def topological_order(self) -> list[N]:
        """Full topological order via Kahn's algorithm.

        Ties are broken by insertion order so the result is deterministic.
        Raises CycleError if any node cannot be scheduled.
        """
        indegree = {node: len(deps) for node, deps in self._dependencies.items()}
        ready = sorted((n for n, d in indegree.items() if d == 0), key=self._serial.__getitem__)
        result: list[N] = []
        while ready:
            node = ready.pop(0)
            result.append(node)
            released = []
            for dependent in self._dependents[node]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    released.append(dependent)
            ready.extend(released)
            ready.sort(key=self._serial.__getitem__)
        if len(result) != len(self._dependencies):
            stuck = {n for n, d in indegree.items() if d > 0}
            raise CycleError(self._cycle_through(stuck))
        return result

    def _register(self, node: N, deps: tuple[N, ...]) -> None:
        self._dependencies[node] = deps
        self._dependents.setdefault(node, set())
        self._serial[node] = next(self._counter)
        for dep in deps:
            self._dependents[dep].add(node)
        self._rank[node] = 1 + max((self._rank[d] for d in deps), default=-1)

    def _rerank(self, node: N) -> None:
        queue = deque([node])
        while queue:
            current = queue.popleft()
            rank = 1 + max((self._rank[d] for d in self._dependencies[current]), default=-1)
            if current is node or rank != self._rank[current]:
                self._rank[current] = rank
                queue.extend(self._dependents[current])

    def _path(self, start: N, goal: N) -> list[N] | None:
        """Path start -> ... -> goal following dependent edges, if one exists."""
        if start == goal:
            return [start]
        parents: dict[N, N] = {}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for dependent in self._dependents.get(current, ()):
                if dependent in parents or dependent == start:
                    continue
                parents[dependent] = current
                if dependent == goal:
                    path = [goal]
                    while path[-1] != start:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                queue.append(dependent)
        return None

    def _cycle_through(self, stuck: set[N]) -> list[N]:
        # Walk dependency edges among unscheduled nodes until one repeats.
        seen: list[N] = []
        current = min(stuck, key=self._serial.__getitem__)
        while current not in seen:
            seen.append(current)
            current = next(d for d in self._dependencies[current] if d in stuck)
        cycle = seen[seen.index(current):] + [current]
        return list(reversed(cycle))
