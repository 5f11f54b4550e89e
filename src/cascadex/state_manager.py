"""State managers — factories that wire atoms and computeds into instances.

    @define_state_manager
    def counter(ctx):
        def create(start=0):
            count = ctx.atom(start)
            doubled = ctx.computed([count], lambda n: n * 2)

            def increment():
                ctx.set_atom(count, count.value + 1)

            return {"count": count, "doubled": doubled, "increment": increment}
        return create

    instance = counter(5)
    instance.value.doubled      # 10
    instance.value.increment()
    instance.value.count        # 6

The factory runs once per instance with a fresh Scope, so two instances
created from the same definition never share cells. A creator called while
another instance is being built joins that instance's runtime; this is how a
composite state manager nests others.
"""

from __future__ import annotations

import functools
import json
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Iterator

from cascadex import _tracking
from cascadex.action import action
from cascadex.atom import Atom, Cell
from cascadex.computed import Computed
from cascadex.errors import OwnershipError, ReactiveUsageError
from cascadex.reaction import Reaction
from cascadex.runtime import Runtime


class StateValue(Mapping[str, Any]):
    """Read-only snapshot of a state-manager instance.

    Fields are reachable both as keys and as attributes.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        self._fields = dict(fields or {}, **kwargs)

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __getattr__(self, name: str) -> Any:
        if name == "_fields" or name.startswith("__"):
            raise AttributeError(name)
        try:
            return self._fields[name]
        except KeyError:
            raise AttributeError(f"state has no field {name!r}") from None

    def to_dict(self, *, actions: bool = False) -> dict[str, Any]:
        """Plain dict of the fields; actions are left out unless asked for."""
        return {k: v for k, v in self._fields.items() if actions or not callable(v)}

    def __repr__(self) -> str:
        return f"StateValue({self._fields!r})"


class Scope:
    """The primitives handed to a state-manager factory.

    Atoms created through a scope are owned by it; set_atom refuses to write
    atoms owned by any other scope.
    """

    def __init__(self, runtime: Runtime, name: str | None = None) -> None:
        self.runtime = runtime
        self.name = name

    def atom(self, initial: Any = None, *, name: str | None = None) -> Atom:
        return Atom(self.runtime, initial, name=name, owner=self)

    def computed(
        self,
        dependencies: Iterable[Cell],
        evaluator: Callable[..., Any],
        *,
        eager: bool = False,
        initial: Any = None,
        name: str | None = None,
    ) -> Computed:
        return Computed(self.runtime, dependencies, evaluator, eager=eager, initial=initial, name=name)

    def set_atom(self, atom: Atom, value: Any) -> None:
        if not isinstance(atom, Atom):
            raise ReactiveUsageError(f"set_atom needs an atom, got {atom!r}")
        if atom.owner is not self:
            raise OwnershipError(f"{atom.name} is not owned by {self.name or 'this scope'}")
        atom.set(value)

    def action(self, fn: Callable) -> Callable:
        return action(self.runtime, fn)

    def reaction(
        self,
        dependencies: Iterable[Cell],
        effect: Callable[..., None],
        *,
        fire_immediately: bool = False,
    ) -> Reaction:
        return Reaction(self.runtime, dependencies, effect, fire_immediately=fire_immediately)

    def transaction(self):
        return self.runtime.transaction()


class StateManagerInstance(Computed[StateValue]):
    """An instance: a cell whose value is the StateValue snapshot.

    Cells in the shape are resolved to their current values, callables become
    batched actions, and anything else is passed through unchanged.
    """

    def __init__(
        self,
        scope: Scope,
        shape: Mapping[str, Any],
        *,
        owns_runtime: bool = False,
        name: str | None = None,
    ) -> None:
        if not isinstance(shape, Mapping):
            raise ReactiveUsageError(f"a state manager must return a mapping, got {shape!r}")
        order = list(shape)
        keys = [key for key in order if isinstance(shape[key], Cell)]
        fixed = {
            key: scope.action(item) if callable(item) else item
            for key, item in shape.items()
            if not isinstance(item, Cell)
        }

        def snapshot(*values: Any) -> StateValue:
            resolved = dict(zip(keys, values))
            return StateValue({key: resolved[key] if key in resolved else fixed[key] for key in order})

        super().__init__(
            scope.runtime,
            [shape[key] for key in keys],
            snapshot,
            eager=True,
            name=name or scope.name,
        )
        self.scope = scope
        self._owns_runtime = owns_runtime
        self._subscriptions: list[Reaction] = []

    def subscribe(self, callback: Callable[[StateValue], None], *, fire_immediately: bool = False) -> Reaction:
        """Call callback with each new snapshot. Dispose the returned reaction to stop."""
        subscription = Reaction(self.runtime, [self], callback, fire_immediately=fire_immediately)
        self._subscriptions.append(subscription)
        return subscription

    def dump(self, *, indent: int = 2) -> str:
        """JSON dump of the non-action fields."""
        return json.dumps(self.value.to_dict(), indent=indent, default=str)

    def dispose(self) -> None:
        """Stop all subscriptions and leave the graph.

        A top-level instance also retires its runtime.
        """
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions.clear()
        super().dispose()
        if self._owns_runtime:
            self.runtime.dispose()

    def __repr__(self) -> str:
        return f"StateManagerInstance({self.name}, {self._value!r})"


class StateManagerDefinition:
    """A reusable creator. Calling it builds one independent instance."""

    def __init__(self, factory: Callable[[Scope], Callable[..., Mapping[str, Any]]], name: str | None = None) -> None:
        if not callable(factory):
            raise ReactiveUsageError(f"factory must be callable, got {factory!r}")
        self.factory = factory
        self.name = name or getattr(factory, "__name__", "state_manager")
        functools.update_wrapper(self, factory)

    def __call__(self, *args: Any, **kwargs: Any) -> StateManagerInstance:
        runtime = _tracking.current_runtime.get()
        owns_runtime = runtime is None
        if owns_runtime:
            runtime = Runtime(name=self.name)
        scope = Scope(runtime, name=self.name)
        with runtime.active():
            build = self.factory(scope)
            if not callable(build):
                raise ReactiveUsageError(
                    f"factory {self.name} must return a builder function, got {build!r}"
                )
            shape = build(*args, **kwargs)
            return StateManagerInstance(scope, shape, owns_runtime=owns_runtime, name=self.name)

    def __repr__(self) -> str:
        return f"StateManagerDefinition({self.name})"


def define_state_manager(factory=None, *, name: str | None = None):
    """Turn factory(scope) -> builder(*args) -> shape into a creator.

    Usable bare (@define_state_manager) or with a name
    (@define_state_manager(name="cart")).
    """
    if factory is None:
        return lambda f: StateManagerDefinition(f, name=name)
    return StateManagerDefinition(factory, name=name)
