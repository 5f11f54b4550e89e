"""Atoms — reactive cells whose value is written directly.

Cell is the readable surface shared by atoms, computeds and state-manager
instances: a current value, a revision counter bumped on every observable
change, and membership in exactly one Runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from cascadex.runtime import Runtime

T = TypeVar("T")


class Cell(Generic[T]):
    """Base class for everything that can be a dependency."""

    __slots__ = ("_runtime", "_id", "_revision", "name", "__weakref__")

    def __init__(self, runtime: Runtime, name: str | None = None) -> None:
        self._runtime = runtime
        self._id = runtime.new_id()
        self._revision = 0
        self.name = name or f"{type(self).__name__.lower()}#{self._id}"

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def revision(self) -> int:
        return self._revision

    def get(self) -> T:
        raise NotImplementedError

    @property
    def value(self) -> T:
        return self.get()

    def _refresh(self) -> None:
        """Bring the cell up to date with its dependencies. Atoms always are."""


class Atom(Cell[T]):
    """A directly-writable cell.

    Every set() counts as a change, even when the new value equals the old one:
    the revision is bumped and all dependents are invalidated.
    """

    __slots__ = ("_value", "owner")

    def __init__(
        self,
        runtime: Runtime,
        value: T = None,
        *,
        name: str | None = None,
        owner: Any = None,
    ) -> None:
        super().__init__(runtime, name)
        self._value = value
        self.owner = owner
        runtime.register(self)

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value. Marshals to the runtime's scheduler from other threads."""
        if self._runtime.marshal(lambda v=value: self._runtime.write(self, v)):
            return
        self._runtime.write(self, value)

    def _store(self, value: T) -> None:
        self._value = value
        self._revision += 1

    def __repr__(self) -> str:
        return f"Atom({self.name}, {self._value!r})"
