"""Test doubles for code that composes state managers.

InstanceMock stands in for a nested state manager: its snapshot is whatever
the test last gave it. MockStateManager is a creator that hands out mocks and
records the configuration each one was created with.
"""

from __future__ import annotations

from typing import Any, Mapping

from cascadex import _tracking
from cascadex.atom import Atom
from cascadex.runtime import Runtime
from cascadex.state_manager import StateValue
from cascadex.waterfall import Status

DEFAULT_VALUE: Mapping[str, Any] = {"status": Status.UNCONFIGURED, "data": None, "error": None}


class InstanceMock(Atom):
    """A state-manager instance whose snapshot is set directly."""

    def __init__(self, runtime: Runtime, initial: Mapping[str, Any] | None = None, *, name: str | None = None) -> None:
        super().__init__(runtime, StateValue(DEFAULT_VALUE if initial is None else initial), name=name)

    def set(self, value: Mapping[str, Any]) -> None:
        super().set(StateValue(value))

    async def update_value(self, value: Mapping[str, Any]) -> None:
        """Replace the snapshot on the next loop iteration.

        Updates issued together (e.g. under asyncio.gather) land in one batch.
        """
        await self.runtime.write_soon(self, StateValue(value))


def instance_mock(initial: Mapping[str, Any] | None = None, *, name: str | None = None) -> InstanceMock:
    """Create a mock in the runtime being built, or in a fresh one."""
    runtime = _tracking.current_runtime.get() or Runtime(name=name)
    return InstanceMock(runtime, initial, name=name)


class MockStateManager:
    """Creator double. Each call returns a new InstanceMock."""

    def __init__(self, initial: Mapping[str, Any] | None = None, *, name: str = "mock") -> None:
        self.name = name
        self.initial = initial
        self.calls: list[tuple[tuple, dict]] = []
        self.instances: list[InstanceMock] = []

    def __call__(self, *args: Any, **kwargs: Any) -> InstanceMock:
        self.calls.append((args, kwargs))
        mock = instance_mock(self.initial, name=f"{self.name}#{len(self.instances)}")
        self.instances.append(mock)
        return mock

    @property
    def configurations(self) -> list[Any]:
        """First positional argument of every call."""
        return [args[0] if args else None for args, _ in self.calls]

    def reset(self) -> None:
        self.calls.clear()
        self.instances.clear()
