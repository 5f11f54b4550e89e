"""Configuration — what a nested state manager is asked to load.

A configuration is either Ready(fields) or NOT_READY. NOT_READY tells the
receiving state manager to wait: it reports `unconfigured` and issues no
request. Both variants are read-only mappings, so NOT_READY compares equal to
`{}` and Ready(fields) compares equal to a plain dict of the same fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterator

from cascadex.errors import ReactiveUsageError


class Configuration(Mapping[str, Any]):
    """Base of the two configuration variants."""

    __slots__ = ()

    ready: bool = False

    @staticmethod
    def coerce(value: Any) -> Configuration:
        """Turn None, {} or a mapping into a Configuration."""
        if isinstance(value, Configuration):
            return value
        if value is None:
            return NOT_READY
        if isinstance(value, Mapping):
            return Ready(value) if value else NOT_READY
        raise ReactiveUsageError(f"configuration must be a mapping, got {value!r}")


class Ready(Configuration):
    """Configuration with every required field present."""

    __slots__ = ("_fields",)

    ready = True

    def __init__(self, fields: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        merged = dict(fields or {}, **kwargs)
        if not merged:
            raise ReactiveUsageError("Ready() needs at least one field; use NOT_READY instead")
        self._fields = merged

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Ready({self._fields!r})"


class NotReady(Configuration):
    """The "inputs not ready yet" sentinel. Use the NOT_READY singleton."""

    __slots__ = ()

    _instance: NotReady | None = None

    def __new__(cls) -> NotReady:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __getitem__(self, key: str) -> Any:
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(())

    def __len__(self) -> int:
        return 0

    def __repr__(self) -> str:
        return "NOT_READY"

    def __reduce__(self):
        return (NotReady, ())


NOT_READY = NotReady()
