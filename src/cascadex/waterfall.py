"""Waterfall composition — chaining state managers stage by stage.

Stage N is configured by a computed over stage N-1's value that returns
NOT_READY until every field it needs is present, which keeps stage N
`unconfigured`. The composite reports a single status and error derived from
all stages with a fixed precedence:

1. first stage unconfigured  -> unconfigured
2. any stage in error        -> error
3. every stage loaded        -> loaded
4. anything else             -> loading

The composite error is the first non-empty stage error, left to right.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Sequence

from cascadex.configuration import Configuration
from cascadex.errors import ReactiveUsageError

if TYPE_CHECKING:
    from cascadex.atom import Cell
    from cascadex.computed import Computed
    from cascadex.state_manager import Scope

logger = logging.getLogger("cascadex.waterfall")


class Status(str, Enum):
    UNCONFIGURED = "unconfigured"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


def aggregate_status(statuses: Iterable[Any]) -> Status:
    statuses = list(statuses)
    if not statuses:
        raise ReactiveUsageError("aggregate_status needs at least one stage")
    if statuses[0] == Status.UNCONFIGURED:
        return Status.UNCONFIGURED
    if any(status == Status.ERROR for status in statuses):
        return Status.ERROR
    if all(status == Status.LOADED for status in statuses):
        return Status.LOADED
    return Status.LOADING


def aggregate_error(errors: Iterable[Any]) -> Any:
    return next((error for error in errors if error), None)


def _field(stage_value: Any, name: str) -> Any:
    if isinstance(stage_value, Mapping):
        return stage_value.get(name)
    return getattr(stage_value, name, None)


def aggregate(scope: Scope, stages: Sequence[Cell]) -> tuple[Computed, Computed]:
    """Build the composite (status, error) computeds over the given stages."""
    if not stages:
        raise ReactiveUsageError("aggregate needs at least one stage")

    def status(*values: Any) -> Status:
        for index, value in enumerate(values):
            if _field(value, "status") == Status.UNCONFIGURED and _field(value, "error"):
                logger.debug("Stage %d reports an error while unconfigured", index)
        return aggregate_status(_field(value, "status") for value in values)

    def error(*values: Any) -> Any:
        return aggregate_error(_field(value, "error") for value in values)

    return (
        scope.computed(stages, status, name="status"),
        scope.computed(stages, error, name="error"),
    )


def stage_configuration(
    scope: Scope,
    upstream: Sequence[Cell],
    build: Callable[..., Mapping[str, Any] | None],
    *,
    name: str | None = None,
) -> Computed:
    """Computed configuration for the next stage.

    build receives the upstream values and returns the configuration fields,
    or None / {} when a required input is missing.
    """
    def configure(*values: Any) -> Configuration:
        return Configuration.coerce(build(*values))

    return scope.computed(upstream, configure, name=name or getattr(build, "__name__", None))
