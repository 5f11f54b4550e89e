"""Resources — leaf state managers around an asynchronous fetch.

    async def fetch_record(config):
        return await api.get(f"/records/{config['record_id']}")

    record = define_resource(fetch_record)
    instance = record(scope.computed([ids], lambda i: {"record_id": i} if i else None))

A resource honours the contract composite state managers rely on: NOT_READY
keeps it `unconfigured` without calling fetch; a configuration change or the
`refresh` action moves it to `loading`; the fetch outcome moves it to
`loaded` (with `data`) or `error` (with `error`). Data from a superseded
configuration is never exposed.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from cascadex.atom import Cell
from cascadex.computed import CellState, CellStatus
from cascadex.configuration import NOT_READY, Configuration
from cascadex.state_manager import StateManagerDefinition, define_state_manager
from cascadex.waterfall import Status


def _status(configuration: Configuration, state: CellState) -> Status:
    if not configuration.ready:
        return Status.UNCONFIGURED
    if state.status is CellStatus.PENDING:
        return Status.LOADING
    if state.status is CellStatus.ERROR:
        return Status.ERROR
    return Status.LOADED


def define_resource(
    fetch: Callable[[dict[str, Any]], Awaitable[Any] | Any],
    *,
    name: str | None = None,
) -> StateManagerDefinition:
    """Creator for leaf state managers that call fetch(fields) when configured."""

    def resource(ctx):
        def create(configuration: Cell | Mapping[str, Any] | None = NOT_READY):
            if isinstance(configuration, Cell):
                source = configuration
            else:
                source = ctx.atom(Configuration.coerce(configuration), name="configuration")
            config = ctx.computed([source], Configuration.coerce, name="configuration.checked")
            reloads = ctx.atom(0, name="reloads")

            def load(configuration: Configuration, _reloads: int):
                if not configuration.ready:
                    return None
                return fetch(configuration.fields)

            request = ctx.computed([config, reloads], load, name="request")
            status = ctx.computed([config, request.state], _status, name="status")
            data = ctx.computed(
                [status, request.state],
                lambda status, state: state.value if status is Status.LOADED else None,
                name="data",
            )
            error = ctx.computed(
                [status, request.state],
                lambda status, state: state.error if status is Status.ERROR else None,
                name="error",
            )

            def refresh():
                ctx.set_atom(reloads, reloads.value + 1)

            return {"data": data, "error": error, "status": status, "refresh": refresh}

        return create

    return define_state_manager(resource, name=name or getattr(fetch, "__name__", "resource"))
