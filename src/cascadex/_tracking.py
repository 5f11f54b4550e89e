"""Build tracking — which runtime a state manager is currently being wired into.

A creator invoked while another state manager's factory is running joins that
factory's runtime, so nested state managers share one scheduler with their
parent. Outside of any build, creators allocate a fresh runtime.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from cascadex.runtime import Runtime

current_runtime: contextvars.ContextVar[Runtime | None] = contextvars.ContextVar(
    "current_runtime", default=None
)


@contextmanager
def building(runtime: Runtime) -> Iterator[Runtime]:
    """Make `runtime` the target for creators called inside this block."""
    token = current_runtime.set(runtime)
    try:
        yield runtime
    finally:
        current_runtime.reset(token)
