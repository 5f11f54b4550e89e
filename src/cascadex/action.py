"""Actions and transactions — batched atom writes.

Wrapping writes in an action or `with transaction(...)` defers recomputation
until the outermost scope exits. Dependents then see every write of the batch
at once instead of a half-updated mix.
"""

from __future__ import annotations

import functools
from contextlib import ExitStack, contextmanager
from typing import TYPE_CHECKING, Callable, Iterator, ParamSpec, TypeVar

if TYPE_CHECKING:
    from cascadex.runtime import Runtime

P = ParamSpec("P")
R = TypeVar("R")


def action(runtime: Runtime, fn: Callable[P, R] | None = None):
    """Decorator: batch all writes fn makes to runtime's cells.

    Usage:
        @action(runtime)
        def swap():
            a, b = first.get(), second.get()
            first.set(b)
            second.set(a)
            # dependents see both changes at once
    """
    if fn is None:
        return lambda f: action(runtime, f)

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with runtime.transaction():
            return fn(*args, **kwargs)

    return wrapper


@contextmanager
def transaction(*targets) -> Iterator[None]:
    """Batch writes across one or more runtimes.

    Targets may be runtimes or anything exposing `.runtime` (cells, instances,
    scopes). Each distinct runtime is flushed once, in the order given.

    Usage:
        with transaction(cart, checkout):
            cart.value.add_item("hat")
            checkout.value.set_coupon("SPRING")
    """
    runtimes: list[Runtime] = []
    for target in targets:
        runtime = getattr(target, "runtime", target)
        if not any(runtime is seen for seen in runtimes):
            runtimes.append(runtime)
    with ExitStack() as stack:
        # ExitStack unwinds in reverse, so enter in reverse to flush in order.
        for runtime in reversed(runtimes):
            stack.enter_context(runtime.transaction())
        yield
