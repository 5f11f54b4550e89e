"""Textual integration for cascadex. Opt-in, requires textual.

    bridge = AppBridge(self)                      # inside App.on_mount
    panel = detail_panel(record_id, "Account")
    bridge.bind(panel, lambda state: self.query_one("#dump", Static).update(panel.dump()))

    with bridge.pause():
        await self.query_one("#body").remove_children()

Effects only reach the widget tree while the app is running and the bridge
is not paused. NoMatches from widget queries is expected during screen
switches and is dropped; anything else is left to the reaction, which logs it.
Triggers from background threads are handed to app.call_from_thread.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

from textual.css.query import NoMatches

from cascadex.atom import Cell
from cascadex.reaction import Reaction, reaction

logger = logging.getLogger("cascadex.textual")


class AppBridge:
    """Runs cell effects against one Textual app.

    Pause state lives on the bridge, never on the app object, so several apps
    (and several bridges) stay independent.
    """

    def __init__(self, app: Any) -> None:
        self.app = app
        self._thread = threading.get_ident()
        self._pauses = 0
        self._reactions: list[Reaction] = []

    @contextmanager
    def pause(self) -> Iterator[None]:
        """Suspend effects during widget replacement. Nestable."""
        self._pauses += 1
        try:
            yield
        finally:
            self._pauses -= 1

    @property
    def paused(self) -> bool:
        return self._pauses > 0

    def is_safe(self) -> bool:
        """Is the widget tree in a queryable state?"""
        return bool(self.app.is_running) and not self.paused

    def watch(
        self,
        cells: Iterable[Cell],
        effect: Callable[..., None],
        *,
        fire_immediately: bool = False,
    ) -> Reaction:
        """Call effect with the cells' values whenever they change and the app is safe."""

        def deliver(*values: Any) -> None:
            try:
                effect(*values)
            except NoMatches as exc:
                logger.debug("Skipped effect %s: %s", getattr(effect, "__name__", effect), exc)

        def guarded(*values: Any) -> None:
            if not self.is_safe():
                return
            if threading.get_ident() != self._thread:
                self.app.call_from_thread(deliver, *values)
            else:
                deliver(*values)

        watcher = reaction(cells, guarded, fire_immediately=fire_immediately)
        self._reactions.append(watcher)
        return watcher

    def bind(
        self,
        instance: Cell,
        effect: Callable[[Any], None],
        *,
        fire_immediately: bool = True,
    ) -> Reaction:
        """Push every snapshot of a state-manager instance into the app."""
        return self.watch([instance], effect, fire_immediately=fire_immediately)

    def dispose(self) -> None:
        """Stop every effect started through this bridge (e.g. on unmount)."""
        for watcher in self._reactions:
            watcher.dispose()
        self._reactions.clear()
