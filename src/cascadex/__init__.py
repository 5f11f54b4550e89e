"""cascadex: dependency-tracked reactive cells and composable state managers."""

from importlib.metadata import version as _version

__version__ = _version("cascadex")

from cascadex.errors import CycleError, OwnershipError, ReactiveError, ReactiveUsageError
from cascadex.graph import DependencyGraph
from cascadex.runtime import Runtime
from cascadex.atom import Atom, Cell
from cascadex.computed import CellState, CellStatus, Computed
from cascadex.reaction import Reaction, reaction
from cascadex.action import action, transaction
from cascadex.configuration import NOT_READY, Configuration, NotReady, Ready
from cascadex.state_manager import (
    Scope,
    StateManagerDefinition,
    StateManagerInstance,
    StateValue,
    define_state_manager,
)
from cascadex.waterfall import Status, aggregate, aggregate_error, aggregate_status, stage_configuration
from cascadex.resource import define_resource
# cascadex.textual is opt-in and never imported here

__all__ = [
    "Atom",
    "Cell",
    "CellState",
    "CellStatus",
    "Computed",
    "Configuration",
    "CycleError",
    "DependencyGraph",
    "NOT_READY",
    "NotReady",
    "OwnershipError",
    "Reaction",
    "ReactiveError",
    "ReactiveUsageError",
    "Ready",
    "Runtime",
    "Scope",
    "StateManagerDefinition",
    "StateManagerInstance",
    "StateValue",
    "Status",
    "action",
    "aggregate",
    "aggregate_error",
    "aggregate_status",
    "define_resource",
    "define_state_manager",
    "reaction",
    "stage_configuration",
    "transaction",
]
