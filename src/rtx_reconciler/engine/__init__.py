"""Reconciliation engine.

Reads router configuration through the CLI, parses it with declarative
grammars, diffs it against desired records and applies the resulting plan.
"""
from .coordinator import CoordinatorPool, SessionCoordinator
from .diff import DiffEngine, summarize_plan
from .framer import CommandFramer, reassemble_wrapped_lines
from .grammar import (
    UNSET,
    Collection,
    Derivation,
    Field,
    Grammar,
    LinePattern,
    RecordBoundary,
)
from .reconciler import Reconciler
from .schema import (
    Command,
    CommandPlan,
    CommandResult,
    ExitSignal,
    PlanPhase,
    PlannedCommand,
    Record,
)

__all__ = [
    "CoordinatorPool",
    "SessionCoordinator",
    "DiffEngine",
    "summarize_plan",
    "CommandFramer",
    "reassemble_wrapped_lines",
    "UNSET",
    "Collection",
    "Derivation",
    "Field",
    "Grammar",
    "LinePattern",
    "RecordBoundary",
    "Reconciler",
    "Command",
    "CommandPlan",
    "CommandResult",
    "ExitSignal",
    "PlanPhase",
    "PlannedCommand",
    "Record",
]
