"""Schema definitions for the reconciliation engine.

Commands, their results, and the ordered command plans the diff engine
produces.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..transport.base import Privilege

# A record is a plain mapping: scalars, lists, and lists of sub-record dicts.
# An unset field is an absent key.
Record = dict[str, Any]


class ExitSignal(str, Enum):
    """How a command finished."""
    SUCCESS = "success"
    DEVICE_ERROR = "device_error"
    TIMEOUT = "timeout"


class PlanPhase(str, Enum):
    """Plan phases, in execution order."""
    REMOVE = "remove"   # unwanted collection elements
    CREATE = "create"   # resource existence
    UPDATE = "update"   # scalar fields
    ADD = "add"         # new collection elements


PHASE_ORDER = {phase: index for index, phase in enumerate(PlanPhase)}


@dataclass(frozen=True)
class Command:
    """One line of CLI input plus what completes it."""
    text: str
    privilege: Privilege = Privilege.ADMINISTRATOR
    expects_output: bool = False
    confirm_pattern: Optional[str] = None  # regex for a (Y/N) style question
    confirm_response: str = "N"
    timeout: Optional[float] = None

    @classmethod
    def query(cls, text: str, privilege: Privilege = Privilege.ADMINISTRATOR) -> "Command":
        return cls(text=text, privilege=privilege, expects_output=True)

    def __str__(self) -> str:
        return self.text


@dataclass
class CommandResult:
    """Captured device response to one Command."""
    command: Command
    lines: list[str] = field(default_factory=list)
    signal: ExitSignal = ExitSignal.SUCCESS
    error_message: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.signal == ExitSignal.SUCCESS

    @property
    def output(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class PlannedCommand:
    """A command tagged with the plan phase and the field it targets."""
    phase: PlanPhase
    command: Command
    field: Optional[str] = None


@dataclass
class CommandPlan:
    """Ordered commands that move a device from current to desired."""
    grammar: str
    steps: list[PlannedCommand] = field(default_factory=list)

    @property
    def commands(self) -> list[Command]:
        return [step.command for step in self.steps]

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def to_dict(self) -> dict:
        return {
            "grammar": self.grammar,
            "commands": [
                {"phase": step.phase.value, "field": step.field, "command": step.command.text}
                for step in self.steps
            ],
        }
