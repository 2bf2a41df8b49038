"""Declarative remote scripts.

A stage describes what it wants done on the host as an ordered list of
commands, each classified as fatal or advisory. The session executes the
script as one unit and reports every command's outcome, so advisory
failures stay visible in the run log without halting the stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional

if TYPE_CHECKING:
    from .session import SSHCommandResult


@dataclass(frozen=True)
class RemoteCommand:
    command: str
    description: str
    fatal: bool = True


@dataclass
class RemoteScript:
    name: str
    commands: List[RemoteCommand] = field(default_factory=list)

    def fatal(self, command: str, description: str) -> "RemoteScript":
        self.commands.append(RemoteCommand(command, description, fatal=True))
        return self

    def advisory(self, command: str, description: str) -> "RemoteScript":
        self.commands.append(RemoteCommand(command, description, fatal=False))
        return self

    def __iter__(self) -> Iterator[RemoteCommand]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)


@dataclass
class CommandOutcome:
    step: RemoteCommand
    result: "SSHCommandResult"

    @property
    def ok(self) -> bool:
        return self.result.ok


@dataclass
class ScriptResult:
    script: RemoteScript
    outcomes: List[CommandOutcome] = field(default_factory=list)

    @property
    def failed_fatal(self) -> Optional[CommandOutcome]:
        for outcome in self.outcomes:
            if outcome.step.fatal and not outcome.ok:
                return outcome
        return None

    @property
    def ok(self) -> bool:
        return self.failed_fatal is None

    @property
    def advisory_failures(self) -> List[CommandOutcome]:
        return [o for o in self.outcomes if not o.step.fatal and not o.ok]

    @property
    def completed(self) -> bool:
        return len(self.outcomes) == len(self.script)
