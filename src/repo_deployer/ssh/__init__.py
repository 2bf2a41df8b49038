"""SSH utilities for repo-deployer."""

from .credentials import SSHCredentials
from .session import SSHCommandResult, SSHConnectionError, SSHSession
from .probe import DEBIAN, REDHAT, RemoteHostFacts, RemoteProbe
from .script import CommandOutcome, RemoteCommand, RemoteScript, ScriptResult

__all__ = [
    "SSHCredentials",
    "SSHCommandResult",
    "SSHConnectionError",
    "SSHSession",
    "DEBIAN",
    "REDHAT",
    "RemoteHostFacts",
    "RemoteProbe",
    "CommandOutcome",
    "RemoteCommand",
    "RemoteScript",
    "ScriptResult",
]
