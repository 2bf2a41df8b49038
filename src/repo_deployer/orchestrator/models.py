"""Data models for the pipeline orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..gitops import GitCloneResult
    from ..interaction import UserInteractionHandler
    from ..local import LocalHostFacts
    from ..models import BuildDescriptor, DeploymentRequest
    from ..ssh import RemoteHostFacts, SSHCredentials, SSHSession
    from ..utils.logging import RunLog
    from ..workspace import WorkspaceContext


class StageStatus(Enum):
    """Stage execution status."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageOutcome:
    """What happened to one stage of a run."""

    stage_id: str
    status: StageStatus
    message: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    @classmethod
    def succeeded(cls, stage_id: str, message: str = "") -> "StageOutcome":
        return cls(stage_id=stage_id, status=StageStatus.SUCCESS, message=message)

    @classmethod
    def failed(cls, stage_id: str, message: str) -> "StageOutcome":
        return cls(stage_id=stage_id, status=StageStatus.FAILED, message=message)

    @classmethod
    def skipped(cls, stage_id: str, reason: str) -> "StageOutcome":
        return cls(stage_id=stage_id, status=StageStatus.SKIPPED, message=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage_id,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class PipelineRun:
    """One execution of the pipeline.

    Outcomes are appended in stage order. Once ``finish()`` is called the run
    is frozen. Nothing here is persisted for later runs to read.
    """

    def __init__(self, run_id: str, mode: str, log_path: Optional[Path] = None) -> None:
        self.run_id = run_id
        self.mode = mode
        self.log_path = log_path
        self.started_at = datetime.now().isoformat(timespec="seconds")
        self.finished_at: Optional[str] = None
        self.interrupted = False
        self._outcomes: List[StageOutcome] = []

    @property
    def outcomes(self) -> tuple[StageOutcome, ...]:
        return tuple(self._outcomes)

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    def record(self, outcome: StageOutcome) -> None:
        if self.finished:
            raise RuntimeError(f"Run {self.run_id} is finished; cannot record {outcome.stage_id}")
        self._outcomes.append(outcome)

    def finish(self, *, interrupted: bool = False) -> None:
        if not self.finished:
            self.interrupted = interrupted
            self.finished_at = datetime.now().isoformat(timespec="seconds")

    @property
    def failure(self) -> Optional[StageOutcome]:
        for outcome in self._outcomes:
            if outcome.status == StageStatus.FAILED:
                return outcome
        return None

    @property
    def succeeded(self) -> bool:
        return self.finished and not self.interrupted and self.failure is None

    def status_of(self, stage_id: str) -> Optional[StageStatus]:
        for outcome in self._outcomes:
            if outcome.stage_id == stage_id:
                return outcome.status
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "interrupted": self.interrupted,
            "log_file": str(self.log_path) if self.log_path else None,
            "stages": [o.to_dict() for o in self._outcomes],
        }


SessionFactory = Callable[["DeploymentRequest"], "SSHSession"]


@dataclass
class PipelineContext:
    """State threaded through the stages of one run.

    ``request`` is set once by the input resolver and never replaced; later
    stages only add their own results.
    """

    config: "AppConfig"
    mode: str = "deploy"
    raw_inputs: Dict[str, Optional[str]] = field(default_factory=dict)
    interaction_handler: Optional["UserInteractionHandler"] = None
    session_factory: Optional[SessionFactory] = None
    run_log: Optional["RunLog"] = None

    request: Optional["DeploymentRequest"] = None
    local_facts: Optional["LocalHostFacts"] = None
    workspace: Optional["WorkspaceContext"] = None
    sync_result: Optional["GitCloneResult"] = None
    descriptor: Optional["BuildDescriptor"] = None
    host_facts: Optional["RemoteHostFacts"] = None
    warnings: List[str] = field(default_factory=list)

    def require_request(self) -> "DeploymentRequest":
        if self.request is None:
            raise RuntimeError("Deployment request has not been resolved yet")
        return self.request

    def ssh_credentials(self) -> "SSHCredentials":
        from ..ssh import SSHCredentials

        request = self.require_request()
        ssh = self.config.ssh
        credentials = SSHCredentials(
            host=request.host,
            username=request.user,
            key_path=request.key_path,
            port=ssh.port,
            timeout=ssh.connect_timeout,
            strict_host_key_checking=ssh.strict_host_key_checking,
            known_hosts_file=ssh.known_hosts_file,
        )
        credentials.validate()
        return credentials

    def open_session(self) -> "SSHSession":
        """Return a new, not yet connected session to the target host."""
        request = self.require_request()
        if self.session_factory is not None:
            return self.session_factory(request)
        from ..ssh import SSHSession

        return SSHSession(self.ssh_credentials())
