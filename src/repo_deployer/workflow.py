"""High-level workflow: wires configuration, stages and the run log together."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from .config import AppConfig
from .interaction import UserInteractionHandler
from .orchestrator import PipelineContext, PipelineOrchestrator, PipelineRun, SessionFactory
from .stages import (
    ConnectivityStage,
    InputResolverStage,
    LocalPreflightStage,
    ProvisionStage,
    ProxyStage,
    RemoteDeployStage,
    SourceSyncStage,
    Stage,
    TeardownStage,
    TransferStage,
    ValidationStage,
)
from .utils.logging import RunLog, get_logger

logger = get_logger(__name__)

DEPLOY = "deploy"
TEARDOWN = "teardown"


def deploy_stages() -> List[Stage]:
    return [
        InputResolverStage(),
        LocalPreflightStage(),
        SourceSyncStage(),
        ConnectivityStage(),
        ProvisionStage(),
        TransferStage(),
        RemoteDeployStage(),
        ProxyStage(),
        ValidationStage(),
    ]


def teardown_stages() -> List[Stage]:
    return [
        InputResolverStage(),
        LocalPreflightStage(),
        ConnectivityStage(),
        TeardownStage(),
    ]


class DeploymentWorkflow:
    """Builds the pipeline for one invocation and runs it under a run log."""

    def __init__(
        self,
        config: AppConfig,
        interaction_handler: Optional[UserInteractionHandler] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.config = config
        self.interaction_handler = interaction_handler
        self.session_factory = session_factory
        self.orchestrator: Optional[PipelineOrchestrator] = None
        self.context: Optional[PipelineContext] = None

    def run_deploy(self, raw_inputs: Dict[str, Optional[str]], stages: Optional[List[Stage]] = None) -> PipelineRun:
        """Run the full deploy pipeline."""
        return self._run(DEPLOY, raw_inputs, stages if stages is not None else deploy_stages())

    def run_teardown(self, raw_inputs: Dict[str, Optional[str]], stages: Optional[List[Stage]] = None) -> PipelineRun:
        """Remove the project's container, proxy rule and remote directory."""
        return self._run(TEARDOWN, raw_inputs, stages if stages is not None else teardown_stages())

    def _run(self, mode: str, raw_inputs: Dict[str, Optional[str]], stages: List[Stage]) -> PipelineRun:
        run_log = RunLog(Path(self.config.deployment.log_dir), mode)
        ctx = PipelineContext(
            config=self.config,
            mode=mode,
            raw_inputs=dict(raw_inputs),
            interaction_handler=self.interaction_handler,
            session_factory=self.session_factory,
            run_log=run_log,
        )
        self.context = ctx
        self.orchestrator = PipelineOrchestrator(stages)
        with run_log:
            logger.info("Run log: %s", run_log.path)
            run = PipelineRun(run_id=run_log.run_id, mode=mode, log_path=run_log.path)
            return self.orchestrator.run(ctx, run)
