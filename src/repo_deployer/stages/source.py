"""Source Synchronizer: local working copy at the tip of the requested branch."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..errors import MissingBuildDescriptorError, SyncError
from ..gitops import GitCommandError, GitRepositoryManager
from ..models import COMPOSE_DESCRIPTORS, DOCKERFILE_DESCRIPTOR, BuildDescriptor
from ..orchestrator.models import PipelineContext
from ..utils.logging import get_logger
from ..workspace import WorkspaceManager
from .base import Stage

logger = get_logger(__name__)


class SourceSyncStage(Stage):
    stage_id = "source_sync"
    title = "Synchronize source"

    def __init__(self, git: Optional[GitRepositoryManager] = None) -> None:
        self.git = git or GitRepositoryManager()

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        workspace = WorkspaceManager(Path(ctx.config.deployment.workspace_root)).prepare(request.identity)
        ctx.workspace = workspace

        logger.info("Syncing %s (branch %s) into %s", request.repo_url, request.branch, workspace.source_dir)
        try:
            result = self.git.sync(
                request.repo_url,
                workspace.source_dir,
                request.branch,
                credential=request.credential,
            )
        except GitCommandError as exc:
            raise SyncError(f"Could not sync branch {request.branch!r}: {exc.stderr or exc}") from exc
        ctx.sync_result = result

        descriptor = BuildDescriptor.detect_in(workspace.source_dir)
        if descriptor is None:
            expected = ", ".join(COMPOSE_DESCRIPTORS + (DOCKERFILE_DESCRIPTOR,))
            raise MissingBuildDescriptorError(
                f"No build descriptor in {request.repo_url} @ {request.branch}; expected one of: {expected}"
            )
        ctx.descriptor = descriptor

        WorkspaceManager(workspace.root).update_metadata(
            workspace,
            repo_url=request.repo_url,
            branch=request.branch,
            commit=result.commit_sha,
            descriptor=descriptor.filename,
        )

        short = result.commit_sha[:12]
        if result.cloned:
            return f"cloned {request.branch} at {short} ({descriptor.filename})"
        if result.changed:
            return f"updated {request.branch} {result.previous_sha[:12] if result.previous_sha else '?'} -> {short}"
        return f"{request.branch} already at {short}"
