"""Local Preflight: verifies the local tools and key file before any mutation."""

from __future__ import annotations

from typing import Optional

from ..errors import PrerequisiteError
from ..local import LocalProbe
from ..orchestrator.models import PipelineContext
from ..utils.logging import get_logger
from .base import Stage

logger = get_logger(__name__)


class LocalPreflightStage(Stage):
    stage_id = "local_preflight"
    title = "Local preflight"

    def __init__(self, probe: Optional[LocalProbe] = None) -> None:
        self.probe = probe or LocalProbe()

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        facts = self.probe.collect()
        ctx.local_facts = facts
        logger.debug("Local host: %s", facts.to_payload())

        # Teardown never clones, so git is only needed for deploys.
        required = ["git", "ssh"] if ctx.mode == "deploy" else ["ssh"]
        for tool in required:
            if not facts.has(tool):
                raise PrerequisiteError(tool, f"install {tool} and make sure it is on PATH")

        if ctx.mode == "deploy":
            if facts.transfer_tool is None:
                raise PrerequisiteError("rsync or scp", "install rsync (preferred) or an OpenSSH scp client")
            if facts.transfer_tool != "rsync":
                logger.warning("rsync not found; falling back to scp (remote files absent locally are not deleted)")

        if not self.probe.key_readable(request.key_path):
            raise PrerequisiteError(f"SSH key {request.key_path}", "file must exist and be readable")

        tools = ", ".join(name for name, path in sorted(facts.tools.items()) if path)
        return f"local tools available ({tools})"
