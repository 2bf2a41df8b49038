"""Teardown Executor: removes everything a deploy created for one project.

Every step is best-effort and "already absent" counts as success. Failures
are collected as ``TeardownWarning`` entries and logged; the stage itself
still succeeds. nginx keeps running for the other sites it serves.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import TeardownWarning
from ..models import BuildDescriptor, DeploymentRequest
from ..orchestrator.models import PipelineContext
from ..ssh import RemoteScript, SSHSession
from ..utils.logging import get_logger
from .base import RemoteStage
from .deployer import remove_by_filter

logger = get_logger(__name__)


@dataclass
class TeardownReport:
    warnings: List[TeardownWarning] = field(default_factory=list)
    steps_run: int = 0

    def add(self, message: str) -> None:
        warning = TeardownWarning(message, stage=TeardownStage.stage_id)
        self.warnings.append(warning)
        logger.warning(message)

    @property
    def clean(self) -> bool:
        return not self.warnings


def protected_dirs(user: str) -> set[str]:
    return {"/", "/home", f"/home/{user}", "/root"}


class TeardownStage(RemoteStage):
    stage_id = "teardown"
    title = "Tear down remote deployment"

    def __init__(self, probe=None) -> None:
        super().__init__(probe)
        self.report: Optional[TeardownReport] = None

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        report = TeardownReport()
        self.report = report

        with ctx.open_session() as session:
            before = self.query_state(ctx, session)
            if before.is_clean:
                logger.info("Nothing deployed for %s on %s", request.identity, request.host)

            script = self.build_script(ctx, session, before.directory_exists, report)
            report.steps_run = len(script)
            result = session.run_script(script)
            for failure in result.advisory_failures:
                detail = failure.result.detail or f"exit {failure.result.exit_status}"
                report.add(f"{failure.step.description} failed: {detail}")

            after = self.query_state(ctx, session)

        remnants = []
        if after.containers:
            remnants.append("containers " + ", ".join(c.name for c in after.containers))
        if after.proxy_rule_available or after.proxy_rule_enabled:
            remnants.append(f"nginx rule {request.identity.proxy_rule_name}")
        if after.directory_exists:
            remnants.append(f"directory {request.remote_dir}")
        if remnants:
            report.add("Still present after teardown: " + "; ".join(remnants))

        ctx.warnings.extend(str(w) for w in report.warnings)
        if report.clean:
            return f"{request.identity} removed from {request.host}"
        return f"{request.identity} removed from {request.host} with {len(report.warnings)} warning(s)"

    def build_script(
        self,
        ctx: PipelineContext,
        session: SSHSession,
        directory_exists: bool,
        report: TeardownReport,
    ) -> RemoteScript:
        request = ctx.require_request()
        identity = request.identity
        proxy = self.proxy_layout(ctx)
        available = f"{proxy.available_dir}/{identity.proxy_rule_name}"
        enabled = f"{proxy.enabled_dir}/{identity.proxy_rule_name}"
        remote_dir = shlex.quote(request.remote_dir)

        script = RemoteScript(name="teardown")
        if proxy.links_rules:
            script.advisory(f"sudo rm -f {shlex.quote(enabled)}", "Remove enabled nginx rule")
        script.advisory(f"sudo rm -f {shlex.quote(available)}", "Remove nginx rule")
        script.advisory(
            f"sudo nginx -t && sudo systemctl reload {shlex.quote(proxy.service)}",
            "Validate and reload nginx",
        )

        descriptor = self.remote_descriptor(session, request) if directory_exists else None
        if descriptor is not None and descriptor.is_compose:
            compose = self.probe.compose_command(session)
            if compose:
                script.advisory(
                    f"cd {remote_dir} && {compose} -p {identity.compose_project} "
                    f"-f {shlex.quote(descriptor.filename)} down --rmi local --remove-orphans",
                    "Stop composition",
                )

        script.advisory(remove_by_filter(f"name=^/{identity.container_name}$"), "Remove service container")
        script.advisory(
            remove_by_filter(f"label=com.docker.compose.project={identity.compose_project}"),
            "Remove composition containers",
        )
        script.advisory(remove_by_filter(f"ancestor={identity.image}"), "Remove containers from image")

        escaped = identity.docker_name.replace(".", "\\.")
        pattern = shlex.quote(f"^{escaped}(:|$)")
        script.advisory(
            f"docker images --format '{{{{.Repository}}}}:{{{{.Tag}}}}' | grep -E {pattern} | xargs -r docker rmi -f",
            "Remove project images",
        )
        script.advisory(
            f"docker images -q --filter label=com.docker.compose.project={identity.compose_project} | xargs -r docker rmi -f",
            "Remove composition images",
        )

        if (request.remote_dir.rstrip("/") or "/") in protected_dirs(request.user):
            report.add(f"Refusing to delete {request.remote_dir}")
        else:
            script.advisory(f"sudo rm -rf {remote_dir}", "Remove remote directory")
        return script

    def remote_descriptor(self, session: SSHSession, request: DeploymentRequest) -> Optional[BuildDescriptor]:
        result = session.run(f"ls -1A {shlex.quote(request.remote_dir)}")
        if not result.ok:
            return None
        return BuildDescriptor.detect(result.stdout.splitlines())
