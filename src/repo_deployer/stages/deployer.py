"""Remote Deployer: replaces the running instance with a fresh build."""

from __future__ import annotations

import shlex
from typing import Iterable, Optional

from ..errors import RemoteDeployError
from ..models import BuildDescriptor, ContainerInfo, ProjectIdentity, RemoteApplicationState
from ..orchestrator.models import PipelineContext
from ..ssh import RemoteScript, SSHSession
from ..utils.logging import get_logger
from .base import RemoteStage

logger = get_logger(__name__)


def remove_by_filter(filter_expr: str) -> str:
    """Force-remove containers matching a ``docker ps`` filter; no match is success."""
    return f"docker ps -aq --filter {shlex.quote(filter_expr)} | xargs -r docker rm -f"


class RemoteDeployStage(RemoteStage):
    """Replace-not-merge: tear down whatever runs for the project, then start anew.

    Removal of the old instance is advisory. The stage succeeds only if the
    post-deploy container listing shows a running instance.
    """

    stage_id = "remote_deploy"
    title = "Deploy application"

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        identity = request.identity
        descriptor = ctx.descriptor
        if descriptor is None:
            raise RemoteDeployError("No build descriptor was detected for the working copy")

        with ctx.open_session() as session:
            before = self.query_state(ctx, session)
            if before.containers:
                logger.info(
                    "Replacing %d existing container(s): %s",
                    len(before.containers),
                    ", ".join(c.name for c in before.containers),
                )

            if descriptor.is_compose:
                compose = self.probe.compose_command(session)
                if compose is None:
                    raise RemoteDeployError(f"No docker compose tool on {request.host}")
                script = self.compose_script(identity, request.remote_dir, descriptor, compose, before.containers)
            else:
                script = self.dockerfile_script(identity, request.remote_dir, request.app_port, before.containers)

            result = session.run_script(script)
            if not result.ok:
                failed = result.failed_fatal
                assert failed is not None
                raise RemoteDeployError(f"{failed.step.description} failed: {failed.result.detail}")

            after = self.query_state(ctx, session)
            self.log_containers(session)

        return self.check(identity, after, descriptor)

    def compose_script(
        self,
        identity: ProjectIdentity,
        remote_dir: str,
        descriptor: BuildDescriptor,
        compose: str,
        previous: Iterable[ContainerInfo],
    ) -> RemoteScript:
        project = identity.compose_project
        base = f"cd {shlex.quote(remote_dir)} && {compose} -p {project} -f {shlex.quote(descriptor.filename)}"
        script = RemoteScript(name="deploy-compose")
        script.advisory(f"{base} down --remove-orphans", "Stop previous composition")
        # Leftovers of a single-image deploy of the same project.
        strays = [c.container_id for c in previous if c.compose_project != project]
        if strays:
            script.advisory(f"docker rm -f {' '.join(strays)}", "Remove previous containers")
        script.advisory(remove_by_filter(f"name=^/{identity.container_name}$"), "Remove previous service container")
        script.advisory(f"{base} pull --ignore-pull-failures", "Pull upstream images")
        script.fatal(f"{base} up -d --build --remove-orphans", "Start composition")
        return script

    def dockerfile_script(
        self,
        identity: ProjectIdentity,
        remote_dir: str,
        port: int,
        previous: Iterable[ContainerInfo],
    ) -> RemoteScript:
        image = identity.image
        script = RemoteScript(name="deploy-dockerfile")
        # Build first: a failed build leaves the old instance running.
        script.fatal(f"cd {shlex.quote(remote_dir)} && docker build -t {image} .", "Build image")
        # Queried before the build; after retagging, old containers no longer
        # match an ancestor filter on the image name.
        old = [c.container_id for c in previous]
        if old:
            script.advisory(f"docker rm -f {' '.join(old)}", "Remove previous containers")
        script.advisory(remove_by_filter(f"ancestor={image}"), "Remove containers from image")
        script.advisory(remove_by_filter(f"name=^/{identity.container_name}$"), "Remove previous service container")
        script.advisory(
            remove_by_filter(f"label=com.docker.compose.project={identity.compose_project}"),
            "Remove previous composition containers",
        )
        script.fatal(
            f"docker run -d --name {identity.container_name} -p {port}:{port} {image}",
            "Start container",
        )
        return script

    def check(self, identity: ProjectIdentity, state: RemoteApplicationState, descriptor: BuildDescriptor) -> str:
        running = state.running
        if not running:
            raise RemoteDeployError(f"No running container for {identity} after deploy")
        if not descriptor.is_compose and len(running) > 1:
            raise RemoteDeployError(
                f"{len(running)} containers running for {identity}: " + ", ".join(c.name for c in running)
            )
        names = ", ".join(c.name for c in running)
        return f"{len(running)} container(s) running: {names}"

    def log_containers(self, session: SSHSession) -> Optional[str]:
        result = session.run("docker ps --format 'table {{.Names}}\\t{{.Image}}\\t{{.Status}}'")
        if result.ok and result.stdout:
            for line in result.stdout.splitlines():
                logger.info("  %s", line)
            return result.stdout
        return None
