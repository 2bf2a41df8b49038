"""Remote Environment Provisioner.

Every install step is advisory: an already-installed package or an
already-running service is fine, and a failed install only matters if it
leaves docker inactive. The one hard check is ``systemctl is-active docker``
at the end.
"""

from __future__ import annotations

import shlex

from ..errors import ProvisioningError, UnsupportedPlatformError
from ..orchestrator.models import PipelineContext
from ..ssh import DEBIAN, REDHAT, RemoteScript, SSHSession
from ..utils.logging import get_logger
from .base import RemoteStage

logger = get_logger(__name__)

HAS_DOCKER = "command -v docker >/dev/null 2>&1"
HAS_DOCKER_SERVICE = "systemctl cat docker.service >/dev/null 2>&1"
HAS_COMPOSE = "(docker compose version >/dev/null 2>&1 || command -v docker-compose >/dev/null 2>&1)"
HAS_NGINX = "command -v nginx >/dev/null 2>&1"


class ProvisionStage(RemoteStage):
    stage_id = "provision"
    title = "Provision remote host"

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        with ctx.open_session() as session:
            family = self.probe.package_family(session)
            if family is None:
                raise UnsupportedPlatformError(
                    f"{request.host} has neither apt-get nor dnf/yum; only Debian- and RedHat-style hosts are supported"
                )
            logger.info("Detected %s-style package manager on %s", family, request.host)

            script = self.build_script(ctx, session, family)
            result = session.run_script(script)
            for failure in result.advisory_failures:
                ctx.warnings.append(f"{failure.step.description} failed")

            if not self.probe.service_active(session, "docker"):
                raise ProvisioningError(f"docker is not active on {request.host} after provisioning")

            for tool, version in self.probe.tool_versions(session).items():
                logger.info("  %s: %s", tool, version)

        failed = len(result.advisory_failures)
        suffix = f", {failed} advisory step(s) failed" if failed else ""
        return f"docker active on {request.host}{suffix}"

    def build_script(self, ctx: PipelineContext, session: SSHSession, family: str) -> RemoteScript:
        settings = ctx.config.provisioning
        installer = (
            f"curl -fsSL {shlex.quote(settings.docker_install_url)} -o /tmp/get-docker.sh"
            " && sudo sh /tmp/get-docker.sh"
        )
        script = RemoteScript(name="provision")

        if family == DEBIAN:
            pm = "sudo DEBIAN_FRONTEND=noninteractive apt-get"
            script.advisory(f"{pm} update -y", "Refresh package index")
            if settings.debian_prerequisites:
                script.advisory(
                    f"{pm} install -y {' '.join(settings.debian_prerequisites)}",
                    "Install prerequisite packages",
                )
            script.advisory(f"{HAS_DOCKER} || {pm} install -y docker.io || ({installer})", "Install docker")
            script.advisory(
                f"{HAS_COMPOSE} || {pm} install -y docker-compose-plugin || {pm} install -y docker-compose",
                "Install compose",
            )
            script.advisory(f"{HAS_NGINX} || {pm} install -y nginx", "Install nginx")
        elif family == REDHAT:
            manager = "dnf" if session.run("command -v dnf >/dev/null 2>&1").ok else "yum"
            pm = f"sudo {manager}"
            script.advisory(f"{pm} makecache -y", "Refresh package index")
            if settings.redhat_prerequisites:
                script.advisory(
                    f"{pm} install -y {' '.join(settings.redhat_prerequisites)}",
                    "Install prerequisite packages",
                )
            # podman-docker provides a docker binary but no docker.service.
            script.advisory(
                f"{HAS_DOCKER_SERVICE} || ! rpm -q podman-docker >/dev/null 2>&1 || {pm} remove -y podman-docker",
                "Remove podman-docker shim",
            )
            script.advisory(f"{HAS_DOCKER_SERVICE} || ({installer})", "Install docker")
            script.advisory(
                f"{HAS_COMPOSE} || {pm} install -y docker-compose-plugin || {pm} install -y docker-compose",
                "Install compose",
            )
            script.advisory(f"{HAS_NGINX} || {pm} install -y nginx", "Install nginx")
        else:
            raise UnsupportedPlatformError(f"Unknown package family {family!r}")

        if settings.add_user_to_docker_group:
            user = shlex.quote(ctx.require_request().user)
            script.advisory(f"sudo usermod -aG docker {user}", "Add user to docker group")
        script.advisory("sudo systemctl enable --now docker", "Enable docker service")
        service = shlex.quote(ctx.config.proxy.service)
        script.advisory(f"sudo systemctl enable --now {service}", "Enable nginx service")
        return script
