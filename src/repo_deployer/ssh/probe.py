"""Remote host probing utilities."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..models import ContainerInfo, ProjectIdentity, RemoteApplicationState
from .session import SSHSession

DEBIAN = "debian"
REDHAT = "redhat"

CONTAINER_FORMAT = (
    "{{.ID}}\\t{{.Names}}\\t{{.Image}}\\t{{.Status}}"
    '\\t{{.Label "com.docker.compose.project"}}'
)


@dataclass
class RemoteHostFacts:
    hostname: str
    os_release: str
    package_family: Optional[str]


def parse_container_lines(output: str) -> Tuple[ContainerInfo, ...]:
    containers = []
    for line in output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) < 4 or not parts[0]:
            continue
        project = parts[4].strip() if len(parts) > 4 else ""
        containers.append(
            ContainerInfo(
                container_id=parts[0].strip(),
                name=parts[1].strip(),
                image=parts[2].strip(),
                status=parts[3].strip(),
                compose_project=project,
            )
        )
    return tuple(containers)


class RemoteProbe:
    """Reads remote state by running simple commands. Nothing is cached."""

    def collect(self, session: SSHSession) -> RemoteHostFacts:
        hostname = self._safe_run(session, "hostname")
        os_release = self._safe_run(
            session,
            ". /etc/os-release 2>/dev/null && echo \"$PRETTY_NAME\" || uname -sr",
        )
        return RemoteHostFacts(
            hostname=hostname or "unknown",
            os_release=os_release or "unknown",
            package_family=self.package_family(session),
        )

    def package_family(self, session: SSHSession) -> Optional[str]:
        if session.run("command -v apt-get >/dev/null 2>&1").ok:
            return DEBIAN
        if session.run("command -v dnf >/dev/null 2>&1 || command -v yum >/dev/null 2>&1").ok:
            return REDHAT
        return None

    def service_active(self, session: SSHSession, service: str) -> bool:
        return session.run(f"sudo systemctl is-active --quiet {shlex.quote(service)}").ok

    def compose_command(self, session: SSHSession) -> Optional[str]:
        if session.run("docker compose version >/dev/null 2>&1").ok:
            return "docker compose"
        if session.run("command -v docker-compose >/dev/null 2>&1").ok:
            return "docker-compose"
        return None

    def containers(self, session: SSHSession, identity: ProjectIdentity) -> Tuple[ContainerInfo, ...]:
        result = session.run(f"docker ps -a --no-trunc --format '{CONTAINER_FORMAT}'")
        if not result.ok:
            return ()
        return tuple(c for c in parse_container_lines(result.stdout) if c.belongs_to(identity))

    def application_state(
        self,
        session: SSHSession,
        identity: ProjectIdentity,
        *,
        remote_dir: str,
        available_dir: str,
        enabled_dir: str,
    ) -> RemoteApplicationState:
        rule = identity.proxy_rule_name
        available = f"{available_dir}/{rule}"
        enabled = f"{enabled_dir}/{rule}"
        return RemoteApplicationState(
            containers=self.containers(session, identity),
            proxy_rule_available=session.run(f"test -e {shlex.quote(available)}").ok,
            proxy_rule_enabled=session.run(f"test -L {shlex.quote(enabled)} -o -e {shlex.quote(enabled)}").ok,
            directory_exists=session.run(f"test -d {shlex.quote(remote_dir)}").ok,
        )

    def tool_versions(self, session: SSHSession) -> Dict[str, str]:
        checks = {
            "docker": "docker --version",
            "compose": "docker compose version 2>/dev/null || docker-compose --version",
            "nginx": "nginx -v 2>&1",
        }
        versions = {}
        for tool, command in checks.items():
            result = session.run(command)
            versions[tool] = result.detail if result.ok else "not installed"
        return versions

    def _safe_run(self, session: SSHSession, command: str) -> str:
        result = session.run(command)
        return result.stdout or result.stderr
