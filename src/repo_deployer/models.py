"""Core data model: deployment inputs, project identity and remote state."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

COMPOSE_DESCRIPTORS = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)
DOCKERFILE_DESCRIPTOR = "Dockerfile"

_DOCKER_UNSAFE = re.compile(r"[^a-z0-9_.-]+")
# Compose project names allow no dots.
_COMPOSE_UNSAFE = re.compile(r"[^a-z0-9_-]+")


@dataclass(frozen=True)
class ProjectIdentity:
    """Deterministic project name derived from the repository location."""

    name: str

    @classmethod
    def from_repo_url(cls, repo_url: str) -> "ProjectIdentity":
        # Handles https://host/org/app.git, git@host:org/app.git and local paths.
        tail = repo_url.strip().rstrip("/")
        tail = re.split(r"[/:\\]", tail)[-1]
        if tail.endswith(".git"):
            tail = tail[:-4]
        return cls(name=tail)

    @property
    def docker_name(self) -> str:
        """Name usable as an image repository and container prefix."""
        slug = _DOCKER_UNSAFE.sub("-", self.name.lower()).strip("-_.")
        return slug or "app"

    @property
    def compose_project(self) -> str:
        """Name passed to compose with ``-p`` and stamped on its labels."""
        slug = _COMPOSE_UNSAFE.sub("-", self.docker_name).strip("-_")
        return slug or "app"

    @property
    def image(self) -> str:
        return f"{self.docker_name}:latest"

    @property
    def container_name(self) -> str:
        return f"{self.docker_name}_service"

    @property
    def proxy_rule_name(self) -> str:
        return f"{self.name}.conf"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class DeploymentRequest:
    """Immutable input bundle for one invocation.

    The access credential is kept out of ``repr`` so it never reaches a log line
    through an accidental ``%r``.
    """

    repo_url: str
    branch: str
    host: str
    user: str
    key_path: str
    app_port: int
    remote_dir: str
    credential: Optional[str] = field(default=None, repr=False)

    @property
    def identity(self) -> ProjectIdentity:
        return ProjectIdentity.from_repo_url(self.repo_url)

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    @staticmethod
    def default_remote_dir(user: str, identity: ProjectIdentity) -> str:
        return f"/home/{user}/{identity.name}"


@dataclass(frozen=True)
class BuildDescriptor:
    """Which build descriptor a working copy (or remote directory) carries."""

    kind: str  # "compose" | "dockerfile"
    filename: str

    @property
    def is_compose(self) -> bool:
        return self.kind == "compose"

    @classmethod
    def detect(cls, names: "set[str] | list[str]") -> Optional["BuildDescriptor"]:
        present = set(names)
        for candidate in COMPOSE_DESCRIPTORS:
            if candidate in present:
                return cls(kind="compose", filename=candidate)
        if DOCKERFILE_DESCRIPTOR in present:
            return cls(kind="dockerfile", filename=DOCKERFILE_DESCRIPTOR)
        return None

    @classmethod
    def detect_in(cls, directory: Path) -> Optional["BuildDescriptor"]:
        if not directory.is_dir():
            return None
        return cls.detect({p.name for p in directory.iterdir() if p.is_file()})


@dataclass(frozen=True)
class ContainerInfo:
    """One line of ``docker ps -a`` output."""

    container_id: str
    name: str
    image: str
    status: str
    compose_project: str = ""

    def belongs_to(self, identity: ProjectIdentity) -> bool:
        return (
            self.compose_project == identity.compose_project
            or self.name == identity.container_name
            or self.image in (identity.docker_name, identity.image)
        )

    @property
    def running(self) -> bool:
        return self.status.startswith("Up")

    @property
    def healthy(self) -> bool:
        return self.running and "unhealthy" not in self.status


@dataclass(frozen=True)
class RemoteApplicationState:
    """What the remote host currently runs for one project.

    Never cached: stages re-query it through ``RemoteProbe.application_state``
    before acting on it.
    """

    containers: tuple[ContainerInfo, ...] = ()
    proxy_rule_available: bool = False
    proxy_rule_enabled: bool = False
    directory_exists: bool = False

    @property
    def running(self) -> list[ContainerInfo]:
        return [c for c in self.containers if c.running]

    @property
    def is_deployed(self) -> bool:
        return bool(self.running)

    @property
    def is_clean(self) -> bool:
        return not (
            self.containers
            or self.proxy_rule_available
            or self.proxy_rule_enabled
            or self.directory_exists
        )
