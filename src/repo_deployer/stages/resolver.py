"""Input Resolver: gathers, defaults and validates the deployment inputs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import quote

from ..errors import InvalidInputError, MissingInputError
from ..interaction import InputType, InteractionRequest
from ..models import DeploymentRequest, ProjectIdentity
from ..orchestrator.models import PipelineContext
from ..utils.logging import get_logger
from .base import Stage

logger = get_logger(__name__)


@dataclass(frozen=True)
class InputField:
    key: str
    env_var: str
    question: str
    required: bool = True
    secret: bool = False
    deploy_only: bool = False


# Order matters: it is the prompt order.
FIELDS = (
    InputField("repo_url", "GIT_URL", "Git repository URL"),
    InputField("credential", "PAT", "Personal access token", required=False, secret=True, deploy_only=True),
    InputField("branch", "BRANCH", "Branch", deploy_only=True),
    InputField("user", "REMOTE_USER", "Remote SSH username"),
    InputField("host", "REMOTE_HOST", "Remote server IP/hostname"),
    InputField("key_path", "SSH_KEY", "SSH private key path"),
    InputField("app_port", "CONTAINER_PORT", "Application internal port"),
    InputField("remote_dir", "REMOTE_PROJECT_DIR", "Remote project directory", required=False),
)

REQUIRED = ("repo_url", "branch", "user", "host", "key_path", "app_port")


class InputResolverStage(Stage):
    stage_id = "resolve_inputs"
    title = "Resolve inputs"

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self.environ = environ if environ is not None else os.environ

    def run(self, ctx: PipelineContext) -> str:
        values = self.collect(ctx)
        request = self.build_request(values, default_branch=ctx.config.deployment.default_branch)
        ctx.request = request
        if ctx.run_log and request.credential:
            ctx.run_log.redact(request.credential, quote(request.credential, safe=""))
        logger.info(
            "Project %s -> %s (port %d, dir %s, branch %s)",
            request.identity,
            request.target,
            request.app_port,
            request.remote_dir,
            request.branch,
        )
        return f"project {request.identity} targeting {request.target}"

    def collect(self, ctx: PipelineContext) -> Dict[str, Optional[str]]:
        """CLI values first, then environment, then interactive prompts."""
        values: Dict[str, Optional[str]] = {}
        handler = ctx.interaction_handler if ctx.config.deployment.interactive else None
        for field in FIELDS:
            if field.deploy_only and ctx.mode != "deploy":
                values[field.key] = None
                continue
            value = _clean(ctx.raw_inputs.get(field.key))
            if value is None:
                value = _clean(self.environ.get(field.env_var))
            if value is None and field.key == "branch":
                value = _clean(ctx.config.deployment.default_branch)
            if value is None and handler is not None:
                value = self._prompt(handler, field, values)
            values[field.key] = value
        return values

    def _prompt(self, handler, field: InputField, known: Dict[str, Optional[str]]) -> Optional[str]:
        default = None
        if field.key == "remote_dir" and known.get("repo_url") and known.get("user"):
            identity = ProjectIdentity.from_repo_url(known["repo_url"] or "")
            default = DeploymentRequest.default_remote_dir(known["user"] or "", identity)
        request = InteractionRequest(
            key=field.key,
            question=field.question,
            input_type=InputType.SECRET if field.secret else InputType.TEXT,
            default=default,
            required=field.required,
        )
        response = handler.ask(request)
        if response.cancelled:
            return None
        return _clean(response.value)

    @staticmethod
    def build_request(values: Mapping[str, Optional[str]], *, default_branch: str = "main") -> DeploymentRequest:
        """Validate collected values and freeze them into a DeploymentRequest."""
        merged = dict(values)
        if not merged.get("branch"):
            merged["branch"] = default_branch
        missing = [key for key in REQUIRED if not _clean(merged.get(key))]
        if missing:
            raise MissingInputError(missing)

        port_text = str(merged["app_port"]).strip()
        try:
            port = int(port_text)
        except ValueError:
            raise InvalidInputError("app_port", f"{port_text!r} is not an integer") from None
        if not 0 < port < 65536:
            raise InvalidInputError("app_port", f"{port} is outside 1-65535")

        repo_url = str(merged["repo_url"]).strip()
        identity = ProjectIdentity.from_repo_url(repo_url)
        if not identity.name:
            raise InvalidInputError("repo_url", "cannot derive a project name")

        user = str(merged["user"]).strip()
        remote_dir = _clean(merged.get("remote_dir"))
        if remote_dir is None:
            remote_dir = DeploymentRequest.default_remote_dir(user, identity)
        elif not remote_dir.startswith("/"):
            raise InvalidInputError("remote_dir", "must be an absolute path")
        remote_dir = remote_dir.rstrip("/") or "/"

        return DeploymentRequest(
            repo_url=repo_url,
            branch=str(merged["branch"]).strip(),
            host=str(merged["host"]).strip(),
            user=user,
            key_path=os.path.expanduser(str(merged["key_path"]).strip()),
            app_port=port,
            remote_dir=remote_dir,
            credential=_clean(merged.get("credential")),
        )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None
