"""Artifact Transporter: mirrors the working copy into the remote directory."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import TransferError
from ..orchestrator.models import PipelineContext
from ..ssh import RemoteScript, SSHCredentials
from ..utils.logging import get_logger
from .base import RemoteStage

logger = get_logger(__name__)


def rsync_command(source: Path, credentials: SSHCredentials, remote_dir: str, exclude: List[str]) -> List[str]:
    """``rsync -az --delete`` so the remote file set equals the local one."""
    command = ["rsync", "-az", "--delete"]
    for pattern in exclude:
        command += ["--exclude", pattern]
    command += [
        "-e",
        "ssh " + " ".join(shlex.quote(opt) for opt in credentials.ssh_options()),
        f"{source}/",
        f"{credentials.target}:{remote_dir}/",
    ]
    return command


def scp_command(source: Path, credentials: SSHCredentials, remote_dir: str) -> List[str]:
    """Recursive copy of the directory *contents*.

    scp has no deletion semantics: files removed locally stay on the host.
    """
    return ["scp", *credentials.ssh_options(), "-r", f"{source}/.", f"{credentials.target}:{remote_dir}/"]


class TransferStage(RemoteStage):
    stage_id = "transfer"
    title = "Transfer working copy"

    def __init__(
        self,
        probe=None,
        *,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        super().__init__(probe)
        self.runner = runner
        self.which = which

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        if ctx.workspace is None:
            raise TransferError("No local working copy to transfer")
        source = ctx.workspace.source_dir
        remote_dir = request.remote_dir
        quoted_dir = shlex.quote(remote_dir)
        owner = shlex.quote(f"{request.user}:{request.user}")

        script = RemoteScript(name="prepare-remote-dir").fatal(
            f"sudo mkdir -p {quoted_dir} && sudo chown {owner} {quoted_dir}",
            f"Create {remote_dir} owned by {request.user}",
        )
        with ctx.open_session() as session:
            result = session.run_script(script)
        if not result.ok:
            failed = result.failed_fatal
            raise TransferError(f"Cannot prepare {remote_dir}: {failed.result.detail if failed else 'unknown error'}")

        credentials = ctx.ssh_credentials()
        tool = self.choose_tool(ctx)
        if tool == "rsync":
            command = rsync_command(source, credentials, remote_dir, ctx.config.transfer.exclude)
        else:
            logger.warning("Using scp: files deleted from the repository are not removed from %s", remote_dir)
            command = scp_command(source, credentials, remote_dir)

        logger.info("Transferring %s -> %s:%s with %s", source, credentials.target, remote_dir, tool)
        logger.debug("$ %s", " ".join(shlex.quote(part) for part in command))
        process = self.runner(command, capture_output=True, text=True, check=False)
        if process.stdout:
            logger.debug("  [stdout] %s", process.stdout.strip())
        if process.stderr:
            logger.debug("  [stderr] %s", process.stderr.strip())
        if process.returncode != 0:
            raise TransferError(f"{tool} exited with {process.returncode}: {(process.stderr or '').strip()}")
        return f"{tool} to {credentials.target}:{remote_dir}"

    def choose_tool(self, ctx: PipelineContext) -> str:
        preferred = ["rsync", "scp"] if ctx.config.transfer.prefer_rsync else ["scp", "rsync"]
        for tool in preferred:
            if ctx.local_facts is not None:
                if ctx.local_facts.has(tool):
                    return tool
            elif self.which(tool):
                return tool
        raise TransferError("Neither rsync nor scp is available locally")
