"""Git-based repository management."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

from ..utils.logging import REDACTED, get_logger

logger = get_logger(__name__)


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")


@dataclass
class GitCloneResult:
    """Details about a completed clone/update."""

    commit_sha: str
    previous_sha: Optional[str] = None
    cloned: bool = False

    @property
    def changed(self) -> bool:
        return self.cloned or self.previous_sha != self.commit_sha


def authenticated_url(repo_url: str, credential: Optional[str]) -> str:
    """Embed ``credential`` as the transport username of an HTTP(S) URL.

    Other URL schemes (ssh, scp-style, local paths) are returned unchanged.
    """
    if not credential:
        return repo_url
    parts = urlsplit(repo_url)
    if parts.scheme not in ("http", "https"):
        return repo_url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(credential, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class GitRepositoryManager:
    """Wraps `git` CLI commands for cloning and updating repositories."""

    def __init__(self, git_binary: str = "git") -> None:
        self.git_binary = git_binary

    def sync(
        self,
        repo_url: str,
        target_dir: Path,
        branch: str,
        credential: Optional[str] = None,
    ) -> GitCloneResult:
        """Bring ``target_dir`` to the latest commit of ``branch``.

        An existing checkout is fetched and fast-forwarded; diverged history is
        an error, never a forced reset. The credential-bearing URL is passed
        on the command line for a single operation and never stored in
        ``.git/config``.
        """
        target_dir = target_dir.resolve()
        remote = authenticated_url(repo_url, credential)
        secrets = [credential, quote(credential, safe="")] if credential else []

        if (target_dir / ".git").exists():
            previous = self.head(target_dir)
            self._run(
                ["fetch", "--prune", remote, f"+refs/heads/{branch}:refs/remotes/origin/{branch}"],
                cwd=target_dir,
                secrets=secrets,
            )
            if self._succeeds(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=target_dir):
                self._run(["checkout", branch], cwd=target_dir)
            else:
                self._run(["checkout", "-b", branch, "--track", f"origin/{branch}"], cwd=target_dir)
            self._run(["merge", "--ff-only", f"origin/{branch}"], cwd=target_dir)
            return GitCloneResult(commit_sha=self.head(target_dir), previous_sha=previous)

        if target_dir.exists():
            shutil.rmtree(target_dir, ignore_errors=True)
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        self._run(["clone", "--branch", branch, remote, str(target_dir)], secrets=secrets)
        if remote != repo_url:
            self._run(["remote", "set-url", "origin", repo_url], cwd=target_dir)
        return GitCloneResult(commit_sha=self.head(target_dir), cloned=True)

    def head(self, target_dir: Path) -> str:
        return self._run(["rev-parse", "HEAD"], cwd=target_dir).strip()

    def _succeeds(self, args: list[str], cwd: Optional[Path] = None) -> bool:
        process = subprocess.run(
            [self.git_binary] + args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
        )
        return process.returncode == 0

    def _run(
        self,
        args: list[str],
        cwd: Optional[Path] = None,
        secrets: Optional[list[str]] = None,
    ) -> str:
        command = [self.git_binary] + args
        process = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
            env=_git_env(),
        )
        shown = [_scrub(part, secrets) for part in command]
        logger.debug("$ %s", " ".join(shown))
        if process.returncode != 0:
            raise GitCommandError(shown, process.returncode, _scrub(process.stderr.strip(), secrets))
        return process.stdout


def _scrub(text: str, secrets: Optional[list[str]]) -> str:
    for secret in secrets or []:
        text = text.replace(secret, REDACTED)
    return text


def _git_env() -> dict:
    env = dict(os.environ)
    # Fail instead of hanging on a credential prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
