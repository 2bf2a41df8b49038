"""SSH session management built on Paramiko."""

from __future__ import annotations

import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from ..errors import ConnectivityError
from ..utils.logging import get_logger
from .credentials import SSHCredentials
from .script import CommandOutcome, RemoteScript, ScriptResult

logger = get_logger(__name__)

_CHUNK_SIZE = 32768
_POLL_INTERVAL = 0.05


class SSHConnectionError(ConnectivityError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    @property
    def detail(self) -> str:
        return self.stderr or self.stdout


class SSHSession:
    """High-level wrapper around paramiko.SSHClient."""

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        if self._client:
            return
        creds = self.credentials
        client = self._client_factory()
        if creds.strict_host_key_checking:
            client.load_system_host_keys()
            if creds.known_hosts_file:
                client.load_host_keys(creds.known_hosts_file)
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        connect_kwargs = {
            "hostname": creds.host,
            "port": creds.port,
            "username": creds.username,
            "key_filename": creds.expanded_key_path,
            "timeout": creds.timeout,
            "banner_timeout": creds.timeout,
            "auth_timeout": creds.timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if creds.passphrase:
            connect_kwargs["passphrase"] = creds.passphrase
        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as exc:
            client.close()
            raise SSHConnectionError(
                f"Authentication rejected by {creds.target}: {exc}",
                reason=ConnectivityError.AUTH,
            ) from exc
        except socket.timeout as exc:
            client.close()
            raise SSHConnectionError(
                f"Timed out after {creds.timeout}s connecting to {creds.host}:{creds.port}",
                reason=ConnectivityError.TIMEOUT,
            ) from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise SSHConnectionError(
                f"Cannot reach {creds.host}:{creds.port}: {exc}",
                reason=ConnectivityError.UNREACHABLE,
            ) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(self, command: str, *, timeout: Optional[float] = None) -> SSHCommandResult:
        """Execute a command on the remote server and wait for it to finish.

        There is no default bound on execution time; ``timeout`` only applies
        when given explicitly.
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        logger.debug("$ %s", command)
        _, stdout, _ = self._client.exec_command(command, timeout=timeout)
        channel = stdout.channel
        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        start_time = time.monotonic()

        # Both streams are drained while waiting: paramiko only reopens the
        # channel window as data is read, so unread output stalls the command.
        while True:
            has_activity = False
            while channel.recv_ready():
                stdout_chunks.append(channel.recv(_CHUNK_SIZE))
                has_activity = True
            while channel.recv_stderr_ready():
                stderr_chunks.append(channel.recv_stderr(_CHUNK_SIZE))
                has_activity = True
            if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
                break
            if timeout is not None and time.monotonic() - start_time > timeout:
                channel.close()
                return SSHCommandResult(
                    command=command,
                    stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace").strip(),
                    stderr=f"TIMEOUT: Command did not complete within {timeout} seconds.",
                    exit_status=-1,
                )
            if not has_activity:
                time.sleep(_POLL_INTERVAL)

        exit_status = channel.recv_exit_status()
        stdout_text = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr_text = b"".join(stderr_chunks).decode("utf-8", errors="replace")

        result = SSHCommandResult(
            command=command,
            stdout=stdout_text.strip(),
            stderr=stderr_text.strip(),
            exit_status=exit_status,
        )
        if result.stdout:
            logger.debug("  [stdout] %s", result.stdout)
        if result.stderr:
            logger.debug("  [stderr] %s", result.stderr)
        logger.debug("  exit %d", result.exit_status)
        return result

    def run_script(self, script: RemoteScript) -> ScriptResult:
        """Run every command of ``script`` in order, stopping at the first fatal failure."""
        outcome = ScriptResult(script=script)
        for step in script:
            result = self.run(step.command)
            outcome.outcomes.append(CommandOutcome(step=step, result=result))
            if result.ok:
                continue
            if step.fatal:
                logger.error("%s failed (exit %d): %s", step.description, result.exit_status, result.detail)
                break
            logger.warning(
                "%s failed (exit %d, continuing): %s", step.description, result.exit_status, result.detail
            )
        return outcome
