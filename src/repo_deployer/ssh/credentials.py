"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SSHCredentials:
    """Normalized key-based credential payload from the deployment request."""

    host: str
    username: str
    key_path: str
    port: int = 22
    passphrase: Optional[str] = None
    timeout: int = 10
    strict_host_key_checking: bool = False
    known_hosts_file: Optional[str] = None

    def validate(self) -> None:
        if not self.host:
            raise ValueError("SSH host is empty")
        if not self.username:
            raise ValueError("SSH username is empty")
        if not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")

    @property
    def expanded_key_path(self) -> str:
        return os.path.expanduser(self.key_path)

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}"

    def ssh_options(self) -> list[str]:
        """Equivalent ``ssh`` CLI options, used by rsync/scp transport."""
        options = [
            "-i",
            self.expanded_key_path,
            "-o",
            f"Port={self.port}",
            "-o",
            f"ConnectTimeout={self.timeout}",
            "-o",
            "BatchMode=yes",
        ]
        if self.strict_host_key_checking:
            options += ["-o", "StrictHostKeyChecking=yes"]
            if self.known_hosts_file:
                options += ["-o", f"UserKnownHostsFile={self.known_hosts_file}"]
        else:
            options += ["-o", "StrictHostKeyChecking=no"]
        return options
