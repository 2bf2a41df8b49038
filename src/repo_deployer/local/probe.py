"""Local system probe for the tools the pipeline shells out to."""

from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class LocalHostFacts:
    """Facts about the local host system."""

    hostname: str
    os_name: str
    tools: Dict[str, Optional[str]] = field(default_factory=dict)

    def has(self, tool: str) -> bool:
        return bool(self.tools.get(tool))

    @property
    def transfer_tool(self) -> Optional[str]:
        """Preferred file-transfer mechanism available locally."""
        if self.has("rsync"):
            return "rsync"
        if self.has("scp"):
            return "scp"
        return None

    def to_payload(self) -> dict:
        return {
            "hostname": self.hostname,
            "os_name": self.os_name,
            "available_tools": {name: bool(path) for name, path in self.tools.items()},
        }


class LocalProbe:
    """Collects information about the local system."""

    TOOLS = ("git", "ssh", "rsync", "scp")

    def collect(self) -> LocalHostFacts:
        return LocalHostFacts(
            hostname=platform.node(),
            os_name=platform.system(),
            tools={tool: self.which(tool) for tool in self.TOOLS},
        )

    def which(self, tool: str) -> Optional[str]:
        return shutil.which(tool)

    def key_readable(self, key_path: str) -> bool:
        path = os.path.expanduser(key_path)
        return os.path.isfile(path) and os.access(path, os.R_OK)
