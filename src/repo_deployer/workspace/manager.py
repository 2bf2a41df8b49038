"""Workspace management for local working copies."""

from __future__ import annotations

import json
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from ..models import ProjectIdentity


@dataclass
class WorkspaceContext:
    """Where the working copy of one project lives locally."""

    identity: ProjectIdentity
    root: Path
    source_dir: Path
    metadata_file: Path


class WorkspaceManager:
    """Maps each project to a stable working-copy directory under ``root``.

    The directory is reused across runs so repeated syncs fetch instead of
    re-cloning. Metadata is kept beside the working copy, never inside it,
    so it is not transferred to the remote host.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def prepare(self, identity: ProjectIdentity) -> WorkspaceContext:
        self.root.mkdir(parents=True, exist_ok=True)
        metadata_dir = self.root / ".metadata"
        metadata_dir.mkdir(parents=True, exist_ok=True)
        return WorkspaceContext(
            identity=identity,
            root=self.root,
            source_dir=self.root / identity.name,
            metadata_file=metadata_dir / f"{identity.name}.json",
        )

    def cleanup(self, context: WorkspaceContext, *, delete_repo: bool = False) -> None:
        if delete_repo and context.source_dir.exists():
            shutil.rmtree(context.source_dir, ignore_errors=True)
        context.metadata_file.unlink(missing_ok=True)

    def update_metadata(self, context: WorkspaceContext, **fields: object) -> None:
        payload = self.read_metadata(context)
        payload.update(fields)
        payload["updated_at"] = int(time.time())
        context.metadata_file.write_text(
            json.dumps(payload, indent=2),
            encoding="utf-8",
        )

    def read_metadata(self, context: WorkspaceContext) -> dict:
        if context.metadata_file.exists():
            return json.loads(context.metadata_file.read_text(encoding="utf-8"))
        return {}
