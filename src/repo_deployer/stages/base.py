"""Common stage interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..config import ProxyConfig
from ..models import RemoteApplicationState
from ..orchestrator.models import PipelineContext
from ..ssh import REDHAT, RemoteProbe, SSHSession


class Stage(ABC):
    """One step of the pipeline.

    ``run`` returns a short success message or raises a ``DeployerError``.
    """

    stage_id: str = ""
    title: str = ""

    @abstractmethod
    def run(self, ctx: PipelineContext) -> str:
        """Execute the stage against ``ctx``."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.stage_id}>"


class RemoteStage(Stage):
    """A stage that talks to the target host through the remote probe."""

    def __init__(self, probe: Optional[RemoteProbe] = None) -> None:
        self.probe = probe or RemoteProbe()

    def proxy_layout(self, ctx: PipelineContext) -> ProxyConfig:
        """nginx directories for the connected host.

        RedHat-family nginx only includes ``conf.d``, so rules go there directly.
        """
        facts = ctx.host_facts
        if facts is not None and facts.package_family == REDHAT:
            return ctx.config.proxy.with_conf_d()
        return ctx.config.proxy

    def query_state(self, ctx: PipelineContext, session: SSHSession) -> RemoteApplicationState:
        request = ctx.require_request()
        proxy = self.proxy_layout(ctx)
        return self.probe.application_state(
            session,
            request.identity,
            remote_dir=request.remote_dir,
            available_dir=proxy.available_dir,
            enabled_dir=proxy.enabled_dir,
        )
