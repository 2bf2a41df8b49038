"""Remote Connectivity Checker."""

from __future__ import annotations

from ..errors import ConnectivityError
from ..orchestrator.models import PipelineContext
from ..utils.logging import get_logger
from .base import RemoteStage

logger = get_logger(__name__)

_HINTS = {
    ConnectivityError.AUTH: "check the username and that the public key is in ~/.ssh/authorized_keys",
    ConnectivityError.TIMEOUT: "check the host address and that the SSH port is open in the firewall",
    ConnectivityError.UNREACHABLE: "check the host address and that sshd is running",
}


class ConnectivityStage(RemoteStage):
    """Opens a session and runs a trivial command. Never retried."""

    stage_id = "connectivity"
    title = "Check remote connectivity"

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        session = ctx.open_session()
        try:
            try:
                session.connect()
            except ConnectivityError as exc:
                logger.error("Hint: %s", _HINTS.get(exc.reason, _HINTS[ConnectivityError.UNREACHABLE]))
                raise
            result = session.run("echo ok")
            if not result.ok or result.stdout != "ok":
                raise ConnectivityError(
                    f"Liveness command failed on {request.target}: {result.detail or 'no output'}"
                )
            ctx.host_facts = self.probe.collect(session)
        finally:
            session.close()

        facts = ctx.host_facts
        logger.info("Remote host %s: %s", facts.hostname, facts.os_release)
        return f"connected to {request.target} ({facts.os_release})"
