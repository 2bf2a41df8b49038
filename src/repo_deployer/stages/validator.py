"""Deployment Validator."""

from __future__ import annotations

from typing import Callable, Optional

import requests

from ..errors import ValidationError
from ..orchestrator.models import PipelineContext
from ..utils.logging import get_logger, log_success
from .base import RemoteStage

logger = get_logger(__name__)


class ValidationStage(RemoteStage):
    """Hard checks: docker active and a healthy project container.

    The loopback and public HTTP probes only warn; firewalls and slow
    application start-up make them unreliable as a pass/fail signal.
    """

    stage_id = "validate"
    title = "Validate deployment"

    def __init__(self, probe=None, *, http_get: Optional[Callable[..., requests.Response]] = None) -> None:
        super().__init__(probe)
        self.http_get = http_get or requests.get

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        timeout = ctx.config.validation.probe_timeout

        with ctx.open_session() as session:
            if not self.probe.service_active(session, "docker"):
                raise ValidationError(f"docker is not active on {request.host}")

            state = self.query_state(ctx, session)
            healthy = [c for c in state.containers if c.healthy]
            if not healthy:
                listed = ", ".join(f"{c.name} ({c.status})" for c in state.containers) or "none"
                raise ValidationError(f"No healthy container for {request.identity}; found: {listed}")
            for container in healthy:
                logger.info("  %s: %s", container.name, container.status)

            loopback = session.run(
                f"curl -sS -o /dev/null -w '%{{http_code}}' --max-time {timeout} http://127.0.0.1:{request.app_port}"
            )
            if loopback.ok:
                logger.info("Loopback probe on port %d answered HTTP %s", request.app_port, loopback.stdout)
            else:
                self._warn(ctx, f"Loopback probe on port {request.app_port} failed: {loopback.detail or 'no answer'}")

        public_url = f"http://{request.host}"
        if self.probe_public(public_url, timeout):
            log_success(logger, "Application reachable via %s", public_url)
        else:
            self._warn(ctx, f"{public_url} not reachable from here (firewall or application start-up time?)")

        return f"{len(healthy)} healthy container(s) for {request.identity}"

    def probe_public(self, url: str, timeout: int) -> bool:
        try:
            response = self.http_get(url, timeout=timeout)
        except requests.RequestException as exc:
            logger.debug("HTTP probe %s: %s", url, exc)
            return False
        logger.debug("HTTP probe %s: %s", url, response.status_code)
        return response.status_code < 500

    def _warn(self, ctx: PipelineContext, message: str) -> None:
        logger.warning(message)
        ctx.warnings.append(message)
