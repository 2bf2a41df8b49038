"""Proxy Configurator: one nginx site per project, validated before activation."""

from __future__ import annotations

import base64
import shlex
from textwrap import dedent

from ..errors import ProxyConfigError, ProxyReloadError
from ..orchestrator.models import PipelineContext
from ..ssh import RemoteScript, SSHSession
from ..utils.logging import get_logger
from .base import RemoteStage

logger = get_logger(__name__)


def render_site(app_port: int, listen_port: int = 80) -> str:
    return dedent(f"""
        server {{
            listen {listen_port};
            server_name _;

            location / {{
                proxy_pass http://127.0.0.1:{app_port};
                proxy_set_header Host $host;
                proxy_set_header X-Real-IP $remote_addr;
                proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                proxy_set_header X-Forwarded-Proto $scheme;
            }}
        }}
    """).strip() + "\n"


def render_test_wrapper(candidate: str) -> str:
    """Minimal main config that loads only ``candidate``, for ``nginx -t -c``."""
    return f"events {{}}\nhttp {{\n    include {candidate};\n}}\n"


def write_file_command(path: str, content: str) -> str:
    """Uses base64 encoding to avoid heredoc and escaping issues."""
    encoded = base64.b64encode(content.encode()).decode()
    return f"echo '{encoded}' | base64 -d | sudo tee {shlex.quote(path)} >/dev/null"


class ProxyStage(RemoteStage):
    """Writes, checks, links and reloads the project's nginx rule.

    The candidate is syntax-checked on its own before it replaces anything,
    and the full configuration is checked again after linking. A failure at
    either point leaves the previously serving configuration in place.
    """

    stage_id = "proxy"
    title = "Configure reverse proxy"

    def run(self, ctx: PipelineContext) -> str:
        request = ctx.require_request()
        identity = request.identity
        proxy = self.proxy_layout(ctx)
        available = f"{proxy.available_dir}/{identity.proxy_rule_name}"
        enabled = f"{proxy.enabled_dir}/{identity.proxy_rule_name}"
        candidate = f"/tmp/{identity.docker_name}.nginx.conf"
        wrapper = f"/tmp/{identity.docker_name}.nginx-test.conf"
        backup = f"/tmp/{identity.docker_name}.nginx.previous"

        with ctx.open_session() as session:
            before = self.query_state(ctx, session)

            check = RemoteScript(name="proxy-check")
            site_dirs = dict.fromkeys((proxy.available_dir, proxy.enabled_dir))
            check.advisory(
                "sudo mkdir -p " + " ".join(shlex.quote(d) for d in site_dirs),
                "Create nginx site directories",
            )
            check.fatal(write_file_command(candidate, render_site(request.app_port, proxy.listen_port)), "Write candidate rule")
            check.fatal(write_file_command(wrapper, render_test_wrapper(candidate)), "Write test wrapper")
            check.fatal(f"sudo nginx -t -c {shlex.quote(wrapper)}", "Validate candidate rule")
            result = session.run_script(check)
            if not result.ok:
                failed = result.failed_fatal
                self._discard(session, candidate, wrapper)
                raise ProxyConfigError(f"{failed.step.description} failed: {failed.result.detail}")

            install = RemoteScript(name="proxy-install")
            if before.proxy_rule_available:
                install.fatal(f"sudo cp -p {shlex.quote(available)} {shlex.quote(backup)}", "Back up previous rule")
            install.fatal(f"sudo install -m 644 {shlex.quote(candidate)} {shlex.quote(available)}", "Install rule")
            if proxy.links_rules:
                install.fatal(f"sudo ln -sfn {shlex.quote(available)} {shlex.quote(enabled)}", "Enable rule")
            install.fatal("sudo nginx -t", "Validate full configuration")
            result = session.run_script(install)
            self._discard(session, candidate, wrapper)
            if not result.ok:
                failed = result.failed_fatal
                self._restore(session, before.proxy_rule_available, before.proxy_rule_enabled, available, enabled, backup)
                raise ProxyConfigError(f"{failed.step.description} failed: {failed.result.detail}")

            finish = RemoteScript(name="proxy-activate")
            if proxy.disable_default_site and proxy.links_rules:
                default_site = f"{proxy.enabled_dir}/default"
                finish.advisory(f"sudo rm -f {shlex.quote(default_site)}", "Disable default site")
            finish.fatal(f"sudo systemctl reload {shlex.quote(proxy.service)}", "Reload nginx")
            result = session.run_script(finish)
            if not result.ok:
                failed = result.failed_fatal
                raise ProxyReloadError(f"nginx reload failed: {failed.result.detail}")
            session.run(f"sudo rm -f {shlex.quote(backup)}")

        return f"port {proxy.listen_port} -> 127.0.0.1:{request.app_port} via {identity.proxy_rule_name}"

    def _discard(self, session: SSHSession, *paths: str) -> None:
        session.run("sudo rm -f " + " ".join(shlex.quote(p) for p in paths))

    def _restore(
        self,
        session: SSHSession,
        had_available: bool,
        had_enabled: bool,
        available: str,
        enabled: str,
        backup: str,
    ) -> None:
        logger.warning("Restoring previous nginx rule state")
        script = RemoteScript(name="proxy-restore")
        if had_available:
            script.advisory(f"sudo mv -f {shlex.quote(backup)} {shlex.quote(available)}", "Restore previous rule")
        else:
            script.advisory(f"sudo rm -f {shlex.quote(available)}", "Remove new rule")
        if not had_enabled:
            script.advisory(f"sudo rm -f {shlex.quote(enabled)}", "Remove new link")
        session.run_script(script)
