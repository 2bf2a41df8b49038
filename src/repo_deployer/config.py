"""Configuration loading utilities for repo-deployer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")


@dataclass
class DeploymentConfig:
    """Settings related to a deployment run."""

    workspace_root: str = ".repo-deployer/workspace"  # local working copies
    log_dir: str = "logs"
    default_branch: str = "main"
    interactive: bool = True


@dataclass
class SSHConfig:
    """Remote shell settings."""

    port: int = 22
    connect_timeout: int = 10
    strict_host_key_checking: bool = False
    known_hosts_file: Optional[str] = None


@dataclass
class TransferConfig:
    """Settings for copying the working copy to the remote host."""

    prefer_rsync: bool = True
    exclude: List[str] = field(default_factory=list)


@dataclass
class ProvisioningConfig:
    """Remote runtime installation settings."""

    docker_install_url: str = "https://get.docker.com"
    debian_prerequisites: List[str] = field(
        default_factory=lambda: [
            "apt-transport-https",
            "ca-certificates",
            "curl",
            "gnupg",
            "lsb-release",
            "rsync",
        ]
    )
    redhat_prerequisites: List[str] = field(
        default_factory=lambda: ["yum-utils", "device-mapper-persistent-data", "lvm2", "curl", "rsync"]
    )
    add_user_to_docker_group: bool = True


NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
NGINX_CONF_D = "/etc/nginx/conf.d"


@dataclass
class ProxyConfig:
    """Reverse proxy (nginx) layout on the remote host."""

    available_dir: str = NGINX_SITES_AVAILABLE
    enabled_dir: str = NGINX_SITES_ENABLED
    listen_port: int = 80
    service: str = "nginx"
    disable_default_site: bool = True

    @property
    def links_rules(self) -> bool:
        """False when rules are written straight into the directory nginx includes."""
        return self.available_dir != self.enabled_dir

    def with_conf_d(self) -> "ProxyConfig":
        """The RedHat package layout, unless custom directories were configured."""
        if (self.available_dir, self.enabled_dir) != (NGINX_SITES_AVAILABLE, NGINX_SITES_ENABLED):
            return self
        return replace(self, available_dir=NGINX_CONF_D, enabled_dir=NGINX_CONF_D)


@dataclass
class ValidationConfig:
    """Post-deploy probe settings."""

    probe_timeout: int = 5


@dataclass
class AppConfig:
    """Top-level configuration."""

    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    provisioning: ProvisioningConfig = field(default_factory=ProvisioningConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str, factory):
            raw = payload.get(name, {}) or {}
            # Keys starting with "_" are comments
            raw = {k: v for k, v in raw.items() if not k.startswith("_")}
            return factory(**{**factory().__dict__, **raw})

        return cls(
            deployment=section("deployment", DeploymentConfig),
            ssh=section("ssh", SSHConfig),
            transfer=section("transfer", TransferConfig),
            provisioning=section("provisioning", ProvisioningConfig),
            proxy=section("proxy", ProxyConfig),
            validation=section("validation", ValidationConfig),
        )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Falls back to built-in defaults when no file is given and the default file
    does not exist. Environment variables take priority over file values:
    - REPO_DEPLOYER_WORKSPACE: local workspace root for working copies
    - REPO_DEPLOYER_LOG_DIR: directory for run logs
    - REPO_DEPLOYER_SSH_PORT: SSH port
    - REPO_DEPLOYER_SSH_TIMEOUT: SSH connection timeout in seconds
    - REPO_DEPLOYER_STRICT_HOST_KEYS: reject unknown host keys when truthy
    """
    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            config = AppConfig.from_dict(json.load(handle))
    else:
        config = AppConfig()

    env_workspace = os.getenv("REPO_DEPLOYER_WORKSPACE")
    if env_workspace:
        config.deployment.workspace_root = env_workspace

    env_log_dir = os.getenv("REPO_DEPLOYER_LOG_DIR")
    if env_log_dir:
        config.deployment.log_dir = env_log_dir

    env_port = os.getenv("REPO_DEPLOYER_SSH_PORT")
    if env_port:
        config.ssh.port = int(env_port)

    env_timeout = os.getenv("REPO_DEPLOYER_SSH_TIMEOUT")
    if env_timeout:
        config.ssh.connect_timeout = int(env_timeout)

    env_strict = os.getenv("REPO_DEPLOYER_STRICT_HOST_KEYS")
    if env_strict:
        config.ssh.strict_host_key_checking = _parse_bool(env_strict)

    return config
