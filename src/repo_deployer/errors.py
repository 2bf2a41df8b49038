"""Error taxonomy for the deployment pipeline."""

from __future__ import annotations

from typing import Optional


class DeployerError(RuntimeError):
    """Base class for every error a pipeline stage can raise."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        self.message = message
        self.stage = stage
        super().__init__(message)


class MissingInputError(DeployerError):
    """A required deployment input is empty after defaults were applied."""

    def __init__(self, fields: list[str], message: Optional[str] = None) -> None:
        self.fields = list(fields)
        super().__init__(message or "Missing required input(s): " + ", ".join(self.fields))


class InvalidInputError(MissingInputError):
    """An input is present but unusable (e.g. a non-numeric port)."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__([field], f"Invalid value for {field}: {reason}")


class PrerequisiteError(DeployerError):
    """A local tool or file the pipeline needs is not available."""

    def __init__(self, dependency: str, hint: str = "") -> None:
        self.dependency = dependency
        message = f"Missing local prerequisite: {dependency}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class SyncError(DeployerError):
    """The local working copy could not be brought to the requested branch."""


class MissingBuildDescriptorError(DeployerError):
    """The working copy has neither a composition descriptor nor a Dockerfile."""


class ConnectivityError(DeployerError):
    """The remote host is unreachable or rejected authentication."""

    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    AUTH = "auth"

    def __init__(self, message: str, *, reason: str = UNREACHABLE) -> None:
        self.reason = reason
        super().__init__(message)


class UnsupportedPlatformError(DeployerError):
    """The remote host uses a package manager family we cannot provision."""


class ProvisioningError(DeployerError):
    """The container runtime is still not active after provisioning."""


class TransferError(DeployerError):
    """Copying the working copy to the remote host failed."""


class RemoteDeployError(DeployerError):
    """No running instance of the project exists after the deploy step."""


class ProxyConfigError(DeployerError):
    """The reverse-proxy configuration did not pass syntax validation."""


class ProxyReloadError(DeployerError):
    """The reverse-proxy daemon could not be reloaded."""


class ValidationError(DeployerError):
    """A mandatory post-deploy check (runtime active, process present) failed."""


class TeardownWarning(DeployerError):
    """A best-effort teardown step failed. Collected and logged, never raised."""


class PipelineInterrupted(DeployerError):
    """The run was interrupted by the operator."""
