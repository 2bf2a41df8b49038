"""Pipeline stages, in the order a deploy runs them."""

from .base import RemoteStage, Stage
from .resolver import InputResolverStage
from .preflight import LocalPreflightStage
from .source import SourceSyncStage
from .connectivity import ConnectivityStage
from .provisioner import ProvisionStage
from .transport import TransferStage
from .deployer import RemoteDeployStage
from .proxy import ProxyStage
from .validator import ValidationStage
from .teardown import TeardownReport, TeardownStage

__all__ = [
    "Stage",
    "RemoteStage",
    "InputResolverStage",
    "LocalPreflightStage",
    "SourceSyncStage",
    "ConnectivityStage",
    "ProvisionStage",
    "TransferStage",
    "RemoteDeployStage",
    "ProxyStage",
    "ValidationStage",
    "TeardownReport",
    "TeardownStage",
]
