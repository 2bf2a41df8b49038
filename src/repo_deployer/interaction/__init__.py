"""Operator interaction for collecting deployment inputs."""

from .handler import (
    AutoResponseHandler,
    CLIInteractionHandler,
    InputType,
    InteractionRequest,
    InteractionResponse,
    UserInteractionHandler,
)

__all__ = [
    "AutoResponseHandler",
    "CLIInteractionHandler",
    "InputType",
    "InteractionRequest",
    "InteractionResponse",
    "UserInteractionHandler",
]
