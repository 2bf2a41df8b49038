"""User interaction handlers for collecting deployment inputs."""

from __future__ import annotations

import getpass
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of user input expected."""
    TEXT = "text"
    SECRET = "secret"  # never echoed


@dataclass
class InteractionRequest:
    """A request to the operator for one input value."""

    key: str
    question: str
    input_type: InputType = InputType.TEXT
    default: Optional[str] = None
    required: bool = True

    def format_prompt(self) -> str:
        prompt = self.question
        if self.default:
            prompt += f" [{self.default}]"
        elif not self.required:
            prompt += " (optional)"
        return prompt + ": "


@dataclass
class InteractionResponse:
    """Operator's answer to an interaction request."""

    value: str
    cancelled: bool = False

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for handling user interactions."""

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present a request to the operator and return the answer."""


class CLIInteractionHandler(UserInteractionHandler):
    """Reads answers from the terminal; secrets are read without echo."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        secret_func: Callable[[str], str] = getpass.getpass,
    ) -> None:
        self._input = input_func
        self._secret = secret_func

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        try:
            if request.input_type == InputType.SECRET:
                value = self._secret(request.format_prompt())
            else:
                value = self._input(request.format_prompt()).strip()
        except EOFError:
            return InteractionResponse.cancelled_response()
        if not value and request.default:
            value = request.default
        return InteractionResponse(value=value)


class AutoResponseHandler(UserInteractionHandler):
    """Non-interactive handler answering from a fixed mapping, then defaults."""

    def __init__(self, responses: Optional[Dict[str, str]] = None) -> None:
        self.responses = responses or {}
        self.asked: list[str] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.asked.append(request.key)
        if request.key in self.responses:
            return InteractionResponse(value=self.responses[request.key])
        logger.debug("No answer for %s, using default", request.key)
        return InteractionResponse(value=request.default or "")
