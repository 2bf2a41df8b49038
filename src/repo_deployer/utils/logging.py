"""Logging helpers."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

PACKAGE_LOGGER = "repo_deployer"
REDACTED = "***"

_LOGGING_CONFIGURED = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        )
        # Command output is logged at DEBUG for the run file only.
        for handler in logging.getLogger().handlers:
            if handler.level == logging.NOTSET:
                handler.setLevel(logging.INFO)
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)


def log_success(logger: logging.Logger, message: str, *args: object) -> None:
    logger.log(SUCCESS, message, *args)


class RedactingFilter(logging.Filter):
    """Replaces secret values in rendered log messages."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class RunLog:
    """Per-invocation log file: ``<log_dir>/<mode>_<timestamp>.log``.

    Attaches a file handler to the package logger for the lifetime of one run.
    """

    def __init__(self, log_dir: Path, mode: str, run_id: Optional[str] = None) -> None:
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_dir = Path(log_dir)
        self.path = self.log_dir / f"{mode}_{self.run_id}.log"
        self._handler: Optional[logging.FileHandler] = None
        self._filter = RedactingFilter()

    def open(self) -> "RunLog":
        get_logger()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s: %(message)s", "%Y-%m-%dT%H:%M:%S%z")
        )
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(logging.DEBUG)
        package_logger.addHandler(handler)
        self._handler = handler
        # Filters on a logger do not see records from its children; attach to handlers.
        for target in self._handlers():
            target.addFilter(self._filter)
        return self

    def _handlers(self) -> list[logging.Handler]:
        handlers = list(logging.getLogger().handlers)
        if self._handler:
            handlers.append(self._handler)
        return handlers

    def redact(self, *secrets: Optional[str]) -> None:
        """Register values that must never appear in any log output."""
        self._filter.secrets.extend(s for s in secrets if s)

    def close(self) -> None:
        for target in self._handlers():
            target.removeFilter(self._filter)
        if self._handler:
            logging.getLogger(PACKAGE_LOGGER).removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def __enter__(self) -> "RunLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
