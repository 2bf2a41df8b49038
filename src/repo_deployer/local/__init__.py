"""Local host inspection."""

from .probe import LocalHostFacts, LocalProbe

__all__ = ["LocalHostFacts", "LocalProbe"]
