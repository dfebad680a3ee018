"""Exceptions raised by the experiment engine."""
from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a required collaborator is missing at start-up."""


__all__ = ["ConfigurationError"]
