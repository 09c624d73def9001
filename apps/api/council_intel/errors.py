from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A required credential or connection string is missing."""


class UpstreamError(RuntimeError):
    """An embedding, model or vector-store call failed or returned malformed data."""
