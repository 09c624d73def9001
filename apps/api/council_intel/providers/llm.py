from __future__ import annotations

import abc
from typing import Any

from council_intel.providers.base import Provider


class LLMProvider(Provider):
    """
    Interface for the per-stage generation step: prompt text in, raw suggestion items out.
    """

    def ensure_configured(self) -> None:
        """Raises ConfigurationError when the provider cannot make calls at all."""
        return None

    @abc.abstractmethod
    def generate_suggestions(self, prompt: str, options: dict[str, Any] | None = None) -> list[Any]:
        """
        Runs one stage prompt against the model.

        Returns:
            The raw (unvalidated) suggestion items. An empty list means either that the model found
            nothing for this stage or that the response was unusable; neither is an error.

        Raises:
            ConfigurationError: when the provider has no credential or endpoint configured.
        """
        pass
