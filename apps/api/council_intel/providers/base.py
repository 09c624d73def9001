from __future__ import annotations

import abc


class Provider(abc.ABC):
    """
    Base class for all providers.
    Every concrete provider must declare the upstream family it talks to ('gemini' or 'openai').
    """

    @property
    @abc.abstractmethod
    def provider_family(self) -> str:
        """The upstream family this provider belongs to."""
        pass

    def close(self) -> None:
        """Releases any held HTTP clients."""
        return None
