"""Name → adapter factory lookup.

A factory is any callable ``(model, *, http_client, timeout) -> OracleProvider``;
provider classes satisfy this directly. Adding a provider means registering a
factory, the consensus engine never changes.
"""

from __future__ import annotations

from typing import Protocol

import httpx

from consensus_oracle.errors import UnknownProvider

from .base import OracleProvider
from .gemini_provider import GeminiProvider
from .openai_provider import DeepSeekProvider, OpenAIProvider


class ProviderFactory(Protocol):
    def __call__(
        self,
        model: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> OracleProvider: ...


class ProviderRegistry:
    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name.lower()] = factory

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._factories

    def names(self) -> list[str]:
        return list(self._factories)

    def create(
        self,
        name: str,
        model: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> OracleProvider:
        """Instantiate the adapter registered under ``name``.

        Raises:
            UnknownProvider: nothing is registered under ``name``.
        """
        factory = self._factories.get(name.lower())
        if factory is None:
            raise UnknownProvider(name)
        return factory(model, http_client=http_client, timeout=timeout)


def default_registry() -> ProviderRegistry:
    """Registry with the built-in openai, deepseek and gemini adapters."""
    registry = ProviderRegistry()
    registry.register("openai", OpenAIProvider)
    registry.register("deepseek", DeepSeekProvider)
    registry.register("gemini", GeminiProvider)
    return registry
