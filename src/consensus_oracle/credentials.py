"""Credential resolution for provider calls.

The engine never reads the environment itself; it asks an injected resolver
for the key belonging to a ``ProviderSpec``. A resolver returns ``None`` when
it has nothing for that provider.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping

from consensus_oracle.config import OracleSettings
from consensus_oracle.models import ProviderSpec


class CredentialResolver(ABC):
    @abstractmethod
    def resolve(self, spec: ProviderSpec) -> str | None:
        """Return the API key for ``spec`` or None when unknown."""


class EnvCredentialResolver(CredentialResolver):
    """Look up keys in the process environment, then in settings.

    Order: the variable named by ``spec.credential_ref``, then
    ``<PROVIDER>_API_KEY``, then the ``<provider>_api_key`` settings field
    (which also covers values read from ``.env``).
    """

    def __init__(
        self,
        settings: OracleSettings | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._environ = environ if environ is not None else os.environ

    def resolve(self, spec: ProviderSpec) -> str | None:
        candidates = []
        if spec.credential_ref:
            candidates.append(spec.credential_ref)
        candidates.append(f"{spec.name.upper()}_API_KEY")
        for var in candidates:
            value = self._environ.get(var, "").strip()
            if value:
                return value
        if self._settings is not None:
            value = self._settings.api_key_for(spec.name).strip()
            if value:
                return value
        return None


class InlineCredentialResolver(CredentialResolver):
    """Per-request keys supplied by the caller, keyed by provider name."""

    def __init__(
        self,
        credentials: Mapping[str, str],
        fallback: CredentialResolver | None = None,
    ) -> None:
        self._credentials = {
            name.lower(): key.strip() for name, key in credentials.items() if key and key.strip()
        }
        self._fallback = fallback

    def resolve(self, spec: ProviderSpec) -> str | None:
        key = self._credentials.get(spec.name.lower())
        if key:
            return key
        if self._fallback is not None:
            return self._fallback.resolve(spec)
        return None


__all__ = ["CredentialResolver", "EnvCredentialResolver", "InlineCredentialResolver"]
