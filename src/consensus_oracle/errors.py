"""Oracle error taxonomy.

Every error carries a ``kind`` that is used verbatim on the wire:

    {"error": "<kind>", "detail": "<human readable text>"}

Provider-level errors (``ProviderUnavailable``, ``MalformedResponse``,
``InvalidSchema``) are absorbed by the consensus engine: the provider simply
does not vote.  Request-level errors (``InvalidInput``, ``MissingCredential``
on the single-provider path, ``NoConsensusPossible``) are surfaced to the
caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from consensus_oracle.models import ProviderAttempt


class OracleError(Exception):
    """Base class for all oracle errors."""

    kind: str = "OracleError"
    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.detail}


class InvalidInput(OracleError):
    """Caller input is missing or malformed. No provider is contacted."""

    kind = "InvalidInput"
    status_code = 400


class UnknownProvider(InvalidInput):
    """A provider identifier has no registered adapter."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class MissingCredential(OracleError):
    """No credential could be resolved for a provider."""

    kind = "MissingCredential"
    status_code = 400

    def __init__(self, provider: str) -> None:
        super().__init__(f"No API key configured for {provider}")
        self.provider = provider


class ProviderUnavailable(OracleError):
    """Network, auth, HTTP status or timeout failure talking to one provider."""

    kind = "ProviderUnavailable"
    status_code = 502

    def __init__(self, provider: str, cause: BaseException | str) -> None:
        reason = str(cause) or type(cause).__name__
        super().__init__(f"{provider} unavailable: {reason}")
        self.provider = provider
        self.cause = cause


class ProviderResponseError(OracleError):
    """Provider answered, but the text cannot be turned into a verdict."""

    status_code = 502


class MalformedResponse(ProviderResponseError):
    """No JSON object could be located or decoded in the provider text."""

    kind = "MalformedResponse"


class InvalidSchema(ProviderResponseError):
    """The JSON object is missing a field or a field has the wrong type."""

    kind = "InvalidSchema"

    def __init__(self, field: str, detail: str | None = None) -> None:
        super().__init__(detail or f"Invalid response structure: field '{field}'")
        self.field = field


class NoConsensusPossible(OracleError):
    """Zero verdicts survived collection and filtering."""

    kind = "NoConsensusPossible"
    status_code = 502

    def __init__(
        self,
        detail: str = "No valid responses received from AI providers",
        attempts: list[ProviderAttempt] | None = None,
    ) -> None:
        super().__init__(detail)
        self.attempts: list[ProviderAttempt] = list(attempts or [])

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["attempts"] = [
            attempt.model_dump(mode="json", by_alias=True) for attempt in self.attempts
        ]
        return payload


__all__ = [
    "InvalidInput",
    "InvalidSchema",
    "MalformedResponse",
    "MissingCredential",
    "NoConsensusPossible",
    "OracleError",
    "ProviderResponseError",
    "ProviderUnavailable",
    "UnknownProvider",
]
