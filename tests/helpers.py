"""Test doubles: scripted providers, fake credentials, canned verdict text."""

from __future__ import annotations

import asyncio
import functools
import json
from dataclasses import dataclass, field
from typing import Any

from consensus_oracle.credentials import CredentialResolver
from consensus_oracle.models import (
    EvaluationOptions,
    EvaluationQuestion,
    ProviderSpec,
)
from consensus_oracle.providers import OracleProvider, ProviderRegistry

ROSTER = [
    ProviderSpec(name="openai", model="gpt-4"),
    ProviderSpec(name="deepseek", model="deepseek-chat"),
    ProviderSpec(name="gemini", model="gemini-1.5-flash"),
]


def verdict_json(
    a: bool,
    b: bool,
    confidence: float,
    reasoning: str = "because",
) -> str:
    """Provider text wrapping a verdict object in a bit of prose."""
    body = json.dumps(
        {"optionATrue": a, "optionBTrue": b, "confidence": confidence, "reasoning": reasoning}
    )
    return f"Here is my assessment:\n{body}\n"


@dataclass
class Script:
    """What a scripted provider does when called."""

    text: str = ""
    error: BaseException | None = None
    delay: float = 0.0


@dataclass
class CallLog:
    calls: list[tuple[str, str | None, EvaluationOptions]] = field(default_factory=list)

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]


class ScriptedProvider(OracleProvider):
    """Returns canned text instead of calling a real service."""

    default_model = "scripted-1"

    def __init__(
        self,
        name: str,
        script: Script,
        log: CallLog,
        model: str | None = None,
        *,
        http_client: Any = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(model, http_client=http_client, timeout=timeout)
        self.provider_name = name
        self._script = script
        self._log = log

    async def _request(
        self,
        question: EvaluationQuestion,
        credential: str,
        options: EvaluationOptions,
    ) -> str:
        self._log.calls.append((self.provider_name, credential, options))
        if self._script.delay:
            await asyncio.sleep(self._script.delay)
        if self._script.error is not None:
            raise self._script.error
        return self._script.text


def scripted_registry(scripts: dict[str, Script], log: CallLog | None = None) -> ProviderRegistry:
    log = log if log is not None else CallLog()
    registry = ProviderRegistry()
    for name, script in scripts.items():
        registry.register(name, functools.partial(ScriptedProvider, name, script, log))
    return registry


class FakeCredentials(CredentialResolver):
    """``<name>-key`` for every provider except those listed as missing."""

    def __init__(self, missing: set[str] | None = None) -> None:
        self.missing = missing or set()

    def resolve(self, spec: ProviderSpec) -> str | None:
        if spec.name in self.missing:
            return None
        return f"{spec.name}-key"


