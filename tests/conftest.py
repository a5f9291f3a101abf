"""Shared test fixtures.

asyncio_mode = "auto" is set in pyproject.toml, so no @pytest.mark.asyncio needed.
"""

from __future__ import annotations

from typing import Any

import pytest

from consensus_oracle.config import OracleSettings
from consensus_oracle.consensus import ConsensusEngine, FixedThreshold
from consensus_oracle.models import EvaluationQuestion
from helpers import ROSTER, CallLog, FakeCredentials, Script, scripted_registry

_PROVIDER_ENV = ("OPENAI_API_KEY", "DEEPSEEK_API_KEY", "GEMINI_API_KEY", "ORACLE_PROVIDERS")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep real provider keys and roster overrides out of the tests."""
    for var in _PROVIDER_ENV:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def settings() -> OracleSettings:
    return OracleSettings(_env_file=None)


@pytest.fixture
def question() -> EvaluationQuestion:
    return EvaluationQuestion(
        question="Will BTC close above $100k on Dec 31?",
        option_a="Yes",
        option_b="No",
    )


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
async def make_engine(settings: OracleSettings, call_log: CallLog):
    """Factory for engines wired to scripted providers.

    Defaults: full three-provider roster, fixed threshold of 2 votes,
    floor 0.7, fake credentials for everyone.
    """
    engines: list[ConsensusEngine] = []

    def _make(scripts: dict[str, Script], **kwargs: Any) -> ConsensusEngine:
        kwargs.setdefault("threshold", FixedThreshold(2))
        kwargs.setdefault("credentials", FakeCredentials())
        kwargs.setdefault("settings", settings)
        roster = kwargs.pop("roster", ROSTER)
        engine = ConsensusEngine(
            roster,
            registry=scripted_registry(scripts, call_log),
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.aclose()
