"""Oracle data models.

Python attributes are snake_case; the wire (JSON) names are the camelCase
aliases used by prediction-market clients (``optionA``, ``optionATrue`` ...).
All models are frozen: a verdict or a result is never mutated after creation.
"""

from __future__ import annotations

import math
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from consensus_oracle.errors import InvalidInput

DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 500


class _OracleModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class EvaluationQuestion(_OracleModel):
    """A binary prediction-market question."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    question: str = Field(min_length=1)
    option_a: str = Field(alias="optionA", min_length=1)
    option_b: str = Field(alias="optionB", min_length=1)


def build_question(question: object, option_a: object, option_b: object) -> EvaluationQuestion:
    """Validate raw caller input into an ``EvaluationQuestion``.

    Raises:
        InvalidInput: if any of the three fields is missing or blank.
    """
    supplied = (("question", question), ("optionA", option_a), ("optionB", option_b))
    missing = [name for name, value in supplied if not isinstance(value, str) or not value.strip()]
    if missing:
        raise InvalidInput(f"Missing required fields: {', '.join(missing)}")
    return EvaluationQuestion(question=question, option_a=option_a, option_b=option_b)


class ProviderSpec(_OracleModel):
    """One configured provider: adapter name, model, and where its key lives."""

    name: str = Field(min_length=1)
    model: str = Field(min_length=1)
    credential_ref: str | None = Field(default=None, alias="credentialRef", repr=False)


class EvaluationOptions(_OracleModel):
    """Per-request generation overrides."""

    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1, alias="maxTokens")


class ProviderVerdict(_OracleModel):
    """One provider's structured answer. Confidence is always within [0, 1]."""

    provider: str
    model: str | None = None
    option_a_true: bool = Field(alias="optionATrue")
    option_b_true: bool = Field(alias="optionBTrue")
    confidence: float
    reasoning: str = ""

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        if math.isnan(v):
            return 0.0
        return max(0.0, min(1.0, v))


class VoteTally(_OracleModel):
    option_a: int = Field(default=0, ge=0, alias="optionA")
    option_b: int = Field(default=0, ge=0, alias="optionB")


class ConsensusResult(_OracleModel):
    """The single oracle verdict reduced from all accepted provider verdicts."""

    option_a_true: bool = Field(alias="optionATrue")
    option_b_true: bool = Field(alias="optionBTrue")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    providers: tuple[str, ...]
    votes: VoteTally


class AttemptStatus(str, Enum):
    ACCEPTED = "accepted"
    BELOW_CONFIDENCE_FLOOR = "below_confidence_floor"
    FAILED = "failed"


class ProviderAttempt(_OracleModel):
    """Diagnostic record of one provider call, whatever its outcome."""

    provider: str
    model: str | None = None
    status: AttemptStatus
    verdict: ProviderVerdict | None = None
    error_kind: str | None = Field(default=None, alias="errorKind")
    error: str | None = None


class ConsensusReport(_OracleModel):
    """Consensus result plus every attempt that went into it."""

    result: ConsensusResult
    attempts: tuple[ProviderAttempt, ...]
    required_votes: int = Field(ge=1, alias="requiredVotes")
    threshold: str


__all__ = [
    "AttemptStatus",
    "ConsensusReport",
    "ConsensusResult",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "EvaluationOptions",
    "EvaluationQuestion",
    "ProviderAttempt",
    "ProviderSpec",
    "ProviderVerdict",
    "VoteTally",
    "build_question",
]
