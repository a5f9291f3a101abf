"""Pydantic schemas for API requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from consensus_oracle.models import ConsensusResult, ProviderAttempt


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Presence is checked by the route so a missing field reports all gaps at once
    question: str | None = Field(default=None, description="Prediction-market question")
    option_a: str | None = Field(default=None, alias="optionA", description="Option A")
    option_b: str | None = Field(default=None, alias="optionB", description="Option B")
    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature override"
    )
    max_tokens: int | None = Field(
        default=None, ge=1, alias="maxTokens", description="Output token limit override"
    )


class ConsensusRequest(_Request):
    """Request model for a multi-provider consensus."""

    providers: list[str] | None = Field(
        default=None, description="Restrict to these provider ids (unknown ids are skipped)"
    )
    credentials: dict[str, str] | None = Field(
        default=None, repr=False, description="Per-request API keys keyed by provider id"
    )
    models: dict[str, str] | None = Field(
        default=None, description="Per-request model overrides keyed by provider id"
    )
    detailed: bool = Field(
        default=False, description="Include every provider attempt, assessment and summary"
    )


class EvaluateRequest(_Request):
    """Request model for a single-provider evaluation."""

    provider: str | None = Field(default=None, description="Provider id, e.g. 'openai'")
    model: str | None = Field(default=None, description="Model override")
    api_key: str | None = Field(default=None, alias="apiKey", repr=False)


class AssessmentSchema(BaseModel):
    score: float
    quality: str
    reasoning: str


class DetailedConsensusResponse(ConsensusResult):
    """Consensus result with the full diagnostic record."""

    attempts: tuple[ProviderAttempt, ...]
    required_votes: int = Field(alias="requiredVotes")
    threshold: str
    assessment: AssessmentSchema
    summary: str


class ErrorResponse(BaseModel):
    error: str
    detail: str
    attempts: list[dict[str, Any]] | None = None
