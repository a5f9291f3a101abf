"""Oracle API Router - consensus and single-provider evaluation endpoints."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Request

from consensus_oracle import __version__
from consensus_oracle.api.auth import verify_auth
from consensus_oracle.api.rate_limit import rate_limited
from consensus_oracle.api.schemas import (
    AssessmentSchema,
    ConsensusRequest,
    DetailedConsensusResponse,
    ErrorResponse,
    EvaluateRequest,
)
from consensus_oracle.consensus import (
    ConsensusEngine,
    assess_consensus,
    format_consensus_summary,
)
from consensus_oracle.credentials import InlineCredentialResolver
from consensus_oracle.errors import InvalidInput
from consensus_oracle.logging import get_logger
from consensus_oracle.models import EvaluationOptions, build_question

logger = get_logger(__name__)

router = APIRouter(prefix="/oracle", tags=["oracle"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input or missing credential"},
    502: {"model": ErrorResponse, "description": "Provider failure or no consensus"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
}


def get_engine(request: Request) -> ConsensusEngine:
    return request.app.state.engine


def _options(engine: ConsensusEngine, body: ConsensusRequest | EvaluateRequest) -> EvaluationOptions:
    defaults = engine.default_options
    return EvaluationOptions(
        temperature=defaults.temperature if body.temperature is None else body.temperature,
        max_tokens=defaults.max_tokens if body.max_tokens is None else body.max_tokens,
    )


@router.get("/health")
@rate_limited
async def health(request: Request) -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
    }


@router.get("/providers")
@rate_limited
async def list_providers(
    request: Request,
    engine: ConsensusEngine = Depends(get_engine),
    authenticated: bool = Depends(verify_auth),
) -> dict[str, Any]:
    """Configured roster, confidence floor and threshold policy."""
    return engine.describe()


@router.post("/consensus", responses=_ERROR_RESPONSES)
@rate_limited
async def consensus(
    request: Request,
    body: ConsensusRequest,
    engine: ConsensusEngine = Depends(get_engine),
    authenticated: bool = Depends(verify_auth),
) -> dict[str, Any]:
    """Ask every selected provider and return the consensus verdict.

    With ``detailed=true`` the response also carries every provider attempt,
    the required vote count, a quality assessment and a text summary.
    """
    question = build_question(body.question, body.option_a, body.option_b)
    options = _options(engine, body)
    resolver = None
    if body.credentials:
        resolver = InlineCredentialResolver(body.credentials, fallback=engine.credentials)

    if not body.detailed:
        result = await engine.evaluate(question, body.providers, options, resolver, body.models)
        return result.model_dump(mode="json", by_alias=True)

    report = await engine.evaluate_detailed(
        question, body.providers, options, resolver, body.models
    )
    assessment = assess_consensus(report.result)
    detailed = DetailedConsensusResponse(
        **report.result.model_dump(),
        attempts=report.attempts,
        required_votes=report.required_votes,
        threshold=report.threshold,
        assessment=AssessmentSchema(**assessment.to_dict()),
        summary=format_consensus_summary(question, report.result),
    )
    return detailed.model_dump(mode="json", by_alias=True)


@router.post("/evaluate", responses=_ERROR_RESPONSES)
@rate_limited
async def evaluate(
    request: Request,
    body: EvaluateRequest,
    engine: ConsensusEngine = Depends(get_engine),
    authenticated: bool = Depends(verify_auth),
) -> dict[str, Any]:
    """Ask a single provider. Its errors are returned as-is."""
    if not body.provider or not body.provider.strip():
        raise InvalidInput("Missing required fields: provider")
    question = build_question(body.question, body.option_a, body.option_b)
    verdict = await engine.evaluate_single(
        body.provider,
        question,
        model=body.model,
        credential=body.api_key,
        options=_options(engine, body),
    )
    return verdict.model_dump(mode="json", by_alias=True)
