"""Human-facing views of a consensus result."""

from __future__ import annotations

from dataclasses import dataclass

from consensus_oracle.models import ConsensusResult, EvaluationQuestion

STRONG_CONSENSUS_CONFIDENCE = 0.8


@dataclass(frozen=True)
class ConsensusAssessment:
    """Quality grade of a consensus result."""

    score: float
    quality: str  # "high" | "medium"
    reasoning: str

    def to_dict(self) -> dict[str, object]:
        return {"score": self.score, "quality": self.quality, "reasoning": self.reasoning}


def assess_consensus(result: ConsensusResult) -> ConsensusAssessment:
    """Grade a result.

    Strong consensus means confidence above 0.8. Quality is ``high`` only when
    the consensus is strong, at least two providers contributed and at least
    one vote was cast; otherwise ``medium``.
    """
    strong = result.confidence > STRONG_CONSENSUS_CONFIDENCE
    multiple_providers = len(result.providers) >= 2
    any_votes = result.votes.option_a > 0 or result.votes.option_b > 0

    quality = "high" if strong and multiple_providers and any_votes else "medium"
    reasoning = (
        f"Consensus evaluation: confidence={result.confidence:.2f}, "
        f"providers={len(result.providers)}, "
        f"votes=A:{result.votes.option_a}/B:{result.votes.option_b}"
    )
    return ConsensusAssessment(score=0.9 if strong else 0.7, quality=quality, reasoning=reasoning)


def _outcome(result: ConsensusResult) -> str:
    if result.option_a_true and result.option_b_true:
        return "Both options"
    if result.option_a_true:
        return "Option A"
    if result.option_b_true:
        return "Option B"
    return "Neither option"


def format_consensus_summary(question: EvaluationQuestion, result: ConsensusResult) -> str:
    lines = [
        "AI Consensus Result:",
        "",
        f"Question: {question.question}",
        f"Result: {_outcome(result)} more likely",
        f"Confidence: {round(result.confidence * 100)}%",
        f"Providers: {', '.join(result.providers)}",
        f"Votes: A={result.votes.option_a}, B={result.votes.option_b}",
        "",
        f"Reasoning: {result.reasoning}",
    ]
    return "\n".join(lines)
