"""Vote casting, threshold policies and reduction to a ``ConsensusResult``.

Vote rule per accepted verdict:
  A true, B false  → one vote for A
  B true, A false  → one vote for B
  both / neither   → abstain (still counted in the confidence mean and reasoning)

An option wins when its votes reach the policy threshold. Both options can
win or neither can; the result reports whatever the tally says.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from consensus_oracle.models import ConsensusResult, ProviderVerdict, VoteTally


class Vote(str, Enum):
    OPTION_A = "A"
    OPTION_B = "B"
    ABSTAIN = "abstain"


def cast_vote(verdict: ProviderVerdict) -> Vote:
    if verdict.option_a_true and not verdict.option_b_true:
        return Vote.OPTION_A
    if verdict.option_b_true and not verdict.option_a_true:
        return Vote.OPTION_B
    return Vote.ABSTAIN


class ThresholdPolicy(ABC):
    """Number of votes an option needs, given how many verdicts were accepted."""

    @abstractmethod
    def required_votes(self, accepted: int) -> int: ...

    @abstractmethod
    def describe(self) -> str: ...


@dataclass(frozen=True)
class MajorityThreshold(ThresholdPolicy):
    """``ceil(accepted / 2)``, never below one vote."""

    def required_votes(self, accepted: int) -> int:
        return max(1, math.ceil(accepted / 2))

    def describe(self) -> str:
        return "majority (ceil(accepted/2))"


@dataclass(frozen=True)
class FixedThreshold(ThresholdPolicy):
    """A constant vote count, e.g. 2 for a fixed roster of three providers."""

    votes: int = 2

    def __post_init__(self) -> None:
        if self.votes < 1:
            raise ValueError(f"FixedThreshold needs at least 1 vote, got {self.votes}")

    def required_votes(self, accepted: int) -> int:
        return self.votes

    def describe(self) -> str:
        return f"fixed ({self.votes} votes)"


def tally_votes(verdicts: Sequence[ProviderVerdict]) -> VoteTally:
    votes = [cast_vote(v) for v in verdicts]
    return VoteTally(
        option_a=votes.count(Vote.OPTION_A),
        option_b=votes.count(Vote.OPTION_B),
    )


def reduce_verdicts(
    verdicts: Sequence[ProviderVerdict],
    policy: ThresholdPolicy,
) -> ConsensusResult:
    """Reduce accepted verdicts, already in roster order, to one result.

    Raises:
        ValueError: ``verdicts`` is empty; there is nothing to average.
    """
    if not verdicts:
        raise ValueError("reduce_verdicts() needs at least one verdict")

    tally = tally_votes(verdicts)
    required = policy.required_votes(len(verdicts))
    confidence = sum(v.confidence for v in verdicts) / len(verdicts)

    return ConsensusResult(
        option_a_true=tally.option_a >= required,
        option_b_true=tally.option_b >= required,
        confidence=min(1.0, max(0.0, confidence)),
        reasoning="; ".join(f"{v.provider}: {v.reasoning}" for v in verdicts),
        providers=tuple(v.provider for v in verdicts),
        votes=tally,
    )
