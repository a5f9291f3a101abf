"""Consensus: provider fan-out, vote tallying and reporting."""

from .engine import ConsensusEngine
from .reporting import ConsensusAssessment, assess_consensus, format_consensus_summary
from .tally import (
    FixedThreshold,
    MajorityThreshold,
    ThresholdPolicy,
    Vote,
    cast_vote,
    reduce_verdicts,
    tally_votes,
)

__all__ = [
    "ConsensusAssessment",
    "ConsensusEngine",
    "FixedThreshold",
    "MajorityThreshold",
    "ThresholdPolicy",
    "Vote",
    "assess_consensus",
    "cast_vote",
    "format_consensus_summary",
    "reduce_verdicts",
    "tally_votes",
]
