"""Consensus Oracle: multi-LLM verdicts for binary prediction-market questions."""

__all__ = ["ConsensusEngine", "OracleSettings", "__version__"]
__version__ = "1.0.0"


def __getattr__(name: str):
    if name == "ConsensusEngine":
        from .consensus.engine import ConsensusEngine

        return ConsensusEngine
    if name == "OracleSettings":
        from .config import OracleSettings

        return OracleSettings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
