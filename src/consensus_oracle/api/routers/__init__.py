"""API routers package."""

from consensus_oracle.api.routers import oracle

__all__ = ["oracle"]
