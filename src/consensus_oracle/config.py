"""Configuration management using Pydantic v2."""

import json
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from consensus_oracle.models import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, ProviderSpec

if TYPE_CHECKING:
    from consensus_oracle.consensus.tally import ThresholdPolicy

BUILTIN_PROVIDERS: tuple[str, ...] = ("openai", "deepseek", "gemini")


def parse_list_env(value: Any) -> Any:
    """Parse list values from env (JSON array, comma-separated, or single item)."""
    if value is None:
        return value
    if isinstance(value, str):
        if value.strip() == "":
            return value
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            pass
        items = [item.strip() for item in value.split(",") if item.strip()]
        return items if items else value
    return value


class OracleSettings(BaseSettings):
    """Main configuration for the consensus oracle."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
        env_ignore_empty=True,
    )

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Application environment (development or production)",
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="text",
        description="Log output format: 'text' for console, 'json' for log aggregators",
    )
    debug_mode: bool = Field(default=False, description="Verbose errors and logging")

    # Providers
    oracle_providers: list[str] = Field(
        default_factory=lambda: list(BUILTIN_PROVIDERS),
        description="Providers consulted for consensus, in roster order (JSON array or CSV)",
    )
    openai_model: str = Field(default="gpt-4", description="OpenAI chat model")
    deepseek_model: str = Field(default="deepseek-chat", description="DeepSeek chat model")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model")
    openai_api_key: str = Field(default="", repr=False, description="OpenAI API key")
    deepseek_api_key: str = Field(default="", repr=False, description="DeepSeek API key")
    gemini_api_key: str = Field(default="", repr=False, description="Gemini API key")

    # Consensus
    min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Verdicts below this confidence are discarded before tallying",
    )
    consensus_threshold_mode: Literal["majority", "fixed"] = Field(
        default="majority",
        description="'majority' = ceil(accepted/2) votes, 'fixed' = consensus_fixed_votes",
    )
    consensus_fixed_votes: int = Field(
        default=2, ge=1, description="Votes required when consensus_threshold_mode=fixed"
    )
    provider_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-provider call timeout"
    )
    default_temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1)

    # API gateway
    api_auth_enabled: bool = Field(
        default=False, description="Require an API key on non-public endpoints"
    )
    api_auth_key: str = Field(default="", repr=False, description="API key expected from clients")
    rate_limit: str = Field(
        default="100/15 minutes", description="Per-client rate limit (slowapi/limits syntax)"
    )
    cors_allowed_origins: list[str] = Field(
        default_factory=list, description="Allowed CORS origins in production"
    )
    host: str = Field(default="0.0.0.0", description="Bind address for `serve`")
    port: int = Field(default=3000, gt=0, le=65535, description="Bind port for `serve`")

    @field_validator("oracle_providers", mode="before")
    @classmethod
    def parse_oracle_providers(cls, v: Any) -> Any:
        if v is None or v == "":
            return list(BUILTIN_PROVIDERS)
        return parse_list_env(v)

    @field_validator("oracle_providers")
    @classmethod
    def validate_oracle_providers(cls, v: list[str]) -> list[str]:
        names: list[str] = []
        for raw in v:
            name = raw.strip().lower()
            if name not in BUILTIN_PROVIDERS:
                raise ValueError(
                    f"Unknown provider '{raw}', expected one of {', '.join(BUILTIN_PROVIDERS)}"
                )
            if name not in names:
                names.append(name)
        if not names:
            raise ValueError("At least one provider must be configured")
        return names

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_allowed_origins(cls, v: Any) -> Any:
        if v is None or v == "":
            return []
        return parse_list_env(v)

    def model_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_model")

    def api_key_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_api_key", "")

    def roster(self) -> list[ProviderSpec]:
        """Configured providers as ``ProviderSpec`` entries, in roster order."""
        return [ProviderSpec(name=name, model=self.model_for(name)) for name in self.oracle_providers]

    def threshold_policy(self) -> "ThresholdPolicy":
        from consensus_oracle.consensus.tally import FixedThreshold, MajorityThreshold

        if self.consensus_threshold_mode == "fixed":
            return FixedThreshold(self.consensus_fixed_votes)
        return MajorityThreshold()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance
settings = OracleSettings()
