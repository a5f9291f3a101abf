"""Provider adapters for the consensus oracle.

Available providers (all return raw response text):
- OpenAIProvider: OpenAI chat completions (default model gpt-4)
- DeepSeekProvider: DeepSeek chat completions (default model deepseek-chat)
- GeminiProvider: Google Gemini generateContent (default model gemini-1.5-flash)
"""

from .base import SYSTEM_PROMPT, OracleProvider, build_user_prompt
from .gemini_provider import GeminiProvider
from .openai_provider import DeepSeekProvider, OpenAICompatibleProvider, OpenAIProvider
from .registry import ProviderFactory, ProviderRegistry, default_registry

__all__ = [
    "DeepSeekProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OracleProvider",
    "ProviderFactory",
    "ProviderRegistry",
    "SYSTEM_PROMPT",
    "build_user_prompt",
    "default_registry",
]
