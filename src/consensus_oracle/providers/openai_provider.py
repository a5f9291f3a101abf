"""OpenAI-compatible chat-completions adapters (OpenAI, DeepSeek).

Both services speak the same wire protocol, so one adapter built on the
``openai`` SDK covers them; subclasses only change the base URL and default
model. The SDK client is created per call because the API key is per call,
and ``max_retries=0`` keeps it to a single outbound request.
"""

from __future__ import annotations

from typing import Any

import openai

from consensus_oracle.errors import ProviderUnavailable
from consensus_oracle.logging import get_logger
from consensus_oracle.models import EvaluationOptions, EvaluationQuestion

from .base import OracleProvider

logger = get_logger(__name__)

_OPENAI_BASE_URL = "https://api.openai.com/v1"
_DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"


class OpenAICompatibleProvider(OracleProvider):
    base_url: str = _OPENAI_BASE_URL

    def _make_client(self, credential: str) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=credential,
            base_url=self.base_url,
            timeout=self._timeout,
            max_retries=0,
            http_client=self._http_client,
        )

    async def _request(
        self,
        question: EvaluationQuestion,
        credential: str,
        options: EvaluationOptions,
    ) -> str:
        client = self._make_client(credential)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                messages=[
                    {"role": "system", "content": self._build_system_prompt()},
                    {"role": "user", "content": self._build_user_prompt(question)},
                ],
            )
        except openai.APIError as exc:
            raise ProviderUnavailable(self.provider_name, exc) from exc
        finally:
            # A shared transport belongs to the engine; only close our own.
            if self._http_client is None:
                await client.close()
        return self._extract_text(response)

    def _extract_text(self, response: Any) -> str:
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            logger.warning("%s: unexpected response shape: %s", self.provider_name, exc)
            return ""
        return content or ""


class OpenAIProvider(OpenAICompatibleProvider):
    provider_name = "openai"
    default_model = "gpt-4"
    base_url = _OPENAI_BASE_URL


class DeepSeekProvider(OpenAICompatibleProvider):
    provider_name = "deepseek"
    default_model = "deepseek-chat"
    base_url = _DEEPSEEK_BASE_URL
