"""Google Gemini adapter using the REST ``generateContent`` endpoint.

Gemini has no separate system role in this endpoint, so the system
instruction is prepended to the user text.
"""

from __future__ import annotations

from typing import Any

import httpx

from consensus_oracle.errors import MalformedResponse, ProviderUnavailable
from consensus_oracle.logging import get_logger
from consensus_oracle.models import EvaluationOptions, EvaluationQuestion

from .base import OracleProvider

logger = get_logger(__name__)

_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(OracleProvider):
    provider_name = "gemini"
    default_model = "gemini-1.5-flash"
    base_url = _GEMINI_BASE_URL

    def _endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _build_body(self, question: EvaluationQuestion, options: EvaluationOptions) -> dict[str, Any]:
        text = f"{self._build_system_prompt()}\n\n{self._build_user_prompt(question)}"
        return {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "maxOutputTokens": options.max_tokens,
                "temperature": options.temperature,
            },
        }

    async def _request(
        self,
        question: EvaluationQuestion,
        credential: str,
        options: EvaluationOptions,
    ) -> str:
        body = self._build_body(question, options)
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, credential, body)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, credential, body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            # The request URL carries the key; keep it out of the error text.
            raise ProviderUnavailable(
                self.provider_name, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(self.provider_name, exc) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{self.provider_name} returned a non-JSON body") from exc
        return self._extract_text(data)

    async def _post(
        self, client: httpx.AsyncClient, credential: str, body: dict[str, Any]
    ) -> httpx.Response:
        return await client.post(
            self._endpoint(),
            params={"key": credential},
            json=body,
            timeout=self._timeout,
        )

    def _extract_text(self, data: Any) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning("%s: response has no candidate text", self.provider_name)
            return ""
        return text if isinstance(text, str) else ""
