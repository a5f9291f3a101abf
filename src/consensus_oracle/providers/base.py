"""Abstract base for oracle provider adapters.

An adapter makes exactly one outbound call per ``evaluate`` and returns the
raw response text. Parsing and validation happen in ``consensus_oracle.parser``
so every provider is judged by the same rules.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

from consensus_oracle.errors import MissingCredential, ProviderUnavailable
from consensus_oracle.models import EvaluationOptions, EvaluationQuestion

SYSTEM_PROMPT = "You are an AI oracle for prediction markets. Respond with valid JSON only."

_JSON_SCHEMA_HINT = """\
{
  "optionATrue": true | false,
  "optionBTrue": true | false,
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}\
"""


def build_user_prompt(question: EvaluationQuestion) -> str:
    """Render the evaluation instruction for one question."""
    lines = [
        "Evaluate the following prediction market question.",
        "",
        f"Question: {question.question}",
        f"Option A: {question.option_a}",
        f"Option B: {question.option_b}",
        "",
        "Decide which option is more likely to be true, considering:",
        "1. Current factual information",
        "2. Historical trends",
        "3. Logical reasoning",
        "4. Available evidence",
        "",
        "Respond ONLY with a JSON object of this shape:",
        _JSON_SCHEMA_HINT,
        "",
        "Rules:",
        "- optionATrue is true if Option A is more likely, optionBTrue likewise for Option B",
        "- Only one option should be true unless the question allows both",
        "- If evidence is insufficient, set confidence below 0.7",
        "- Keep the reasoning short and factual",
    ]
    return "\n".join(lines)


class OracleProvider(ABC):
    """One third-party LLM service.

    Subclasses set ``provider_name`` and ``default_model`` and implement
    ``_request``. The shared ``httpx.AsyncClient`` is owned by the caller.
    """

    provider_name: str = "unknown"
    default_model: str = ""

    def __init__(
        self,
        model: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.model = model or self.default_model
        self._http_client = http_client
        self._timeout = timeout

    def _build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def _build_user_prompt(self, question: EvaluationQuestion) -> str:
        return build_user_prompt(question)

    async def evaluate(
        self,
        question: EvaluationQuestion,
        credential: str | None,
        options: EvaluationOptions | None = None,
    ) -> str:
        """Ask the provider about ``question`` and return its raw text.

        Raises:
            ProviderUnavailable: empty credential, transport error, timeout or
                non-2xx status.
        """
        if not credential or not credential.strip():
            raise ProviderUnavailable(self.provider_name, MissingCredential(self.provider_name))
        return await self._request(question, credential.strip(), options or EvaluationOptions())

    @abstractmethod
    async def _request(
        self,
        question: EvaluationQuestion,
        credential: str,
        options: EvaluationOptions,
    ) -> str:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"
