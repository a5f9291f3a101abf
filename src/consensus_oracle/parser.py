"""Turn raw provider text into a validated ``ProviderVerdict``.

Models wrap their JSON in prose, markdown fences or ``<think>`` blocks, so the
parser scans for the first balanced ``{ ... }`` object instead of trusting the
whole text. Braces inside JSON string literals are ignored by the scan.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from consensus_oracle.errors import InvalidSchema, MalformedResponse
from consensus_oracle.logging import get_logger
from consensus_oracle.models import ProviderVerdict

logger = get_logger(__name__)

_THINK_TAG_RE = re.compile(r"<think>.*?</think>", re.DOTALL)

_BOOL_FIELDS = ("optionATrue", "optionBTrue")


def extract_json_object(text: str) -> str | None:
    """Return the first balanced JSON object substring of ``text``, or None."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:idx + 1]
        # Unbalanced from this opening brace; try the next one.
        start = text.find("{", start + 1)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_verdict_payload(data: dict[str, Any]) -> None:
    """Raise ``InvalidSchema`` naming the first field that is missing or mistyped."""
    for field in _BOOL_FIELDS:
        if not isinstance(data.get(field), bool):
            raise InvalidSchema(field)
    confidence = data.get("confidence")
    if not _is_number(confidence):
        raise InvalidSchema("confidence")
    try:
        finite = math.isfinite(confidence)
    except OverflowError:
        finite = False
    if not finite:
        raise InvalidSchema("confidence")
    if not isinstance(data.get("reasoning"), str):
        raise InvalidSchema("reasoning")


def parse_verdict(text: str, provider: str, model: str | None = None) -> ProviderVerdict:
    """Parse provider output into a verdict.

    Raises:
        MalformedResponse: no JSON object in the text, or it does not decode.
        InvalidSchema: the object lacks a required field or has a wrong type.
    """
    cleaned = _THINK_TAG_RE.sub("", text or "").strip()
    candidate = extract_json_object(cleaned)
    if candidate is None:
        logger.debug("[%s] No JSON object found (len=%d)", provider, len(cleaned))
        raise MalformedResponse(f"No JSON object found in {provider} response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"Invalid JSON in {provider} response: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object in {provider} response")

    validate_verdict_payload(data)

    return ProviderVerdict(
        provider=provider,
        model=model,
        option_a_true=data["optionATrue"],
        option_b_true=data["optionBTrue"],
        confidence=float(data["confidence"]),
        reasoning=data["reasoning"],
    )
