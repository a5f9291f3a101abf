"""Multi-provider consensus engine.

One evaluation moves through four stages:

  Collecting: every selected provider is called concurrently, each under
              its own timeout. Failures are recorded, never retried.
  Filtering:  verdicts below the confidence floor are set aside.
  Tallying:   accepted verdicts vote (see ``consensus.tally``).
  Finalizing: the result is built from the accepted verdicts in roster
              order, so completion order never changes the answer.

A provider failure only costs that provider its vote. The evaluation fails
with ``NoConsensusPossible`` when no verdict survives filtering.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from consensus_oracle.config import OracleSettings
from consensus_oracle.credentials import CredentialResolver, EnvCredentialResolver
from consensus_oracle.errors import (
    MissingCredential,
    NoConsensusPossible,
    OracleError,
    ProviderUnavailable,
    UnknownProvider,
)
from consensus_oracle.logging import (
    clear_evaluation_context,
    get_logger,
    set_evaluation_context,
)
from consensus_oracle.models import (
    AttemptStatus,
    ConsensusReport,
    ConsensusResult,
    EvaluationOptions,
    EvaluationQuestion,
    ProviderAttempt,
    ProviderSpec,
    ProviderVerdict,
)
from consensus_oracle.parser import parse_verdict
from consensus_oracle.providers import OracleProvider, ProviderRegistry, default_registry

from .tally import ThresholdPolicy, reduce_verdicts

logger = get_logger(__name__)


class _AttemptCollector:
    """Fan-in point for provider tasks. One attempt per provider."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._attempts: dict[str, ProviderAttempt] = {}

    async def add(self, attempt: ProviderAttempt) -> bool:
        async with self._lock:
            if attempt.provider in self._attempts:
                logger.warning("Duplicate attempt from %s rejected", attempt.provider)
                return False
            self._attempts[attempt.provider] = attempt
            return True

    def in_order(self, roster: Sequence[ProviderSpec]) -> list[ProviderAttempt]:
        return [self._attempts[spec.name] for spec in roster if spec.name in self._attempts]


class ConsensusEngine:
    """Ask several providers the same question and reduce their verdicts.

    Everything not passed explicitly comes from ``settings``: roster, floor,
    threshold policy, per-provider timeout and generation defaults. The
    registry and credential resolver are injectable so tests can swap in
    scripted providers and fake keys.
    """

    def __init__(
        self,
        roster: Sequence[ProviderSpec] | None = None,
        *,
        settings: OracleSettings | None = None,
        registry: ProviderRegistry | None = None,
        credentials: CredentialResolver | None = None,
        min_confidence: float | None = None,
        threshold: ThresholdPolicy | None = None,
        timeout: float | None = None,
        max_concurrency: int | None = None,
        default_options: EvaluationOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if settings is None:
            from consensus_oracle.config import settings as _settings

            settings = _settings
        self._settings = settings
        self._roster: list[ProviderSpec] = list(roster if roster is not None else settings.roster())
        self._registry = registry or default_registry()
        self._credentials = credentials or EnvCredentialResolver(settings)
        self._min_confidence = settings.min_confidence if min_confidence is None else min_confidence
        if not 0.0 <= self._min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be within [0, 1], got {self._min_confidence}")
        self._threshold = threshold or settings.threshold_policy()
        self._timeout = timeout or settings.provider_timeout_seconds
        self._max_concurrency = max_concurrency
        self._default_options = default_options or EvaluationOptions(
            temperature=settings.default_temperature,
            max_tokens=settings.default_max_tokens,
        )
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()

    @property
    def roster(self) -> list[ProviderSpec]:
        return list(self._roster)

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    @property
    def threshold(self) -> ThresholdPolicy:
        return self._threshold

    @property
    def default_options(self) -> EvaluationOptions:
        return self._default_options

    @property
    def credentials(self) -> CredentialResolver:
        return self._credentials

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        question: EvaluationQuestion,
        providers: Sequence[str] | None = None,
        options: EvaluationOptions | None = None,
        credentials: CredentialResolver | None = None,
        models: Mapping[str, str] | None = None,
    ) -> ConsensusResult:
        """Return the consensus verdict for ``question``.

        ``models`` overrides the configured model per provider id.

        Raises:
            NoConsensusPossible: no provider produced a verdict at or above the
                confidence floor, or the filter selected no provider.
        """
        report = await self.evaluate_detailed(question, providers, options, credentials, models)
        return report.result

    async def evaluate_detailed(
        self,
        question: EvaluationQuestion,
        providers: Sequence[str] | None = None,
        options: EvaluationOptions | None = None,
        credentials: CredentialResolver | None = None,
        models: Mapping[str, str] | None = None,
    ) -> ConsensusReport:
        """Like ``evaluate`` but also returns every provider attempt."""
        evaluation_id = uuid.uuid4().hex[:12]
        set_evaluation_context(evaluation_id=evaluation_id)
        try:
            return await self._run(question, providers, options, credentials, models)
        finally:
            clear_evaluation_context()

    async def evaluate_single(
        self,
        provider: str,
        question: EvaluationQuestion,
        model: str | None = None,
        credential: str | None = None,
        options: EvaluationOptions | None = None,
    ) -> ProviderVerdict:
        """Ask one provider and return its verdict without any consensus step.

        Errors are surfaced rather than absorbed: ``UnknownProvider``,
        ``MissingCredential``, ``ProviderUnavailable`` and the parser errors.
        No confidence floor is applied.
        """
        name = provider.strip().lower()
        if name not in self._registry:
            raise UnknownProvider(provider)
        configured = self._roster_spec(name)
        requested = (
            (model or "").strip()
            or (configured.model if configured else None)
            or getattr(self._settings, f"{name}_model", None)
        )
        # The adapter falls back to its own default model when none is configured
        client = self._registry.create(
            name, requested, http_client=self._http_client, timeout=self._timeout
        )
        spec = ProviderSpec(
            name=name,
            model=client.model,
            credential_ref=configured.credential_ref if configured else None,
        )

        key = (credential or "").strip() or self._credentials.resolve(spec)
        if not key:
            raise MissingCredential(name)

        set_evaluation_context(provider=name)
        try:
            text = await self._call_provider(
                name, client, question, key, options or self._default_options
            )
            return parse_verdict(text, name, client.model)
        finally:
            clear_evaluation_context()

    def describe(self) -> dict[str, Any]:
        """Roster, confidence floor and threshold policy of this engine."""
        return {
            "providers": [
                {
                    "name": spec.name,
                    "model": spec.model,
                    "registered": spec.name in self._registry,
                }
                for spec in self._roster
            ],
            "minConfidence": self._min_confidence,
            "threshold": self._threshold.describe(),
            "timeoutSeconds": self._timeout,
        }

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(
        self,
        question: EvaluationQuestion,
        providers: Sequence[str] | None,
        options: EvaluationOptions | None,
        credentials: CredentialResolver | None,
        models: Mapping[str, str] | None = None,
    ) -> ConsensusReport:
        selected = self._select(providers, models)
        if not selected:
            logger.warning("No providers selected for evaluation (filter=%s)", providers)
            raise NoConsensusPossible("No providers selected for evaluation")

        resolver = credentials or self._credentials
        opts = options or self._default_options
        logger.info(
            "Evaluating question with %d providers: %s",
            len(selected),
            ", ".join(spec.name for spec in selected),
        )

        # Collecting
        collector = _AttemptCollector()
        semaphore = asyncio.Semaphore(self._max_concurrency or len(selected))
        tasks = [
            asyncio.create_task(
                self._attempt(spec, question, resolver, opts, semaphore, collector),
                name=f"oracle-{spec.name}",
            )
            for spec in selected
        ]
        await asyncio.gather(*tasks)
        attempts = collector.in_order(selected)

        # Filtering
        accepted = [
            a.verdict for a in attempts
            if a.status is AttemptStatus.ACCEPTED and a.verdict is not None
        ]
        if not accepted:
            logger.warning(
                "No consensus possible: 0 of %d providers returned a usable verdict",
                len(attempts),
            )
            raise NoConsensusPossible(attempts=attempts)

        # Tallying + finalizing
        result = reduce_verdicts(accepted, self._threshold)
        required = self._threshold.required_votes(len(accepted))
        logger.info(
            "Consensus: A=%s B=%s conf=%.3f votes=A:%d/B:%d (need %d, %d/%d accepted)",
            result.option_a_true,
            result.option_b_true,
            result.confidence,
            result.votes.option_a,
            result.votes.option_b,
            required,
            len(accepted),
            len(attempts),
        )
        return ConsensusReport(
            result=result,
            attempts=tuple(attempts),
            required_votes=required,
            threshold=self._threshold.describe(),
        )

    def _select(
        self,
        providers: Sequence[str] | None,
        models: Mapping[str, str] | None = None,
    ) -> list[ProviderSpec]:
        roster = self._roster
        if providers is not None:
            wanted = {name.strip().lower() for name in providers}
            known = {spec.name for spec in roster}
            for name in sorted(wanted - known):
                logger.warning("Skipping unknown provider '%s'", name)
            roster = [spec for spec in roster if spec.name in wanted]

        overrides = {
            name.strip().lower(): model.strip()
            for name, model in (models or {}).items()
            if model and model.strip()
        }
        selected: list[ProviderSpec] = []
        seen: set[str] = set()
        for spec in roster:
            if spec.name in seen:
                continue
            if spec.name not in self._registry:
                logger.warning("Skipping provider '%s': no adapter registered", spec.name)
                continue
            seen.add(spec.name)
            if spec.name in overrides:
                spec = spec.model_copy(update={"model": overrides[spec.name]})
            selected.append(spec)
        return selected

    def _roster_spec(self, name: str) -> ProviderSpec | None:
        for spec in self._roster:
            if spec.name == name:
                return spec
        return None

    async def _attempt(
        self,
        spec: ProviderSpec,
        question: EvaluationQuestion,
        resolver: CredentialResolver,
        options: EvaluationOptions,
        semaphore: asyncio.Semaphore,
        collector: _AttemptCollector,
    ) -> None:
        set_evaluation_context(provider=spec.name)
        try:
            verdict = await self._collect_one(spec, question, resolver, options, semaphore)
        except OracleError as exc:
            logger.warning("Provider %s failed: %s: %s", spec.name, exc.kind, exc.detail)
            attempt = ProviderAttempt(
                provider=spec.name,
                model=spec.model,
                status=AttemptStatus.FAILED,
                error_kind=exc.kind,
                error=exc.detail,
            )
        except Exception as exc:
            logger.warning("Provider %s raised unexpectedly: %s", spec.name, exc, exc_info=True)
            attempt = ProviderAttempt(
                provider=spec.name,
                model=spec.model,
                status=AttemptStatus.FAILED,
                error_kind="InternalError",
                error=str(exc) or type(exc).__name__,
            )
        else:
            if verdict.confidence >= self._min_confidence:
                status = AttemptStatus.ACCEPTED
            else:
                status = AttemptStatus.BELOW_CONFIDENCE_FLOOR
                logger.info(
                    "Provider %s below confidence floor (%.2f < %.2f)",
                    spec.name,
                    verdict.confidence,
                    self._min_confidence,
                )
            attempt = ProviderAttempt(
                provider=spec.name,
                model=spec.model,
                status=status,
                verdict=verdict,
            )
        await collector.add(attempt)

    async def _collect_one(
        self,
        spec: ProviderSpec,
        question: EvaluationQuestion,
        resolver: CredentialResolver,
        options: EvaluationOptions,
        semaphore: asyncio.Semaphore,
    ) -> ProviderVerdict:
        client = self._registry.create(
            spec.name, spec.model, http_client=self._http_client, timeout=self._timeout
        )
        credential = resolver.resolve(spec)
        async with semaphore:
            text = await self._call_provider(spec.name, client, question, credential, options)
        return parse_verdict(text, spec.name, spec.model)

    async def _call_provider(
        self,
        name: str,
        client: OracleProvider,
        question: EvaluationQuestion,
        credential: str | None,
        options: EvaluationOptions,
    ) -> str:
        try:
            return await asyncio.wait_for(
                client.evaluate(question, credential, options), timeout=self._timeout
            )
        except TimeoutError as exc:
            raise ProviderUnavailable(
                name, f"timed out after {self._timeout:g}s"
            ) from exc
