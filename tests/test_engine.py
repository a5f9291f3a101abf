"""Tests for the consensus engine.

Providers are scripted (see helpers.py); no network is touched.
"""

import asyncio
import itertools
import logging

import pytest

from consensus_oracle.consensus import ConsensusEngine, MajorityThreshold
from consensus_oracle.credentials import InlineCredentialResolver
from consensus_oracle.errors import (
    InvalidSchema,
    MissingCredential,
    NoConsensusPossible,
    ProviderUnavailable,
    UnknownProvider,
)
from consensus_oracle.models import AttemptStatus, EvaluationOptions, ProviderSpec

from helpers import FakeCredentials, Script, scripted_registry, verdict_json

AGREE = {
    "openai": Script(verdict_json(True, False, 0.8, "trend up")),
    "deepseek": Script(verdict_json(True, False, 0.75, "momentum")),
    "gemini": Script(verdict_json(False, True, 0.9, "resistance")),
}


class TestConsensus:
    async def test_two_of_three_agree(self, make_engine, question):
        engine = make_engine(AGREE)
        result = await engine.evaluate(question)

        assert result.option_a_true is True
        assert result.option_b_true is False
        assert result.votes.option_a == 2
        assert result.votes.option_b == 1
        assert result.confidence == pytest.approx(0.8167, abs=1e-4)
        assert result.providers == ("openai", "deepseek", "gemini")
        assert result.reasoning.startswith("openai: trend up; deepseek: momentum")

    async def test_single_vote_does_not_reach_fixed_threshold(self, make_engine, question):
        engine = make_engine({"openai": Script(verdict_json(True, False, 0.9))})
        result = await engine.evaluate(question, providers=["openai"])

        assert result.option_a_true is False
        assert result.option_b_true is False
        assert (result.votes.option_a, result.votes.option_b) == (1, 0)
        assert result.confidence == pytest.approx(0.9)

    async def test_majority_policy(self, make_engine, question):
        engine = make_engine(
            {"openai": Script(verdict_json(True, False, 0.9))},
            threshold=MajorityThreshold(),
        )
        result = await engine.evaluate(question, providers=["openai"])
        assert result.option_a_true is True

    async def test_both_true_verdict_abstains_but_counts(self, make_engine, question):
        engine = make_engine({
            "openai": Script(verdict_json(True, False, 0.8, "a")),
            "deepseek": Script(verdict_json(True, True, 1.0, "either")),
            "gemini": Script(verdict_json(True, False, 0.9, "a too")),
        })
        result = await engine.evaluate(question)

        assert result.votes.option_a == 2
        assert result.votes.option_b == 0
        assert result.confidence == pytest.approx(0.9)
        assert "deepseek: either" in result.reasoning

    async def test_out_of_range_confidence_is_clamped(self, make_engine, question):
        engine = make_engine({
            "openai": Script(verdict_json(True, False, 1.5)),
            "deepseek": Script(verdict_json(True, False, 1.5)),
            "gemini": Script(verdict_json(False, True, -0.3)),
        })
        report = await engine.evaluate_detailed(question)

        assert report.result.confidence == pytest.approx(1.0)
        gemini = report.attempts[2]
        assert gemini.status is AttemptStatus.BELOW_CONFIDENCE_FLOOR
        assert gemini.verdict.confidence == 0.0


class TestFiltering:
    async def test_low_confidence_verdicts_are_dropped(self, make_engine, question):
        engine = make_engine({
            "openai": Script(verdict_json(True, False, 0.9)),
            "deepseek": Script(verdict_json(False, True, 0.5)),
            "gemini": Script(verdict_json(True, False, 0.8)),
        })
        result = await engine.evaluate(question)

        assert result.providers == ("openai", "gemini")
        assert result.votes.option_b == 0
        assert result.confidence == pytest.approx(0.85)

    async def test_floor_is_inclusive(self, make_engine, question):
        engine = make_engine({"openai": Script(verdict_json(True, False, 0.7))})
        result = await engine.evaluate(question, providers=["openai"])
        assert result.providers == ("openai",)

    async def test_all_below_floor_is_no_consensus(self, make_engine, question):
        engine = make_engine({
            name: Script(verdict_json(True, False, 0.6)) for name in ("openai", "deepseek", "gemini")
        })
        with pytest.raises(NoConsensusPossible) as exc_info:
            await engine.evaluate(question)

        attempts = exc_info.value.attempts
        assert [a.provider for a in attempts] == ["openai", "deepseek", "gemini"]
        assert all(a.status is AttemptStatus.BELOW_CONFIDENCE_FLOOR for a in attempts)

    async def test_custom_floor(self, make_engine, question):
        engine = make_engine(
            {"openai": Script(verdict_json(True, False, 0.6))},
            min_confidence=0.5,
        )
        result = await engine.evaluate(question, providers=["openai"])
        assert result.providers == ("openai",)

    def test_floor_out_of_range_rejected(self, settings):
        with pytest.raises(ValueError):
            ConsensusEngine([], settings=settings, registry=scripted_registry({}), min_confidence=1.5)


class TestFailures:
    async def test_malformed_text_is_a_per_provider_failure(self, make_engine, question):
        engine = make_engine({
            "openai": Script("I refuse to answer in JSON."),
            "deepseek": Script('{"optionATrue": true}'),
            "gemini": Script(verdict_json(True, False, 0.9)),
        })
        report = await engine.evaluate_detailed(question)

        openai, deepseek, gemini = report.attempts
        assert openai.status is AttemptStatus.FAILED
        assert openai.error_kind == "MalformedResponse"
        assert deepseek.status is AttemptStatus.FAILED
        assert deepseek.error_kind == "InvalidSchema"
        assert gemini.status is AttemptStatus.ACCEPTED
        assert report.result.providers == ("gemini",)

    async def test_provider_error_does_not_stop_siblings(self, make_engine, question):
        engine = make_engine({
            "openai": Script(error=ProviderUnavailable("openai", "HTTP 500")),
            "deepseek": Script(verdict_json(True, False, 0.9)),
            "gemini": Script(verdict_json(True, False, 0.8)),
        })
        report = await engine.evaluate_detailed(question)

        assert report.attempts[0].error_kind == "ProviderUnavailable"
        assert report.result.option_a_true is True
        assert report.result.providers == ("deepseek", "gemini")

    async def test_unexpected_adapter_exception_is_recorded(self, make_engine, question):
        engine = make_engine({
            "openai": Script(error=RuntimeError("adapter bug")),
            "deepseek": Script(verdict_json(True, False, 0.9)),
        })
        report = await engine.evaluate_detailed(question, providers=["openai", "deepseek"])

        assert report.attempts[0].status is AttemptStatus.FAILED
        assert report.attempts[0].error_kind == "InternalError"
        assert report.result.providers == ("deepseek",)

    async def test_timeout_counts_as_unavailable(self, make_engine, question):
        engine = make_engine(
            {
                "openai": Script(verdict_json(True, False, 0.9), delay=5.0),
                "deepseek": Script(verdict_json(True, False, 0.9)),
                "gemini": Script(verdict_json(True, False, 0.8)),
            },
            timeout=0.05,
        )
        report = await engine.evaluate_detailed(question)

        slow = report.attempts[0]
        assert slow.status is AttemptStatus.FAILED
        assert slow.error_kind == "ProviderUnavailable"
        assert "timed out" in slow.error
        assert report.result.option_a_true is True
        assert report.result.providers == ("deepseek", "gemini")

    async def test_missing_credential_is_unavailable(self, make_engine, question, call_log):
        engine = make_engine(AGREE, credentials=FakeCredentials(missing={"gemini"}))
        report = await engine.evaluate_detailed(question)

        gemini = report.attempts[2]
        assert gemini.error_kind == "ProviderUnavailable"
        assert "No API key configured for gemini" in gemini.error
        assert "gemini" not in call_log.names()

    async def test_every_provider_failing_is_no_consensus(self, make_engine, question):
        engine = make_engine({
            name: Script(error=ProviderUnavailable(name, "down"))
            for name in ("openai", "deepseek", "gemini")
        })
        with pytest.raises(NoConsensusPossible) as exc_info:
            await engine.evaluate(question)
        assert len(exc_info.value.attempts) == 3
        assert exc_info.value.to_dict()["attempts"][0]["errorKind"] == "ProviderUnavailable"


class TestSelection:
    async def test_filter_preserves_roster_order(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        result = await engine.evaluate(question, providers=["gemini", "openai"])

        assert result.providers == ("openai", "gemini")
        assert sorted(call_log.names()) == ["gemini", "openai"]

    async def test_unknown_provider_is_skipped(self, make_engine, question, call_log, caplog):
        engine = make_engine(AGREE)
        with caplog.at_level(logging.WARNING, logger="consensus_oracle"):
            result = await engine.evaluate(question, providers=["openai", "deepseek", "claude"])

        assert result.providers == ("openai", "deepseek")
        assert "claude" not in call_log.names()
        assert any("claude" in record.getMessage() for record in caplog.records)

    async def test_filter_matching_nothing_is_no_consensus(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        with pytest.raises(NoConsensusPossible):
            await engine.evaluate(question, providers=["claude"])
        assert call_log.calls == []

    async def test_empty_filter_is_no_consensus(self, make_engine, question):
        engine = make_engine(AGREE)
        with pytest.raises(NoConsensusPossible):
            await engine.evaluate(question, providers=[])

    async def test_roster_entry_without_adapter_is_skipped(self, make_engine, question):
        roster = [
            ProviderSpec(name="openai", model="gpt-4"),
            ProviderSpec(name="mystery", model="m-1"),
        ]
        engine = make_engine(AGREE, roster=roster, threshold=MajorityThreshold())
        result = await engine.evaluate(question)
        assert result.providers == ("openai",)


class TestConcurrency:
    async def test_providers_run_concurrently(self, make_engine, question):
        engine = make_engine({
            name: Script(verdict_json(True, False, 0.9), delay=0.2)
            for name in ("openai", "deepseek", "gemini")
        })
        loop = asyncio.get_running_loop()
        started = loop.time()
        await engine.evaluate(question)
        # Sequential dispatch would take ~0.6s
        assert loop.time() - started < 0.5

    async def test_completion_order_does_not_change_result(self, make_engine, question):
        texts = {
            "openai": verdict_json(True, False, 0.8, "o"),
            "deepseek": verdict_json(True, False, 0.75, "d"),
            "gemini": verdict_json(False, True, 0.9, "g"),
        }
        results = []
        for delays in itertools.permutations([0.0, 0.02, 0.04]):
            scripts = {
                name: Script(text, delay=delay)
                for (name, text), delay in zip(texts.items(), delays)
            }
            results.append(await make_engine(scripts).evaluate(question))

        assert all(result == results[0] for result in results)

    async def test_max_concurrency_bounds_in_flight_calls(self, make_engine, question):
        engine = make_engine(
            {
                name: Script(verdict_json(True, False, 0.9), delay=0.1)
                for name in ("openai", "deepseek", "gemini")
            },
            max_concurrency=1,
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        await engine.evaluate(question)
        assert loop.time() - started >= 0.25

    async def test_cancellation_reaches_provider_calls(self, make_engine, question):
        engine = make_engine({
            name: Script(verdict_json(True, False, 0.9), delay=10.0)
            for name in ("openai", "deepseek", "gemini")
        })
        task = asyncio.create_task(engine.evaluate(question))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestOptionsAndCredentials:
    async def test_default_options_come_from_settings(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        await engine.evaluate(question, providers=["openai"])

        _, credential, options = call_log.calls[0]
        assert credential == "openai-key"
        assert options == EvaluationOptions(temperature=0.1, max_tokens=500)

    async def test_options_override(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        await engine.evaluate(
            question,
            providers=["openai"],
            options=EvaluationOptions(temperature=0.7, max_tokens=64),
        )
        assert call_log.calls[0][2].max_tokens == 64

    async def test_per_call_resolver(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        resolver = InlineCredentialResolver({"openai": "inline"}, fallback=engine.credentials)
        await engine.evaluate(question, providers=["openai", "gemini"], credentials=resolver)

        keys = {name: credential for name, credential, _ in call_log.calls}
        assert keys == {"openai": "inline", "gemini": "gemini-key"}

    async def test_per_provider_model_override(self, make_engine, question):
        engine = make_engine(AGREE)
        report = await engine.evaluate_detailed(
            question, models={"OpenAI": "gpt-4o", "gemini": "  "}
        )

        openai, deepseek, gemini = report.attempts
        assert openai.model == "gpt-4o"
        assert openai.verdict.model == "gpt-4o"
        assert deepseek.model == "deepseek-chat"
        assert gemini.model == "gemini-1.5-flash"


class TestEvaluateSingle:
    async def test_returns_verdict(self, make_engine, question):
        engine = make_engine(AGREE)
        verdict = await engine.evaluate_single("deepseek", question)
        assert verdict.provider == "deepseek"
        assert verdict.model == "deepseek-chat"
        assert verdict.confidence == pytest.approx(0.75)

    async def test_no_floor_applied(self, make_engine, question):
        engine = make_engine({"openai": Script(verdict_json(True, False, 0.2))})
        verdict = await engine.evaluate_single("openai", question)
        assert verdict.confidence == pytest.approx(0.2)

    async def test_model_and_credential_override(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        verdict = await engine.evaluate_single("OpenAI", question, model="gpt-4o", credential="sk-x")
        assert verdict.model == "gpt-4o"
        assert call_log.calls[0][1] == "sk-x"

    async def test_unknown_provider(self, make_engine, question):
        engine = make_engine(AGREE)
        with pytest.raises(UnknownProvider):
            await engine.evaluate_single("claude", question)

    async def test_missing_credential_surfaces(self, make_engine, question, call_log):
        engine = make_engine(AGREE, credentials=FakeCredentials(missing={"openai"}))
        with pytest.raises(MissingCredential):
            await engine.evaluate_single("openai", question)
        assert call_log.calls == []

    async def test_parse_error_surfaces(self, make_engine, question):
        engine = make_engine({"openai": Script('{"optionATrue": 1}')})
        with pytest.raises(InvalidSchema):
            await engine.evaluate_single("openai", question)

    async def test_timeout_surfaces(self, make_engine, question):
        engine = make_engine(
            {"openai": Script(verdict_json(True, False, 0.9), delay=5.0)}, timeout=0.05
        )
        with pytest.raises(ProviderUnavailable):
            await engine.evaluate_single("openai", question)

    async def test_blank_credential_falls_back_to_resolver(self, make_engine, question, call_log):
        engine = make_engine(AGREE)
        await engine.evaluate_single("openai", question, credential="   ")
        assert call_log.calls[0][1] == "openai-key"

    async def test_blank_credential_without_fallback_is_missing(
        self, make_engine, question, call_log
    ):
        engine = make_engine(AGREE, credentials=FakeCredentials(missing={"openai"}))
        with pytest.raises(MissingCredential):
            await engine.evaluate_single("openai", question, credential="   ")
        assert call_log.calls == []

    async def test_unconfigured_provider_uses_adapter_default_model(self, make_engine, question):
        engine = make_engine({"echo": Script(verdict_json(True, False, 0.9))})
        verdict = await engine.evaluate_single("echo", question)
        assert verdict.model == "scripted-1"


def test_describe(settings):
    engine = ConsensusEngine(
        [ProviderSpec(name="openai", model="gpt-4"), ProviderSpec(name="mystery", model="x")],
        settings=settings,
        registry=scripted_registry({"openai": Script()}),
        threshold=MajorityThreshold(),
    )
    info = engine.describe()

    assert info["providers"] == [
        {"name": "openai", "model": "gpt-4", "registered": True},
        {"name": "mystery", "model": "x", "registered": False},
    ]
    assert info["minConfidence"] == 0.7
    assert "majority" in info["threshold"]
    assert info["timeoutSeconds"] == 30.0
