"""
Judge Tests — AI path, response parsing, and rule fallback

Covers:
  1. parse_ai_response on well-formed and sloppy provider answers
  2. judge() with a working mock provider (provenance "ai")
  3. judge() fallback on errors, timeouts, empty answers, open circuit
  4. Fallback equivalence: a failed AI call judges exactly like the rules
"""

from __future__ import annotations

import asyncio
import random

import pytest

from aita.config import settings
from aita.judge import (
    DEFAULT_REASONING,
    SYSTEM_INSTRUCTION,
    AIResponseError,
    judge,
    parse_ai_response,
)
from aita.llm import LLMProvider
from aita.rules import Verdict, classify


# ============================================================
# MOCK LLMS
# ============================================================

class MockLLM(LLMProvider):
    """Returns a fixed answer and records every call."""

    name = "Mock"

    def __init__(self, answer: str = "YTA 8/10 - You were rude to your friend."):
        self._answer = answer
        self.calls = []

    async def generate(self, prompt, system_instruction=None, temperature=0.7,
                       max_output_tokens=None):
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        return self._answer


class FailingLLM(LLMProvider):
    """Always raises."""

    name = "Failing"

    async def generate(self, prompt, system_instruction=None, temperature=0.7,
                       max_output_tokens=None):
        raise RuntimeError("LLM unavailable")


class SlowLLM(LLMProvider):
    """Never answers in time."""

    name = "Slow"

    async def generate(self, prompt, system_instruction=None, temperature=0.7,
                       max_output_tokens=None):
        await asyncio.sleep(5)
        return "YTA 9/10 - too late to matter"


class CancellingLLM(LLMProvider):
    """Its own call gets cancelled, but the caller's task does not."""

    name = "Cancelling"

    async def generate(self, prompt, system_instruction=None, temperature=0.7,
                       max_output_tokens=None):
        raise asyncio.CancelledError()


# ============================================================
# RESPONSE PARSING
# ============================================================

class TestParseAIResponse:

    def test_canonical_yta(self):
        result = parse_ai_response("YTA 8/10 - You were rude to your friend.")
        assert result.verdict is Verdict.ASSHOLE
        assert result.score == 8
        assert result.reasoning == "You were rude to your friend."
        assert result.provenance == "ai"

    def test_canonical_nta(self):
        result = parse_ai_response("NTA 2/10 - You did nothing wrong here at all.")
        assert result.verdict is Verdict.NOT_ASSHOLE
        assert result.score == 2
        assert result.reasoning == "You did nothing wrong here at all."

    def test_spelled_out_verdict(self):
        result = parse_ai_response("Honestly, you're the asshole. Score: 9")
        assert result.verdict is Verdict.ASSHOLE
        assert result.score == 9

    def test_lowercase_marker(self):
        assert parse_ai_response("yta 6/10 - meh").verdict is Verdict.ASSHOLE

    def test_missing_score_defaults_by_verdict(self):
        assert parse_ai_response("YTA, plain and simple.").score == 7
        assert parse_ai_response("NTA, plain and simple.").score == 3

    def test_score_clamped(self):
        assert parse_ai_response("YTA 15/10 - way over the line buddy").score == 10
        assert parse_ai_response("NTA 0/10 - completely innocent here").score == 1

    def test_bare_digit_score(self):
        result = parse_ai_response("YTA, I'd rate this an 8 because you were careless with her things")
        assert result.score == 8
        assert parse_ai_response("NTA, a 10 out of ten response from you").score == 10

    def test_multi_digit_number_is_not_a_score(self):
        assert parse_ai_response("YTA because of 15 reasons I could list").score == 7
        assert parse_ai_response("NTA, you waited 20 minutes for them").score == 3

    def test_bare_verdict_gets_default_reasoning(self):
        result = parse_ai_response("NTA")
        assert result.score == 3
        assert result.reasoning == DEFAULT_REASONING[Verdict.NOT_ASSHOLE]

    def test_reasoning_without_separator(self):
        result = parse_ai_response("NTA 3/10 You were just protecting yourself")
        assert result.reasoning == "You were just protecting yourself"

    def test_empty_response_raises(self):
        with pytest.raises(AIResponseError):
            parse_ai_response("")
        with pytest.raises(AIResponseError):
            parse_ai_response("   \n")
        with pytest.raises(AIResponseError):
            parse_ai_response(None)


# ============================================================
# AI PATH
# ============================================================

class TestJudgeWithProvider:

    @pytest.mark.asyncio
    async def test_ai_judgment(self):
        llm = MockLLM()
        result = await judge("I yelled at my roommate", llm=llm)
        assert result.provenance == "ai"
        assert result.ai_used
        assert result.judgment == "YTA"
        assert result.score == 8
        assert result.provider_name == "Mock"
        assert result.provider_error is None
        assert result.tier is None

    @pytest.mark.asyncio
    async def test_single_provider_call(self):
        llm = MockLLM()
        await judge("I yelled at my roommate", llm=llm)
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_prompt_carries_context(self):
        llm = MockLLM()
        await judge("I skipped the party", "It was my ex's party", llm=llm)
        call = llm.calls[0]
        assert "I skipped the party" in call["prompt"]
        assert "Additional context: It was my ex's party" in call["prompt"]
        assert call["system_instruction"] == SYSTEM_INSTRUCTION
        assert call["temperature"] == 0.7
        assert call["max_output_tokens"] == settings.AI_MAX_OUTPUT_TOKENS

    @pytest.mark.asyncio
    async def test_ai_can_disagree_with_rules(self):
        """The provider's verdict wins even where the rules would say YTA."""
        llm = MockLLM("NTA 1/10 - The dog was attacking a child, you protected them.")
        result = await judge("I kicked the dog", llm=llm)
        assert result.verdict is Verdict.NOT_ASSHOLE
        assert result.score == 1


# ============================================================
# FALLBACK
# ============================================================

class TestJudgeFallback:

    @pytest.mark.asyncio
    async def test_no_provider_uses_rules(self):
        result = await judge("I kicked the dog", llm=None)
        assert result.provenance == "rules"
        assert result.score == 10
        assert result.provider_name is None
        assert result.provider_error is None

    @pytest.mark.asyncio
    async def test_provider_error_falls_back(self):
        result = await judge("I kicked the dog", llm=FailingLLM())
        assert result.provenance == "rules"
        assert result.tier == "VIOLENCE_AGAINST_VULNERABLE"
        assert result.provider_name == "Failing"
        assert result.provider_error == "LLM unavailable"

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        result = await judge("I forgot my friend's birthday", llm=SlowLLM(), timeout=0.05)
        assert result.provenance == "rules"
        assert result.tier == "HONEST_MISTAKE"
        assert "timed out" in result.provider_error

    @pytest.mark.asyncio
    async def test_empty_answer_falls_back(self):
        result = await judge("I yelled at my roommate", llm=MockLLM(answer=""))
        assert result.provenance == "rules"
        assert result.tier == "VERBAL_AGGRESSION"
        assert "empty" in result.provider_error

    @pytest.mark.asyncio
    async def test_inner_cancellation_falls_back(self):
        result = await judge("I yelled at my roommate", llm=CancellingLLM())
        assert result.provenance == "rules"
        assert result.provider_error == "AI provider call was cancelled"

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self):
        task = asyncio.ensure_future(judge("anything", llm=SlowLLM(), timeout=10))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_open_circuit_falls_back(self):
        from aita.llm.gemini import GeminiProvider

        provider = GeminiProvider(api_key="test-key")
        for _ in range(provider.circuit_breaker.failure_threshold):
            provider.circuit_breaker.record_failure()

        result = await judge("I cheated on my girlfriend", llm=provider)
        assert result.provenance == "rules"
        assert result.tier == "SERIOUS_WRONGDOING"
        assert result.provider_name == "Gemini"
        assert "circuit breaker" in result.provider_error


class TestFallbackEquivalence:
    """A failed AI call must judge exactly as the rules would have."""

    CASES = [
        ("I kicked the dog because it barked", None),
        ("I forgot the meeting", "I forgot on purpose"),
        ("I had an argument with my sister", "Then I slapped her"),
        ("We went to the park and had ice cream", None),
        ("", None),
    ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("situation,follow_up", CASES)
    async def test_matches_rules(self, situation, follow_up):
        expected = classify(situation, follow_up, rng=random.Random(7))
        result = await judge(situation, follow_up, llm=FailingLLM(),
                             rng=random.Random(7))
        assert result.verdict == expected.verdict
        assert result.score == expected.score
        assert result.reasoning == expected.reasoning
        assert result.tier == expected.tier

    @pytest.mark.asyncio
    async def test_no_provider_matches_rules(self):
        expected = classify("I called my brother an idiot", rng=random.Random(7))
        result = await judge("I called my brother an idiot", rng=random.Random(7))
        assert result.to_dict() == expected.to_dict()
