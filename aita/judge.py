"""
Judge — Judgment Orchestrator

Decides who answers a situation:
  - ai:     The configured LLM provider, one call under a timeout.
  - rules:  The rule classifier. Used when no provider is configured,
            and whenever the provider call fails in any way.

Both paths return the same JudgmentResult shape, tagged with its
provenance. judge() never raises on provider trouble; the worst a
caller sees is a rules judgment with provider_error filled in.
"""

from __future__ import annotations

import asyncio
import random
import re
from typing import Optional

from aita.config import settings
from aita.llm import LLMProvider
from aita.logging import get_logger
from aita.rules import (
    JudgmentResult,
    RuleClassifier,
    Verdict,
    clamp_score,
    merge_context,
    rule_classifier,
)

logger = get_logger("judge")


class AIResponseError(Exception):
    """Raised when the provider answer cannot be turned into a judgment."""


# ============================================================
# LLM PROMPTS
# ============================================================

SYSTEM_INSTRUCTION = (
    'You are a fair and honest judge for "Am I the Asshole?" scenarios. '
    "Your priority is accuracy and truthfulness. Be direct, clear, and "
    "thoughtful in your analysis. Consider all perspectives and context. "
    "Use engaging but respectful language. Always determine if the person "
    "is the asshole (YTA) or not (NTA). Then provide a score from 1-10 "
    "where 1 means definitely not the asshole and 10 means definitely the "
    "asshole. Format your response as: YTA/NTA [score]/10 - [your clear, "
    "honest reasoning]. Be fair, accurate, and helpful."
)

JUDGMENT_PROMPT = """Analyze this situation carefully and determine if they are the asshole: {context}

Consider all perspectives and context. Respond with: YTA or NTA, then a score 1-10, then your clear, honest reasoning. Be fair and accurate."""


# ============================================================
# RESPONSE PARSING
# ============================================================

_AFFIRMATIVE_MARKERS = ("YTA", "YOU'RE THE ASSHOLE", "YOU ARE THE ASSHOLE")

_SCORE_OUT_OF_TEN = re.compile(r"(\d+)\s*/\s*10", re.IGNORECASE)
_SCORE_LABELED = re.compile(r"score[:\s]+(\d+)", re.IGNORECASE)
_SCORE_BARE = re.compile(r"\b([1-9]|10)\b")

_REASONING_AFTER_DASH = re.compile(r"[-–—]\s*(.+)")
_REASONING_AFTER_COLON = re.compile(r":\s*(.+)")

# Applied in order, first occurrence only
_STRIP_TOKENS = (
    re.compile(r"^(YTA|NTA)[:\s]*", re.IGNORECASE),
    re.compile(r"\d+\s*/\s*10[:\s]*", re.IGNORECASE),
    re.compile(r"score[:\s]*\d+[:\s]*", re.IGNORECASE),
    re.compile(r"here'?s why[:\s]*", re.IGNORECASE),
    re.compile(r"why[:\s]*", re.IGNORECASE),
)

_MIN_REASONING_CHARS = 10

DEFAULT_REASONING = {
    Verdict.ASSHOLE: (
        "Based on the situation described, your actions were "
        "inappropriate and harmful to others."
    ),
    Verdict.NOT_ASSHOLE: (
        "Based on the situation described, your actions were "
        "reasonable and justified."
    ),
}


def parse_verdict(text: str) -> Verdict:
    upper = text.upper()
    if any(marker in upper for marker in _AFFIRMATIVE_MARKERS):
        return Verdict.ASSHOLE
    return Verdict.NOT_ASSHOLE


def parse_score(text: str, verdict: Verdict) -> int:
    """First "N/10", then "score: N", then any bare 1-10. Clamped."""
    for pattern in (_SCORE_OUT_OF_TEN, _SCORE_LABELED, _SCORE_BARE):
        match = pattern.search(text)
        if match:
            return clamp_score(int(match.group(1)))
    return 7 if verdict is Verdict.ASSHOLE else 3


def parse_reasoning(text: str, verdict: Verdict) -> str:
    match = _REASONING_AFTER_DASH.search(text) or _REASONING_AFTER_COLON.search(text)
    if match and len(match.group(1).strip()) > _MIN_REASONING_CHARS:
        return match.group(1).strip()

    reasoning = text
    for pattern in _STRIP_TOKENS:
        reasoning = pattern.sub("", reasoning, count=1)
    reasoning = reasoning.strip()

    if len(reasoning) < _MIN_REASONING_CHARS:
        return DEFAULT_REASONING[verdict]
    return reasoning


def parse_ai_response(text: Optional[str]) -> JudgmentResult:
    """
    Turn a free-text provider answer into a judgment.

    Expected shape is "YTA 8/10 - reasoning", but the parser tolerates
    anything non-empty: missing pieces fall back to defaults.
    """
    if not text or not text.strip():
        raise AIResponseError("AI provider returned an empty response")

    verdict = parse_verdict(text)
    return JudgmentResult(
        verdict=verdict,
        score=parse_score(text, verdict),
        reasoning=parse_reasoning(text, verdict),
        provenance="ai",
    )


# ============================================================
# ORCHESTRATION
# ============================================================

async def _ask_provider(
    llm: LLMProvider,
    context: str,
    timeout: float,
) -> JudgmentResult:
    prompt = JUDGMENT_PROMPT.format(context=context)
    text = await asyncio.wait_for(
        llm.generate(
            prompt,
            system_instruction=SYSTEM_INSTRUCTION,
            temperature=0.7,
            max_output_tokens=settings.AI_MAX_OUTPUT_TOKENS,
        ),
        timeout=timeout,
    )
    result = parse_ai_response(text)
    result.provider_name = llm.name
    return result


async def judge(
    situation: str,
    follow_up: Optional[str] = None,
    llm: Optional[LLMProvider] = None,
    timeout: Optional[float] = None,
    rng: Optional[random.Random] = None,
    classifier: RuleClassifier = rule_classifier,
) -> JudgmentResult:
    """
    Judge a situation with the AI provider, falling back to the rules.

    Args:
        situation: The situation as the author described it.
        follow_up: Extra context added later, merged before judging.
        llm: Provider to ask first. None means rules only.
        timeout: Seconds to wait for the provider.
        rng: Random source for the rules' reasoning draw.
        classifier: Rule classifier used for the fallback.
    """
    if llm is None:
        result = classifier.classify(situation, follow_up, rng=rng)
        logger.info(
            "No AI provider configured, judged by rules",
            extra={"provenance": "rules", "tier": result.tier,
                   "verdict": result.judgment, "score": result.score},
        )
        return result

    timeout = settings.AI_TIMEOUT_SECONDS if timeout is None else timeout
    context = merge_context(situation, follow_up)

    try:
        result = await _ask_provider(llm, context, timeout)
    except asyncio.TimeoutError:
        error = f"AI provider timed out after {timeout:g}s"
    except asyncio.CancelledError:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise  # The request itself was aborted
        error = "AI provider call was cancelled"
    except Exception as e:
        error = str(e) or type(e).__name__
    else:
        logger.info(
            "AI judgment received",
            extra={"provenance": "ai", "provider": llm.name,
                   "verdict": result.judgment, "score": result.score},
        )
        return result

    logger.warning(
        "AI provider failed, falling back to rule-based judgment",
        extra={"provider": llm.name, "error": error},
    )
    result = classifier.classify(situation, follow_up, rng=rng)
    result.provider_name = llm.name
    result.provider_error = error
    return result
