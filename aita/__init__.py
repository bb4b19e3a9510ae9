"""
AITA Judge — "Am I the Asshole?" Judgment Service

Judges an interpersonal situation: verdict (YTA / NTA), a 1-10
severity score, and reasoning. Uses an AI provider when one is
configured and a deterministic rule cascade otherwise.

Public API:
  - classify:        Rule-based judgment (deterministic tiers, zero API cost)
  - judge:           AI-first judgment with rule fallback (never raises)
  - RuleClassifier:  The tier cascade, for custom tables or seeded randomness
  - SubmissionStore: SQLite persistence for users and submissions
  - LLMProvider:     Abstract LLM interface for provider swapping

Usage:
    from aita import classify, judge
    result = classify("I yelled at my roommate")
    result = await judge(situation, follow_up, llm=get_configured_provider())
"""

__version__ = "1.0.0"

from aita.rules import (
    classify,
    rule_classifier,
    RuleClassifier,
    JudgmentResult,
    Tier,
    TIERS,
    Verdict,
    clamp_score,
    merge_context,
)
from aita.judge import judge, parse_ai_response, AIResponseError
from aita.store import SubmissionStore, DuplicateUserError, get_store
from aita.llm import LLMProvider
from aita.llm.factory import get_provider, get_configured_provider

__all__ = [
    "classify",
    "rule_classifier",
    "RuleClassifier",
    "JudgmentResult",
    "Tier",
    "TIERS",
    "Verdict",
    "clamp_score",
    "merge_context",
    "judge",
    "parse_ai_response",
    "AIResponseError",
    "SubmissionStore",
    "DuplicateUserError",
    "get_store",
    "LLMProvider",
    "get_provider",
    "get_configured_provider",
]
