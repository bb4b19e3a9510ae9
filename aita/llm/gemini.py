"""
Gemini Provider

Judgments through the google.genai SDK. The client is created on the
first call, so the app starts without an API key and simply never
reaches this provider (the factory returns None instead).

One attempt per call: the judge owns the timeout and the fallback to
the rule classifier. A circuit breaker stops calling Gemini for a
minute after three failures in a row, so an outage costs one timeout
per minute instead of one per request.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from google import genai
from google.genai import types

from aita.config import settings
from aita.llm import LLMProvider
from aita.logging import get_logger

logger = get_logger("llm.gemini")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


class CircuitOpenError(Exception):
    """The breaker is open; the call was not attempted."""


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    closed:     calls go through; failures are counted
    open:       calls are refused until recovery_timeout has passed
    half-open:  one probe call is let through; success closes the
                breaker, failure opens it again
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return CLOSED
        if self._clock() - self._opened_at >= self.recovery_timeout:
            return HALF_OPEN
        return OPEN

    @property
    def is_open(self) -> bool:
        return self.state == OPEN

    @property
    def failures(self) -> int:
        return self._consecutive_failures

    def before_call(self) -> None:
        """Raise CircuitOpenError unless a call may be attempted."""
        state = self.state
        if state == OPEN:
            raise CircuitOpenError(
                "AI circuit breaker is open after "
                f"{self._consecutive_failures} consecutive failures"
            )
        if state == HALF_OPEN:
            # Re-arm so concurrent requests wait for this probe's outcome
            self._opened_at = self._clock()

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Circuit breaker closed, AI provider recovered")
        self._consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.failure_threshold:
            if self._opened_at is None:
                logger.warning(
                    f"Circuit breaker OPEN after {self._consecutive_failures} "
                    f"consecutive AI failures, rules only for "
                    f"{self.recovery_timeout:g}s",
                )
            self._opened_at = self._clock()


class GeminiProvider(LLMProvider):
    """Google Gemini with a circuit breaker."""

    name = "Gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._client: Optional[genai.Client] = None
        self.circuit_breaker = CircuitBreaker()

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError(
                    "GEMINI_API_KEY not set. Get one from "
                    "https://aistudio.google.com/apikey"
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.7,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        self.circuit_breaker.before_call()

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            max_output_tokens=max_output_tokens,
        )
        try:
            response = await self._get_client().aio.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except asyncio.CancelledError:
            # Usually the judge's timeout expiring
            self.circuit_breaker.record_failure()
            raise
        except Exception as e:
            logger.warning(
                f"Gemini model {self._model} failed",
                extra={"provider": self.name, "error": str(e),
                       "error_type": type(e).__name__},
            )
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        return response.text or ""
