#!/usr/bin/env python3
"""
Mock LLM Provider for Testing
==============================
Simulates LLM responses without making actual API calls.
Use this for testing summarization logic without spending money.

It is also the instrumented fake backend for the concurrency tests: it
tracks how many requests are awaiting a response at once and can inject
latency, transient failures and permanent failures.
"""

import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional

from .llm_provider import LLMProvider, PermanentBackendError, TransientBackendError

logger = logging.getLogger("restapisummarizer.summarizer.mock_llm_provider")

_ENDPOINT_LINE = re.compile(r'^Endpoint:\s*(\S+)\s+(\S+)', re.MULTILINE)


class MockLLMProvider(LLMProvider):
    """
    Mock LLM provider that returns deterministic summaries for testing.

    Usage:
        export LLM_PROVIDER=mock
        restapisummarizer sum ./project

    Failure injection keys are matched as substrings of the user prompt, so
    ``permanent_failures={"/users/{id}"}`` fails every request whose prompt
    mentions that path.
    """

    name = "mock"

    def __init__(
        self,
        model: str = "mock-summarizer",
        max_tokens: int = 100,
        latency: float = 0.0,
        transient_failures: Optional[Dict[str, int]] = None,
        permanent_failures: Optional[set] = None,
        responder: Optional[Callable[[str], str]] = None,
    ):
        """
        Initialize mock provider.

        Args:
            latency: Seconds each call waits before answering
            transient_failures: prompt substring -> number of leading calls that fail transiently
            permanent_failures: prompt substrings whose calls always fail permanently
            responder: Optional function user_prompt -> response text
        """
        super().__init__(api_key=None, model=model, max_tokens=max_tokens)
        self.latency = latency
        self.transient_failures = dict(transient_failures or {})
        self.permanent_failures = set(permanent_failures or ())
        self.responder = responder

        self.call_count = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.prompts: List[str] = []
        self._failures_left = dict(self.transient_failures)

    @property
    def client(self):
        return None

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        self.call_count += 1
        self.prompts.append(user_prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)

            for marker in self.permanent_failures:
                if marker in user_prompt:
                    raise PermanentBackendError(f"mock rejected request ({marker})", 400)

            for marker, remaining in self._failures_left.items():
                if marker in user_prompt and remaining > 0:
                    self._failures_left[marker] = remaining - 1
                    raise TransientBackendError(f"mock rate limit ({marker})", 429)

            if self.responder is not None:
                return self.responder(user_prompt)
            return self._default_response(user_prompt)
        finally:
            self.in_flight -= 1

    @staticmethod
    def _default_response(user_prompt: str) -> str:
        match = _ENDPOINT_LINE.search(user_prompt)
        if not match:
            return "Mock endpoint summary"
        method, path = match.groups()
        return f"Handles {method} {path}"

    def get_stats(self) -> Dict[str, int]:
        """Get mock provider statistics."""
        return {
            "call_count": self.call_count,
            "max_in_flight": self.max_in_flight,
        }
