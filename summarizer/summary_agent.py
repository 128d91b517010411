#!/usr/bin/env python3
"""
Endpoint Summary Agent
======================
Asks the AI backend for a one-line summary of a single REST endpoint.

The prompt carries the method, path, handler, parameters and the few most
relevant code lines around the declaration. ``PROMPT_VERSION`` is part of
every cache fingerprint: bump it whenever the prompt or the cleaning rules
change so old summaries are not reused.
"""

import re
from typing import Any, Dict, List, Optional

from cache.cache_manager import CacheManager
from scanners.base import HttpMethod
from scanners.normalizer import Endpoint

from .base_agent import BaseAgent
from .llm_provider import LLMProvider, TransientBackendError

PROMPT_VERSION = "summary-v1"

DEFAULT_MAX_SUMMARY_LENGTH = 50

# Lines containing one of these are the most telling part of a handler
RELEVANT_KEYWORDS = (
    "def ", "function", "func ", "return", "create", "update", "delete",
    "get", "post", "find", "save", "query", "insert", "remove",
)
MAX_RELEVANT_LINES = 3

SYSTEM_PROMPT = (
    "You are an expert API documentation assistant. "
    "You describe REST endpoints in plain English, one short line each."
)


def extract_relevant_code(context: List[str], limit: int = MAX_RELEVANT_LINES) -> str:
    """
    Pick the most informative code lines (definitions, returns, CRUD verbs).

    Comment and blank lines are ignored. Falls back to the first non-empty
    line when nothing matches.
    """
    stripped = [line.strip() for line in context]
    relevant = []
    for line in stripped:
        if not line or line.startswith(("//", "#", "/*", "*")):
            continue
        lower = line.lower()
        if any(keyword in lower for keyword in RELEVANT_KEYWORDS):
            relevant.append(line)
            if len(relevant) >= limit:
                break

    if not relevant:
        relevant = [line for line in stripped if line][:1]

    return "; ".join(relevant)


def clean_summary(text: Optional[str], max_length: int = DEFAULT_MAX_SUMMARY_LENGTH) -> str:
    """
    Reduce a model answer to one display line.

    Example:
        >>> clean_summary('[1] "Fetch a user by id."')
        'Fetch a user by id.'
    """
    if not text:
        return ""

    line = next((l.strip() for l in text.splitlines() if l.strip()), "")
    # Numbering / bullets / labels the model sometimes adds
    line = re.sub(r'^(?:\[\d+\]|\d+[.)]|[-*•])\s*', '', line)
    line = re.sub(r'^(?:summary|answer)\s*:\s*', '', line, flags=re.IGNORECASE)
    line = line.strip().strip('"\'`').strip()

    if len(line) > max_length:
        line = line[:max_length - 3].rstrip() + "..."
    return line


class SummaryAgent(BaseAgent):
    """
    One-line endpoint summaries.

    Empty answers are treated as transient backend failures: the same
    request usually succeeds on a second attempt.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ):
        super().__init__(provider, config, api_key)
        self.max_summary_length = int(self.config.get("max_summary_length", DEFAULT_MAX_SUMMARY_LENGTH))
        self.temperature = float(self.config.get("temperature", 0.2))

    def fingerprint(self, endpoint: Endpoint) -> str:
        """Cache key: endpoint identity plus everything that shapes the answer."""
        return CacheManager.generate_key(endpoint.id, PROMPT_VERSION, self.provider_type, self.model)

    def _build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, endpoint: Endpoint) -> str:
        lines = [
            f"Summarize this REST API endpoint in one line (max {self.max_summary_length} characters).",
            "Reply with the summary only.",
            "",
            f"Endpoint: {endpoint.method.value} {endpoint.path_template}",
        ]
        if endpoint.method == HttpMethod.UNKNOWN:
            lines.append("Note: the HTTP method could not be determined from the source.")
        if endpoint.handler_names:
            lines.append(f"Handler: {', '.join(endpoint.handler_names)}")
        if endpoint.frameworks:
            lines.append(f"Framework: {', '.join(endpoint.frameworks)}")
        if endpoint.parameters:
            params = ", ".join(
                f"{p.name} ({p.location.value}{', ' + p.type_hint if p.type_hint else ''})"
                for p in endpoint.parameters
            )
            lines.append(f"Parameters: {params}")

        code = extract_relevant_code(endpoint.context)
        if code:
            lines.append(f"Code: {code}")

        lines.append("")
        lines.append("Summary:")
        return "\n".join(lines)

    async def summarize(self, endpoint: Endpoint) -> str:
        response = await self._call_llm(
            self._build_system_prompt(),
            self.build_user_prompt(endpoint),
            temperature=self.temperature,
        )
        summary = clean_summary(response, self.max_summary_length)
        if not summary:
            raise TransientBackendError(f"Empty summary for {endpoint.method.value} {endpoint.path_template}")

        self.logger.debug(f"Summarized {endpoint.method.value} {endpoint.path_template}: {summary}")
        return summary
