#!/usr/bin/env python3
"""
Base Agent Abstract Class
==========================
Foundation for the AI summarization agents.

This module provides the abstract base class and the result data
structures shared by the agent, the dispatcher and the report.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from enum import Enum
import logging

from .config import resolve_api_key
from .llm_provider import LLMProvider, LLMProviderFactory, classify_backend_error

logger = logging.getLogger("restapisummarizer.summarizer")


class SummaryStatus(Enum):
    """Per-endpoint outcome."""
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"  # Still pending when the run deadline elapsed


class ErrorKind(Enum):
    """Why an endpoint has no summary."""
    TRANSIENT_BACKEND_ERROR = "transient_backend_error"  # Retries exhausted
    PERMANENT_BACKEND_ERROR = "permanent_backend_error"
    RUN_TIMEOUT = "run_timeout"


@dataclass
class SummaryResult:
    """
    Result for one endpoint, produced exactly once per run.
    """
    endpoint_id: str
    status: SummaryStatus
    summary_text: Optional[str] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    from_cache: bool = False
    attempts: int = 0
    warnings: List[str] = field(default_factory=list)

    def is_success(self) -> bool:
        return self.status == SummaryStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "endpoint_id": self.endpoint_id,
            "status": self.status.value,
            "summary": self.summary_text,
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
            "from_cache": self.from_cache,
            "attempts": self.attempts,
            "warnings": self.warnings,
        }


class BaseAgent(ABC):
    """
    Abstract base class for AI agents.

    An agent turns one endpoint into one backend request and cleans the
    answer. It makes a single attempt per call; retry, timeouts and
    concurrency belong to the dispatcher.

    Usage:
        class MyAgent(BaseAgent):
            async def summarize(self, endpoint) -> str:
                ...
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        config: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize the agent.

        Args:
            provider: LLMProvider instance (if None, created from config on first use)
            config: Agent-specific configuration (llm_provider, model, max_tokens, ...)
            api_key: API key (if None, resolved from environment / user config)
        """
        self.config = config or {}
        self.api_key = api_key
        self.logger = logging.getLogger(f"restapisummarizer.summarizer.{self.__class__.__name__}")

        # LLM Provider (lazily initialized)
        self._provider = provider

        # Statistics
        self.stats = {
            "total_calls": 0,
            "successful_calls": 0,
            "failed_calls": 0,
            "tokens_used": 0,
        }

    @property
    def provider(self) -> LLMProvider:
        """
        Lazy initialization of LLM provider.

        Raises:
            MissingApiKey: the configured provider needs a key and none is set
        """
        if self._provider is None:
            provider_type = self.provider_type
            api_key = self.api_key
            if api_key is None and LLMProviderFactory.requires_api_key(provider_type):
                api_key = resolve_api_key(provider_type)
            self._provider = LLMProviderFactory.create(
                provider_type=provider_type,
                api_key=api_key,
                model=self.config.get("model"),
                max_tokens=int(self.config.get("max_tokens", 100)),
            )
            self.logger.info(f"Initialized {self._provider.get_provider_name()} provider with model {self._provider.model}")
        return self._provider

    @property
    def provider_type(self) -> str:
        """Provider key (gemini, anthropic, ...), known without creating the provider."""
        if self._provider is not None:
            return self._provider.name
        return str(self.config.get("llm_provider", "gemini")).lower()

    @property
    def model(self) -> str:
        """LLM model to use, known without creating the provider."""
        if self._provider is not None:
            return self._provider.model
        return self.config.get("model") or LLMProviderFactory.get_default_model(self.provider_type)

    @abstractmethod
    async def summarize(self, endpoint) -> str:
        """
        Produce the summary text for one endpoint.

        Raises:
            TransientBackendError: retryable backend failure
            PermanentBackendError: non-retryable backend failure
        """
        pass

    def _build_system_prompt(self) -> str:
        """Build system prompt for this agent (override in subclasses)."""
        return "You are an expert API documentation assistant."

    async def _call_llm(self, system_prompt: str, user_prompt: str, temperature: float = 0.0) -> str:
        """
        One backend call with error classification and token accounting.

        Raises:
            TransientBackendError / PermanentBackendError
        """
        provider = self.provider
        self.stats["total_calls"] += 1
        try:
            response_text = await provider.generate(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=temperature
            )
        except Exception as e:
            self.stats["failed_calls"] += 1
            error = classify_backend_error(e)
            if error.status_code == 429:
                self.logger.warning("Rate limit hit. Consider lowering --workers.")
            elif error.status_code in (401, 403):
                self.logger.error("API authentication failed. Check your API key.")
            if error is e:
                raise
            raise error from e

        self.stats["successful_calls"] += 1
        self.stats["tokens_used"] += provider.count_tokens(system_prompt + user_prompt + (response_text or ""))
        return response_text

    def get_stats(self) -> Dict[str, int]:
        """Get agent statistics."""
        return self.stats.copy()
