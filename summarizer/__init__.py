"""
AI Summarization for Discovered REST Endpoints
===============================================

This module turns normalized endpoints into one-line summaries using an AI
backend, with bounded concurrency, retry with backoff and a persistent cache.

Components:
    - PipelineConfig: Settings (file / environment / CLI)
    - LLMProvider: Backend abstraction (Gemini, Anthropic, OpenAI, Bedrock, mock)
    - SummaryAgent: Prompt construction and answer cleaning
    - SummarizationDispatcher: Concurrent, rate-limited request dispatch
    - ReportAggregator: Ordered report with per-endpoint status

Usage:
    from summarizer import PipelineConfig, run_pipeline

    result = await run_pipeline("./src", config=PipelineConfig())
    print(result.report.counters)
"""

__version__ = "1.0.1"

from .config import PipelineConfig, ConfigError, resolve_api_key, save_api_key, mask_api_key
from .llm_provider import (
    LLMProvider,
    LLMProviderFactory,
    BackendError,
    TransientBackendError,
    PermanentBackendError,
    MissingApiKey,
)
from .mock_llm_provider import MockLLMProvider
from .base_agent import BaseAgent, SummaryResult, SummaryStatus, ErrorKind
from .summary_agent import SummaryAgent
from .dispatcher import SummarizationDispatcher, SummaryRequest, RequestPhase
from .aggregator import Report, ReportAggregator, EXIT_OK, EXIT_FAILURE, EXIT_PARTIAL
from .pipeline import PipelineResult, discover, run_pipeline, run_pipeline_sync

__all__ = [
    "PipelineConfig",
    "ConfigError",
    "resolve_api_key",
    "save_api_key",
    "mask_api_key",
    "LLMProvider",
    "LLMProviderFactory",
    "BackendError",
    "TransientBackendError",
    "PermanentBackendError",
    "MissingApiKey",
    "MockLLMProvider",
    "BaseAgent",
    "SummaryResult",
    "SummaryStatus",
    "ErrorKind",
    "SummaryAgent",
    "SummarizationDispatcher",
    "SummaryRequest",
    "RequestPhase",
    "Report",
    "ReportAggregator",
    "EXIT_OK",
    "EXIT_FAILURE",
    "EXIT_PARTIAL",
    "PipelineResult",
    "discover",
    "run_pipeline",
    "run_pipeline_sync",
]
