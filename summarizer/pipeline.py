#!/usr/bin/env python3
"""
Pipeline Driver
===============
Source Reader -> Extractor -> Normalizer -> Dispatcher (consulting Cache) -> Aggregator.

Fatal errors (unreadable root, unsupported input kind, missing credentials)
are raised before any endpoint is summarized. Everything that goes wrong
for a single fragment or endpoint ends up in the Report instead.

Usage:
    result = run_pipeline_sync("./src", config=PipelineConfig(llm_provider="mock"))
    print(result.report.to_dict())
    sys.exit(result.exit_code)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from cache.cache_manager import CacheManager
from scanners.base import InputKind
from scanners.normalizer import Endpoint, Normalizer
from scanners.polyglot import PolyglotScanner, ScanResult
from scanners.reader import DEFAULT_IGNORE_DIRS

from .aggregator import Report, ReportAggregator
from .base_agent import SummaryResult
from .config import PipelineConfig
from .dispatcher import SummarizationDispatcher
from .llm_provider import LLMProvider
from .summary_agent import SummaryAgent

logger = logging.getLogger("restapisummarizer.summarizer.pipeline")


@dataclass
class PipelineResult:
    """Report plus the per-stage statistics the CLI displays."""
    report: Report
    config: PipelineConfig
    scan_stats: Dict[str, Any] = field(default_factory=dict)
    normalizer_stats: Dict[str, int] = field(default_factory=dict)
    dispatcher_stats: Dict[str, int] = field(default_factory=dict)
    cache_stats: Optional[Dict[str, Any]] = None
    tokens_used: int = 0
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return self.report.exit_code(self.config.max_failure_ratio)

    @property
    def new_summaries(self) -> int:
        return sum(1 for r in self.report.results if r.is_success() and not r.from_cache)


def discover(
    target: Union[str, Path],
    kind: Union[str, InputKind] = InputKind.SOURCE_TREE,
    config: Optional[PipelineConfig] = None,
    progress_cb: Optional[Callable[[int, str], None]] = None,
):
    """
    Read, extract and normalize.

    Returns:
        (endpoints, scan_result, normalizer)

    Raises:
        SourceReadError / UnsupportedInputKind before anything is read
    """
    config = config or PipelineConfig()
    scanner = PolyglotScanner(
        target,
        kind=kind,
        ignore_dirs=DEFAULT_IGNORE_DIRS | config.ignore_dirs,
        max_file_size_mb=config.max_file_size_mb,
    )
    scan_result: ScanResult = scanner.scan(progress_cb=progress_cb)

    normalizer = Normalizer(unknown_methods=config.unknown_methods)
    endpoints = normalizer.normalize(scan_result.candidates)
    return endpoints, scan_result, normalizer


def build_agent(
    config: PipelineConfig,
    provider: Optional[LLMProvider] = None,
    api_key: Optional[str] = None,
) -> SummaryAgent:
    return SummaryAgent(
        provider=provider,
        api_key=api_key,
        config={
            "llm_provider": config.llm_provider,
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "max_summary_length": config.max_summary_length,
        },
    )


async def summarize_endpoints(
    endpoints: List[Endpoint],
    agent: SummaryAgent,
    cache: Optional[CacheManager],
    config: PipelineConfig,
    on_result: Optional[Callable[[SummaryResult], None]] = None,
):
    """Dispatch and return (results in completion order, dispatcher)."""
    dispatcher = SummarizationDispatcher(agent, cache, config, on_result=on_result)
    results = await dispatcher.dispatch(endpoints)
    return results, dispatcher


async def run_pipeline(
    target: Union[str, Path],
    kind: Union[str, InputKind] = InputKind.SOURCE_TREE,
    config: Optional[PipelineConfig] = None,
    provider: Optional[LLMProvider] = None,
    cache: Optional[CacheManager] = None,
    api_key: Optional[str] = None,
    progress_cb: Optional[Callable[[int, str], None]] = None,
    on_discovered: Optional[Callable[[List[Endpoint]], None]] = None,
    on_result: Optional[Callable[[SummaryResult], None]] = None,
) -> PipelineResult:
    """
    Run the whole pipeline once.

    Args:
        target: Source tree or API document
        kind: Input kind (``source-tree`` / ``api-document``)
        config: Pipeline configuration (defaults if None)
        provider: LLM provider (if None, created from config)
        cache: Cache handle; if None and caching is enabled, one is opened
               at ``config.cache_dir`` for the duration of the run
        api_key: Backend API key (if None, resolved from env / user config)
        progress_cb: Called with (files_read, path) while scanning
        on_discovered: Called once with the normalized endpoints before dispatch
        on_result: Called with every SummaryResult as it completes
    """
    config = config or PipelineConfig()
    start = time.monotonic()

    endpoints, scan_result, normalizer = discover(target, kind, config, progress_cb)
    logger.info(f"Discovered {len(endpoints)} endpoints from {len(scan_result.candidates)} candidates")
    if on_discovered:
        on_discovered(endpoints)

    agent = build_agent(config, provider, api_key)

    owns_cache = cache is None and config.use_cache
    if owns_cache:
        cache = CacheManager(config.cache_dir, ttl_seconds=config.cache_ttl_seconds).open()

    try:
        results, dispatcher = await summarize_endpoints(endpoints, agent, cache, config, on_result)
        cache_stats = cache.get_stats() if cache is not None and config.use_cache else None
    finally:
        if owns_cache:
            cache.close()
        if agent._provider is not None:
            await agent._provider.close()

    report = ReportAggregator().build(endpoints, results, scan_result.issues)

    return PipelineResult(
        report=report,
        config=config,
        scan_stats=scan_result.stats,
        normalizer_stats=normalizer.stats,
        dispatcher_stats=dispatcher.stats,
        cache_stats=cache_stats,
        tokens_used=agent.stats["tokens_used"],
        duration_seconds=time.monotonic() - start,
    )


def run_pipeline_sync(*args, **kwargs) -> PipelineResult:
    """Blocking wrapper for callers without an event loop."""
    return asyncio.run(run_pipeline(*args, **kwargs))
