#!/usr/bin/env python3
"""
Summarization Dispatcher
========================
Concurrent, rate-limited dispatch of endpoints to the AI backend.

For each endpoint:
1. Compute the fingerprint and consult the cache (hit: no backend call)
2. On miss, create one SummaryRequest (at most one per endpoint id)
3. Each backend attempt holds a slot of a global semaphore, so no more than
   ``concurrency`` requests await the backend at once
4. Transient failures are retried by tenacity with exponential backoff and
   jitter; permanent failures fail immediately
5. Success is written to the cache with a synchronous SQLite insert on the
   event loop thread, one small row per endpoint
6. Requests still pending at the run deadline are cancelled and skipped

Every request is an explicit state machine:

    PENDING -> RETRYING(attempt, delay) -> SUCCEEDED | FAILED | SKIPPED

Per-endpoint failures are captured in that endpoint's SummaryResult and
never escape ``dispatch``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from cache.cache_manager import CacheManager
from scanners.base import HttpMethod
from scanners.normalizer import Endpoint

from .base_agent import ErrorKind, SummaryResult, SummaryStatus
from .config import PipelineConfig
from .llm_provider import PermanentBackendError, TransientBackendError
from .summary_agent import SummaryAgent

logger = logging.getLogger("restapisummarizer.summarizer.dispatcher")

UNKNOWN_METHOD_WARNING = "HTTP method could not be determined from the source"


class RequestPhase(Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_PHASES = {RequestPhase.SUCCEEDED, RequestPhase.FAILED, RequestPhase.SKIPPED}


@dataclass(frozen=True)
class RequestState:
    phase: RequestPhase
    attempt: int = 0
    delay: float = 0.0

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


class InvalidTransition(RuntimeError):
    pass


@dataclass
class SummaryRequest:
    """One outstanding backend request and its state history."""
    endpoint: Endpoint
    fingerprint: str
    state: RequestState = field(default_factory=lambda: RequestState(RequestPhase.PENDING))
    attempts: int = 0
    history: List[RequestState] = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    def transition(self, phase: RequestPhase, attempt: Optional[int] = None, delay: float = 0.0):
        """Move to ``phase``; terminal states are final."""
        if self.state.terminal:
            raise InvalidTransition(
                f"{self.endpoint.id}: cannot move from {self.state.phase.value} to {phase.value}"
            )
        self.state = RequestState(phase, self.attempts if attempt is None else attempt, delay)
        self.history.append(self.state)


class SummarizationDispatcher:
    """
    Produce exactly one SummaryResult per endpoint, in completion order.

    Usage:
        dispatcher = SummarizationDispatcher(agent, cache, config)
        results = await dispatcher.dispatch(endpoints)
    """

    def __init__(
        self,
        agent: SummaryAgent,
        cache: Optional[CacheManager],
        config: PipelineConfig,
        on_result: Optional[Callable[[SummaryResult], None]] = None,
    ):
        self.agent = agent
        self.cache = cache if config.use_cache else None
        self.config = config
        self.on_result = on_result

        self.requests: Dict[str, SummaryRequest] = {}
        self.in_flight = 0
        self.stats = {
            "endpoints": 0,
            "cache_hits": 0,
            "requests": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "retries": 0,
            "max_in_flight": 0,
        }

    async def dispatch(self, endpoints: List[Endpoint]) -> List[SummaryResult]:
        """Summarize every endpoint; returns results in completion order."""
        results: List[SummaryResult] = []
        self.requests = {}
        seen = set()

        for endpoint in endpoints:
            if endpoint.id in seen:
                logger.debug(f"Duplicate endpoint id {endpoint.id} ignored")
                continue
            seen.add(endpoint.id)
            self.stats["endpoints"] += 1

            fingerprint = self.agent.fingerprint(endpoint)
            entry = self.cache.get(fingerprint) if self.cache else None
            if entry is not None:
                self.stats["cache_hits"] += 1
                self._emit(results, SummaryResult(
                    endpoint_id=endpoint.id,
                    status=SummaryStatus.OK,
                    summary_text=entry.summary_text,
                    from_cache=True,
                    warnings=self._warnings(endpoint),
                ))
                continue

            self.requests[endpoint.id] = SummaryRequest(endpoint, fingerprint)

        if not self.requests:
            return results

        # Credentials are needed only once a backend call is certain; MissingApiKey is fatal
        provider = self.agent.provider
        logger.info(
            f"Dispatching {len(self.requests)} requests to {provider.get_provider_name()} "
            f"(concurrency={self.config.concurrency}, {self.stats['cache_hits']} cached)"
        )
        self.stats["requests"] = len(self.requests)
        semaphore = asyncio.Semaphore(self.config.concurrency)

        tasks = {
            asyncio.create_task(self._run_request(request, semaphore, results)): request
            for request in self.requests.values()
        }
        _, pending = await asyncio.wait(tasks, timeout=self.config.run_timeout)

        if pending:
            logger.warning(
                f"Run deadline of {self.config.run_timeout}s elapsed; skipping {len(pending)} pending requests"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            for task in pending:
                request = tasks[task]
                if request.state.terminal:
                    continue
                request.transition(RequestPhase.SKIPPED)
                self.stats["skipped"] += 1
                self._emit(results, SummaryResult(
                    endpoint_id=request.endpoint.id,
                    status=SummaryStatus.SKIPPED,
                    error=ErrorKind.RUN_TIMEOUT,
                    error_message=f"still pending after run timeout of {self.config.run_timeout}s",
                    attempts=request.attempts,
                    warnings=self._warnings(request.endpoint),
                ))

        return results

    def _emit(self, results: List[SummaryResult], result: SummaryResult):
        results.append(result)
        if self.on_result:
            self.on_result(result)

    @staticmethod
    def _warnings(endpoint: Endpoint) -> List[str]:
        if endpoint.method == HttpMethod.UNKNOWN:
            return [UNKNOWN_METHOD_WARNING]
        return []

    def _retrying(self, request: SummaryRequest) -> AsyncRetrying:
        def before_sleep(retry_state: RetryCallState):
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.stats["retries"] += 1
            request.transition(RequestPhase.RETRYING, attempt=retry_state.attempt_number, delay=delay)
            logger.debug(
                f"Retrying {request.endpoint.id} after attempt {retry_state.attempt_number} "
                f"in {delay:.2f}s: {retry_state.outcome.exception()}"
            )

        return AsyncRetrying(
            retry=retry_if_exception_type(TransientBackendError),
            wait=wait_exponential(multiplier=self.config.backoff_base, max=self.config.backoff_max)
            + wait_random(0, self.config.backoff_jitter),
            stop=stop_after_attempt(self.config.max_attempts),
            before_sleep=before_sleep,
            reraise=True,
        )

    async def _run_request(
        self,
        request: SummaryRequest,
        semaphore: asyncio.Semaphore,
        results: List[SummaryResult],
    ):
        endpoint = request.endpoint
        error: Optional[ErrorKind] = None
        message: Optional[str] = None
        summary: Optional[str] = None

        try:
            async for attempt in self._retrying(request):
                with attempt:
                    request.attempts = attempt.retry_state.attempt_number
                    summary = await self._attempt(request, semaphore)
        except TransientBackendError as e:
            error, message = ErrorKind.TRANSIENT_BACKEND_ERROR, str(e)
        except PermanentBackendError as e:
            error, message = ErrorKind.PERMANENT_BACKEND_ERROR, str(e)
        except Exception as e:
            logger.error(f"Unexpected error summarizing {endpoint.method.value} {endpoint.path_template}: {e}")
            error, message = ErrorKind.PERMANENT_BACKEND_ERROR, f"{type(e).__name__}: {e}"

        if error is not None:
            request.transition(RequestPhase.FAILED)
            self.stats["failed"] += 1
            logger.warning(
                f"Summary failed for {endpoint.method.value} {endpoint.path_template} "
                f"after {request.attempts} attempt(s): {message}"
            )
            self._emit(results, SummaryResult(
                endpoint_id=endpoint.id,
                status=SummaryStatus.FAILED,
                error=error,
                error_message=message,
                attempts=request.attempts,
                warnings=self._warnings(endpoint),
            ))
            return

        request.transition(RequestPhase.SUCCEEDED)
        self.stats["succeeded"] += 1
        if self.cache is not None:
            self.cache.put(
                request.fingerprint,
                summary,
                endpoint_id=endpoint.id,
                metadata={"method": endpoint.method.value, "path": endpoint.path_template},
            )
        self._emit(results, SummaryResult(
            endpoint_id=endpoint.id,
            status=SummaryStatus.OK,
            summary_text=summary,
            from_cache=False,
            attempts=request.attempts,
            warnings=self._warnings(endpoint),
        ))

    async def _attempt(self, request: SummaryRequest, semaphore: asyncio.Semaphore) -> str:
        """One backend attempt, holding a concurrency slot for its whole duration."""
        async with semaphore:
            self.in_flight += 1
            self.stats["max_in_flight"] = max(self.stats["max_in_flight"], self.in_flight)
            try:
                if self.config.request_timeout is None:
                    return await self.agent.summarize(request.endpoint)
                return await asyncio.wait_for(
                    self.agent.summarize(request.endpoint),
                    timeout=self.config.request_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransientBackendError(
                    f"request timed out after {self.config.request_timeout}s"
                ) from e
            finally:
                self.in_flight -= 1
