"""Dispatcher: concurrency ceiling, retry, failure isolation, deadline and cache."""

import dataclasses

import pytest

from cache import CacheManager
from scanners import HttpMethod
from summarizer import (
    ErrorKind,
    MissingApiKey,
    MockLLMProvider,
    ReportAggregator,
    RequestPhase,
    SummarizationDispatcher,
    SummaryAgent,
    SummaryStatus,
)
from summarizer.dispatcher import UNKNOWN_METHOD_WARNING, InvalidTransition
from tests.conftest import make_endpoints


def make_dispatcher(config, provider, cache=None, on_result=None):
    agent = SummaryAgent(provider, {"max_summary_length": config.max_summary_length})
    return SummarizationDispatcher(agent, cache, config, on_result=on_result)


def by_id(results):
    return {r.endpoint_id: r for r in results}


async def test_concurrency_ceiling(fast_config):
    config = dataclasses.replace(fast_config, concurrency=3)
    provider = MockLLMProvider(latency=0.02)
    dispatcher = make_dispatcher(config, provider)

    results = await dispatcher.dispatch(make_endpoints(12))

    assert len(results) == 12
    assert all(r.status == SummaryStatus.OK for r in results)
    assert provider.max_in_flight == 3
    assert dispatcher.stats["max_in_flight"] <= 3


async def test_one_result_per_endpoint(fast_config):
    endpoints = make_endpoints(4)
    seen = []
    dispatcher = make_dispatcher(fast_config, MockLLMProvider(), on_result=seen.append)

    results = await dispatcher.dispatch(endpoints + endpoints[:2])

    assert sorted(r.endpoint_id for r in results) == sorted(e.id for e in endpoints)
    assert seen == results
    assert dispatcher.stats["endpoints"] == 4


async def test_permanent_failure_is_isolated(fast_config):
    endpoints = make_endpoints(5)
    provider = MockLLMProvider(permanent_failures={"/items2/"})
    dispatcher = make_dispatcher(fast_config, provider)

    results = by_id(await dispatcher.dispatch(endpoints))

    failed = results[endpoints[2].id]
    assert failed.status == SummaryStatus.FAILED
    assert failed.error == ErrorKind.PERMANENT_BACKEND_ERROR
    assert failed.attempts == 1
    assert sum(r.is_success() for r in results.values()) == 4
    # Permanent failures are never retried
    assert provider.call_count == 5


async def test_transient_failures_are_retried(fast_config):
    endpoints = make_endpoints(2)
    provider = MockLLMProvider(transient_failures={"/items0/": 2})
    dispatcher = make_dispatcher(fast_config, provider)

    results = by_id(await dispatcher.dispatch(endpoints))

    assert results[endpoints[0].id].status == SummaryStatus.OK
    assert results[endpoints[0].id].attempts == 3
    assert results[endpoints[0].id].summary_text == "Handles GET /items0/{id}"
    phases = [s.phase for s in dispatcher.requests[endpoints[0].id].history]
    assert phases == [
        RequestPhase.PENDING,
        RequestPhase.RETRYING,
        RequestPhase.RETRYING,
        RequestPhase.SUCCEEDED,
    ]
    attempts = [s.attempt for s in dispatcher.requests[endpoints[0].id].history if s.phase == RequestPhase.RETRYING]
    assert attempts == [1, 2]
    assert dispatcher.stats["retries"] == 2


async def test_retry_budget_exhausted(fast_config):
    endpoints = make_endpoints(1)
    provider = MockLLMProvider(transient_failures={"/items0/": 10})
    dispatcher = make_dispatcher(fast_config, provider)

    result = (await dispatcher.dispatch(endpoints))[0]

    assert result.status == SummaryStatus.FAILED
    assert result.error == ErrorKind.TRANSIENT_BACKEND_ERROR
    assert result.attempts == fast_config.max_attempts
    assert provider.call_count == fast_config.max_attempts


async def test_request_timeout_counts_as_transient(fast_config):
    config = dataclasses.replace(fast_config, request_timeout=0.01, max_attempts=2)
    provider = MockLLMProvider(latency=0.5)
    dispatcher = make_dispatcher(config, provider)

    result = (await dispatcher.dispatch(make_endpoints(1)))[0]

    assert result.status == SummaryStatus.FAILED
    assert result.error == ErrorKind.TRANSIENT_BACKEND_ERROR
    assert result.attempts == 2


async def test_run_deadline_skips_pending(fast_config):
    config = dataclasses.replace(fast_config, concurrency=1, run_timeout=0.05, request_timeout=None)
    endpoints = make_endpoints(3)
    dispatcher = make_dispatcher(config, MockLLMProvider(latency=1.0))

    results = await dispatcher.dispatch(endpoints)

    assert len(results) == 3
    assert all(r.status == SummaryStatus.SKIPPED for r in results)
    assert all(r.error == ErrorKind.RUN_TIMEOUT for r in results)
    assert all(dispatcher.requests[e.id].state.phase == RequestPhase.SKIPPED for e in endpoints)

    report = ReportAggregator().build(endpoints, results)
    assert report.exit_code() == 2


async def test_cache_hits_make_no_backend_calls(fast_config):
    endpoints = make_endpoints(3)
    with CacheManager(fast_config.cache_dir) as cache:
        await make_dispatcher(fast_config, MockLLMProvider(), cache).dispatch(endpoints)

        provider = MockLLMProvider()
        dispatcher = make_dispatcher(fast_config, provider, cache)
        results = await dispatcher.dispatch(endpoints)

    assert provider.call_count == 0
    assert all(r.from_cache and r.is_success() for r in results)
    assert dispatcher.stats["cache_hits"] == 3
    assert dispatcher.requests == {}


async def test_failures_are_not_cached(fast_config):
    endpoints = make_endpoints(2)
    with CacheManager(fast_config.cache_dir) as cache:
        await make_dispatcher(
            fast_config, MockLLMProvider(permanent_failures={"/items1/"}), cache,
        ).dispatch(endpoints)

        provider = MockLLMProvider()
        results = by_id(await make_dispatcher(fast_config, provider, cache).dispatch(endpoints))

    assert results[endpoints[0].id].from_cache
    assert not results[endpoints[1].id].from_cache
    assert provider.call_count == 1


async def test_corrupt_cache_row_does_not_fail_the_run(fast_config):
    endpoints = make_endpoints(2)
    with CacheManager(fast_config.cache_dir) as cache:
        await make_dispatcher(fast_config, MockLLMProvider(), cache).dispatch(endpoints)
        cache._conn.execute("UPDATE summaries SET metadata = '{not json'")
        cache._conn.commit()

        provider = MockLLMProvider()
        results = await make_dispatcher(fast_config, provider, cache).dispatch(endpoints)

    assert all(r.is_success() and not r.from_cache for r in results)
    assert provider.call_count == 2


async def test_disabled_cache_is_ignored(fast_config):
    config = dataclasses.replace(fast_config, use_cache=False)
    endpoints = make_endpoints(1)
    with CacheManager(config.cache_dir) as cache:
        cache.put(SummaryAgent(MockLLMProvider()).fingerprint(endpoints[0]), "stale")
        provider = MockLLMProvider()
        results = await make_dispatcher(config, provider, cache).dispatch(endpoints)

    assert provider.call_count == 1
    assert not results[0].from_cache


async def test_unknown_method_carries_warning(fast_config):
    results = await make_dispatcher(fast_config, MockLLMProvider()).dispatch(
        make_endpoints(1, HttpMethod.UNKNOWN)
    )
    assert results[0].warnings == [UNKNOWN_METHOD_WARNING]


class TestCredentials:

    @pytest.fixture(autouse=True)
    def no_keys(self, monkeypatch, tmp_path):
        for name in ("LLM_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setattr("summarizer.config.USER_CONFIG_FILE", tmp_path / "missing.yaml")

    async def test_missing_key_is_fatal_on_cache_miss(self, fast_config):
        config = dataclasses.replace(fast_config, llm_provider="gemini")
        agent = SummaryAgent(config={"llm_provider": "gemini"})
        dispatcher = SummarizationDispatcher(agent, None, config)
        with pytest.raises(MissingApiKey):
            await dispatcher.dispatch(make_endpoints(2))

    async def test_fully_cached_run_needs_no_key(self, fast_config):
        config = dataclasses.replace(fast_config, llm_provider="gemini")
        endpoints = make_endpoints(2)
        agent = SummaryAgent(config={"llm_provider": "gemini"})
        with CacheManager(config.cache_dir) as cache:
            for ep in endpoints:
                cache.put(agent.fingerprint(ep), "Cached summary")
            results = await SummarizationDispatcher(agent, cache, config).dispatch(endpoints)

        assert all(r.from_cache for r in results)
        assert agent._provider is None


async def test_terminal_states_are_final(fast_config):
    endpoints = make_endpoints(1)
    dispatcher = make_dispatcher(fast_config, MockLLMProvider())
    await dispatcher.dispatch(endpoints)

    request = dispatcher.requests[endpoints[0].id]
    assert request.state.phase == RequestPhase.SUCCEEDED
    with pytest.raises(InvalidTransition):
        request.transition(RequestPhase.RETRYING)
