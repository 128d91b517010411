"""Summary agent prompts and answer cleaning, plus backend error classification."""

import asyncio

import pytest

from scanners import HttpMethod, Normalizer, Parameter, ParamLocation
from summarizer import (
    LLMProviderFactory,
    MissingApiKey,
    MockLLMProvider,
    PermanentBackendError,
    SummaryAgent,
    TransientBackendError,
    mask_api_key,
)
from summarizer.llm_provider import classify_backend_error
from summarizer.summary_agent import PROMPT_VERSION, clean_summary, extract_relevant_code
from tests.conftest import candidate, make_endpoints


# =============================================================================
# Answer cleaning
# =============================================================================

@pytest.mark.parametrize("raw,clean", [
    ("Fetch a user by id", "Fetch a user by id"),
    ('[1] "Fetch a user by id."', "Fetch a user by id."),
    ("1. Create an order", "Create an order"),
    ("- Delete a pet", "Delete a pet"),
    ("Summary: List all pets", "List all pets"),
    ("\n\n  Update a book  \nExtra explanation", "Update a book"),
    ("", ""),
    (None, ""),
])
def test_clean_summary(raw, clean):
    assert clean_summary(raw) == clean


def test_clean_summary_truncates_with_ellipsis():
    text = "Retrieve the complete paginated list of every registered user account"
    cleaned = clean_summary(text, max_length=20)
    assert cleaned.endswith("...")
    assert len(cleaned) <= 20


def test_extract_relevant_code():
    context = [
        "# comment about the handler",
        "@app.route('/users/<int:user_id>')",
        "def user(user_id):",
        "    row = db.find(user_id)",
        "    return jsonify(row)",
        "    return None",
    ]
    assert extract_relevant_code(context) == "def user(user_id):; row = db.find(user_id); return jsonify(row)"
    assert extract_relevant_code(["", "x = 1"]) == "x = 1"
    assert extract_relevant_code([]) == ""


# =============================================================================
# Prompt and fingerprint
# =============================================================================

def user_endpoint():
    return Normalizer().normalize([
        candidate(HttpMethod.GET, "/users/{id}", "app.py", 4,
                  [Parameter("id", ParamLocation.PATH, "integer", True)], handler="get_user"),
    ])[0]


def test_user_prompt_lines():
    agent = SummaryAgent(MockLLMProvider(), {"max_summary_length": 50})
    prompt = agent.build_user_prompt(user_endpoint())
    lines = prompt.splitlines()
    assert lines[0] == "Summarize this REST API endpoint in one line (max 50 characters)."
    assert "Endpoint: GET /users/{id}" in lines
    assert "Handler: get_user" in lines
    assert "Framework: Flask" in lines
    assert "Parameters: id (path, integer)" in lines
    assert lines[-1] == "Summary:"


def test_unknown_method_is_called_out():
    ep = make_endpoints(1, HttpMethod.UNKNOWN)[0]
    prompt = SummaryAgent(MockLLMProvider()).build_user_prompt(ep)
    assert "could not be determined" in prompt


def test_fingerprint_depends_on_model_and_provider():
    ep = user_endpoint()
    base = SummaryAgent(MockLLMProvider(model="a"))
    assert base.fingerprint(ep) == SummaryAgent(MockLLMProvider(model="a")).fingerprint(ep)
    assert base.fingerprint(ep) != SummaryAgent(MockLLMProvider(model="b")).fingerprint(ep)
    assert base.fingerprint(ep) != SummaryAgent(config={"llm_provider": "gemini", "model": "a"}).fingerprint(ep)
    assert PROMPT_VERSION


def test_fingerprint_needs_no_credentials(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    agent = SummaryAgent(config={"llm_provider": "gemini"}, api_key=None)
    assert agent.model == "gemini-1.5-flash"
    assert len(agent.fingerprint(user_endpoint())) == 64


async def test_summarize_with_mock():
    provider = MockLLMProvider()
    agent = SummaryAgent(provider)
    assert await agent.summarize(user_endpoint()) == "Handles GET /users/{id}"
    assert agent.stats["successful_calls"] == 1
    assert agent.stats["tokens_used"] > 0


async def test_empty_answer_is_transient():
    agent = SummaryAgent(MockLLMProvider(responder=lambda prompt: "   "))
    with pytest.raises(TransientBackendError):
        await agent.summarize(user_endpoint())


async def test_provider_errors_are_classified():
    def boom(prompt):
        raise ValueError("schema rejected")

    agent = SummaryAgent(MockLLMProvider(responder=boom))
    with pytest.raises(PermanentBackendError):
        await agent.summarize(user_endpoint())
    assert agent.stats["failed_calls"] == 1


# =============================================================================
# Providers
# =============================================================================

class FakeStatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class RateLimitError(Exception):
    pass


@pytest.mark.parametrize("exc,transient", [
    (asyncio.TimeoutError(), True),
    (ConnectionError("reset"), True),
    (FakeStatusError(429), True),
    (FakeStatusError(503), True),
    (FakeStatusError(401), False),
    (FakeStatusError(400), False),
    (RateLimitError("slow down"), True),
    (RuntimeError("temporarily unavailable"), True),
    (RuntimeError("something odd"), False),
])
def test_classify_backend_error(exc, transient):
    assert classify_backend_error(exc).transient is transient


def test_classify_keeps_botocore_status():
    exc = Exception("throttled")
    exc.response = {"ResponseMetadata": {"HTTPStatusCode": 500}}
    error = classify_backend_error(exc)
    assert error.transient
    assert error.status_code == 500


def test_factory_requires_key_for_real_backends():
    with pytest.raises(MissingApiKey):
        LLMProviderFactory.create("anthropic", api_key="  ")
    with pytest.raises(ValueError):
        LLMProviderFactory.create("llama-local", api_key="x")


def test_factory_mock_and_defaults():
    provider = LLMProviderFactory.create("mock", api_key=None)
    assert isinstance(provider, MockLLMProvider)
    assert provider.model == "mock-summarizer"
    assert LLMProviderFactory.get_default_model("openai") == "gpt-4o-mini"
    assert set(LLMProviderFactory.list_providers()) == {"gemini", "anthropic", "openai", "bedrock", "mock"}


def test_factory_builds_provider_lazily():
    provider = LLMProviderFactory.create("openai", api_key=" sk-test ")
    assert provider.api_key == "sk-test"
    assert provider._client is None
    assert provider.get_provider_name() == "OpenAI"


def test_mask_api_key():
    assert mask_api_key("sk-1234567890abcdef") == "sk-1...cdef"
    assert "1234567890" not in mask_api_key("sk-1234567890abcdef")
