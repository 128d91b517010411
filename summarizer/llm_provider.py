#!/usr/bin/env python3
"""
LLM Provider Abstraction Layer
===============================
Unified async interface for the AI summarization backends (Gemini, Claude,
GPT, Bedrock).

Every provider failure surfaces as one of two signals the dispatcher
understands: ``TransientBackendError`` (worth retrying: rate limits,
timeouts, 5xx, dropped connections) or ``PermanentBackendError`` (retrying
cannot help: bad credentials, rejected input, unknown model).

Supported Providers:
- Google Gemini (default)
- Anthropic Claude
- OpenAI GPT
- AWS Bedrock
- mock (see mock_llm_provider.py)

Usage:
    provider = LLMProviderFactory.create(
        provider_type="gemini",
        api_key="AIza...",
        model="gemini-1.5-flash"
    )
    response = await provider.generate(system_prompt, user_prompt)
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger("restapisummarizer.summarizer.llm_provider")


# =============================================================================
# Backend errors
# =============================================================================
class BackendError(Exception):
    """Base class for classified AI backend failures."""

    transient = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingApiKey(ValueError):
    """A backend that needs credentials was requested without any."""
    pass


class TransientBackendError(BackendError):
    """Timeout, rate limit, 5xx or connection failure; retried with backoff."""

    transient = True


class PermanentBackendError(BackendError):
    """The backend rejected the request; never retried."""

    transient = False


TRANSIENT_STATUS_CODES = {408, 409, 425, 429}

# Exception class names (across SDKs) that signal a retryable condition
TRANSIENT_ERROR_NAMES = (
    "ratelimit", "timeout", "connection", "serviceunavailable", "internalserver",
    "resourceexhausted", "deadlineexceeded", "throttling", "overloaded",
)


def _status_code(exc: BaseException) -> Optional[int]:
    """HTTP status from anthropic/openai (status_code), google (code) or botocore (response)."""
    for attr in ("status_code", "code", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if isinstance(status, int):
            return status
    return None


def classify_backend_error(exc: BaseException) -> BackendError:
    """
    Map any provider exception onto TransientBackendError / PermanentBackendError.

    Unrecognized errors are treated as permanent so a broken request does not
    burn the whole retry budget.
    """
    if isinstance(exc, BackendError):
        return exc

    message = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return TransientBackendError(message)

    status = _status_code(exc)
    if status is not None:
        if status in TRANSIENT_STATUS_CODES or status >= 500:
            return TransientBackendError(message, status)
        if 400 <= status < 500:
            return PermanentBackendError(message, status)

    name = type(exc).__name__.lower()
    if any(marker in name for marker in TRANSIENT_ERROR_NAMES):
        return TransientBackendError(message, status)

    error_msg = str(exc).lower()
    if "rate limit" in error_msg or "429" in error_msg or "temporarily unavailable" in error_msg:
        return TransientBackendError(message, status)

    return PermanentBackendError(message, status)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement the generate() method to return text responses.
    """

    name = "base"

    def __init__(self, api_key: Optional[str], model: str, max_tokens: int = 100):
        """
        Initialize provider.

        Args:
            api_key: API key for the provider
            model: Model identifier
            max_tokens: Maximum tokens for response
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = None

    @property
    @abstractmethod
    def client(self):
        """Lazy initialization of provider client."""
        pass

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        """
        Generate text completion.

        Raises:
            TransientBackendError: retryable failure
            PermanentBackendError: non-retryable failure
        """
        pass

    def count_tokens(self, text: str) -> int:
        """Approximate token count (~4 chars/token)."""
        return len(text) // 4

    def get_provider_name(self) -> str:
        """Get human-readable provider name."""
        return self.__class__.__name__.replace("Provider", "")

    async def close(self):
        """Release SDK resources; providers without any are no-ops."""
        pass


# =============================================================================
# Google Gemini Provider
# =============================================================================
class GeminiProvider(LLMProvider):
    """
    Google Gemini provider.

    Models:
    - gemini-1.5-flash (default, fast and cheap)
    - gemini-1.5-pro
    """

    name = "gemini"

    @property
    def client(self):
        """Lazy initialization of Gemini client."""
        if self._client is None:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._client = genai.GenerativeModel(self.model)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        """Generate with Gemini."""
        # Gemini combines system and user prompts
        combined_prompt = f"{system_prompt}\n\n{user_prompt}"

        generation_config = {
            "max_output_tokens": self.max_tokens,
            "temperature": temperature,
        }

        try:
            response = await self.client.generate_content_async(
                combined_prompt,
                generation_config=generation_config
            )
            return response.text
        except Exception as e:
            raise classify_backend_error(e) from e


# =============================================================================
# Anthropic Claude Provider
# =============================================================================
class AnthropicProvider(LLMProvider):
    """
    Anthropic Claude provider.

    Models:
    - claude-3-5-haiku-latest (fastest, cheapest)
    - claude-sonnet-4-5
    """

    name = "anthropic"

    @property
    def client(self):
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        """Generate with Claude."""
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}]
            )
            return response.content[0].text
        except Exception as e:
            raise classify_backend_error(e) from e

    async def close(self):
        if self._client is not None:
            await self._client.close()


# =============================================================================
# OpenAI GPT Provider
# =============================================================================
class OpenAIProvider(LLMProvider):
    """
    OpenAI GPT provider.

    Models:
    - gpt-4o-mini (fastest, cheapest)
    - gpt-4o
    """

    name = "openai"

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        """Generate with GPT."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ]
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            raise classify_backend_error(e) from e

    def count_tokens(self, text: str) -> int:
        """Token count using tiktoken."""
        import tiktoken
        try:
            encoding = tiktoken.encoding_for_model(self.model)
        except KeyError:
            # Model unknown to tiktoken
            return super().count_tokens(text)
        return len(encoding.encode(text))

    async def close(self):
        if self._client is not None:
            await self._client.close()


# =============================================================================
# AWS Bedrock Provider
# =============================================================================
class BedrockProvider(LLMProvider):
    """
    AWS Bedrock provider (supports multiple models).

    Models:
    - anthropic.claude-3-haiku-20240307-v1:0 (Claude via Bedrock)
    - meta.llama3-8b-instruct-v1:0 (Llama 3)
    """

    name = "bedrock"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        max_tokens: int = 100,
        region: str = "us-east-1"
    ):
        super().__init__(api_key, model, max_tokens)
        self.region = region

    @property
    def client(self):
        """Lazy initialization of Bedrock client."""
        if self._client is None:
            import boto3
            self._client = boto3.client(
                "bedrock-runtime",
                region_name=self.region,
                aws_access_key_id=self.api_key,
                aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY")
            )
        return self._client

    def _request_body(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        # Format depends on model (Claude vs Llama vs others)
        if "claude" in self.model.lower():
            return json.dumps({
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self.max_tokens,
                "temperature": temperature,
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_prompt}]
            })
        if "llama" in self.model.lower():
            return json.dumps({
                "prompt": f"{system_prompt}\n\nUser: {user_prompt}\n\nAssistant:",
                "max_gen_len": self.max_tokens,
                "temperature": temperature,
            })
        return json.dumps({
            "prompt": f"{system_prompt}\n\n{user_prompt}",
            "max_tokens": self.max_tokens,
            "temperature": temperature,
        })

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0
    ) -> str:
        """Generate with Bedrock; boto3 is blocking, so the call runs in a thread."""
        body = self._request_body(system_prompt, user_prompt, temperature)
        try:
            response = await asyncio.to_thread(self.client.invoke_model, modelId=self.model, body=body)
            response_body = json.loads(response["body"].read())
        except Exception as e:
            raise classify_backend_error(e) from e

        if "claude" in self.model.lower():
            return response_body["content"][0]["text"]
        if "llama" in self.model.lower():
            return response_body["generation"]
        return response_body.get("outputs", [{}])[0].get("text", "")


# =============================================================================
# Provider Factory
# =============================================================================
class LLMProviderFactory:
    """
    Factory for creating LLM providers.

    Usage:
        provider = LLMProviderFactory.create(
            provider_type="gemini",
            api_key="AIza...",
            model="gemini-1.5-flash"
        )
    """

    _providers = {
        "gemini": GeminiProvider,
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "bedrock": BedrockProvider,
    }

    @classmethod
    def create(
        cls,
        provider_type: str,
        api_key: Optional[str],
        model: Optional[str] = None,
        max_tokens: int = 100,
        **kwargs
    ) -> LLMProvider:
        """
        Create LLM provider instance with validation.

        Raises:
            ValueError: If provider type is not supported or validation fails
        """
        provider_type = provider_type.lower()
        model = model or cls.get_default_model(provider_type)

        if provider_type == "mock":
            from .mock_llm_provider import MockLLMProvider
            return MockLLMProvider(model=model, max_tokens=max_tokens, **kwargs)

        if provider_type not in cls._providers:
            raise ValueError(
                f"Unsupported provider: {provider_type}. "
                f"Supported: {', '.join(cls.list_providers())}"
            )

        if not api_key or not isinstance(api_key, str) or len(api_key.strip()) == 0:
            raise MissingApiKey(f"No API key configured for provider: {provider_type}")

        if max_tokens < 1 or max_tokens > 200000:
            raise ValueError(
                f"Invalid max_tokens: {max_tokens}. Must be between 1 and 200000"
            )

        if provider_type == "bedrock" and "region" not in kwargs:
            kwargs["region"] = os.getenv("AWS_REGION", "us-east-1")

        provider_class = cls._providers[provider_type]
        return provider_class(api_key.strip(), model, max_tokens, **kwargs)

    @staticmethod
    def get_default_model(provider_type: str) -> str:
        """Get default model for provider."""
        defaults = {
            "gemini": "gemini-1.5-flash",
            "anthropic": "claude-3-5-haiku-latest",
            "openai": "gpt-4o-mini",
            "bedrock": "anthropic.claude-3-haiku-20240307-v1:0",
            "mock": "mock-summarizer",
        }
        return defaults.get(provider_type.lower(), "")

    @classmethod
    def list_providers(cls) -> list:
        """List all supported providers."""
        return list(cls._providers.keys()) + ["mock"]

    @classmethod
    def requires_api_key(cls, provider_type: str) -> bool:
        return provider_type.lower() != "mock"
