"""
LLM client abstraction for OpenAI and Anthropic.
Provides a unified interface with per-request timeouts and token tracking.

Retries are not done here: the intent adapter owns the retry policy so a
classification is never retried twice over.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import structlog
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel

from insight_engine.core.config import settings

logger = structlog.get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class LLMMessage(BaseModel):
    """Message format for LLM conversations."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Standardized LLM response."""
    content: str
    model: str
    provider: LLMProvider
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def tokens_used(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate completion from messages."""


class OpenAIClient(BaseLLMClient):
    """OpenAI chat completions client."""

    def __init__(self):
        self.client = AsyncOpenAI(api_key=settings.openai_api_key)
        self.default_model = settings.openai_model_primary

    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate completion using OpenAI API."""
        model = model or self.default_model
        temperature = temperature if temperature is not None else settings.llm_temperature
        max_tokens = max_tokens or settings.llm_max_tokens

        request_params = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if json_mode:
            request_params["response_format"] = {"type": "json_object"}

        logger.debug("OpenAI request", model=model, message_count=len(messages))

        response = await asyncio.wait_for(
            self.client.chat.completions.create(**request_params),
            timeout=timeout or settings.classifier_timeout_seconds,
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=model,
            provider=LLMProvider.OPENAI,
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
        )


class AnthropicClient(BaseLLMClient):
    """Anthropic messages client."""

    def __init__(self):
        self.client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.default_model = settings.anthropic_model_primary

    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate completion using Anthropic API."""
        model = model or self.default_model
        temperature = temperature if temperature is not None else settings.llm_temperature
        max_tokens = max_tokens or settings.llm_max_tokens

        # Separate system message from conversation
        system_message = ""
        conversation_messages = []

        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
            else:
                conversation_messages.append({"role": msg.role, "content": msg.content})

        if json_mode:
            system_message = f"{system_message}\n\nRespond with valid JSON only.".strip()

        request_params = {
            "model": model,
            "messages": conversation_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        if system_message:
            request_params["system"] = system_message

        logger.debug("Anthropic request", model=model, message_count=len(messages))

        response = await asyncio.wait_for(
            self.client.messages.create(**request_params),
            timeout=timeout or settings.classifier_timeout_seconds,
        )

        return LLMResponse(
            content=response.content[0].text,
            model=model,
            provider=LLMProvider.ANTHROPIC,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )


class LLMClient:
    """
    Unified LLM client that routes to the configured provider.
    Provider clients are created lazily so a missing key only matters when used.
    """

    def __init__(self, default_provider: Optional[LLMProvider] = None):
        self._openai: Optional[OpenAIClient] = None
        self._anthropic: Optional[AnthropicClient] = None

        if default_provider:
            self.default_provider = default_provider
        else:
            provider_map = {
                "openai": LLMProvider.OPENAI,
                "anthropic": LLMProvider.ANTHROPIC,
            }
            self.default_provider = provider_map.get(
                settings.default_llm_provider.lower(),
                LLMProvider.OPENAI,
            )

    @property
    def openai(self) -> OpenAIClient:
        """Lazy load OpenAI client."""
        if self._openai is None:
            self._openai = OpenAIClient()
        return self._openai

    @property
    def anthropic(self) -> AnthropicClient:
        """Lazy load Anthropic client."""
        if self._anthropic is None:
            self._anthropic = AnthropicClient()
        return self._anthropic

    def _get_client(self, provider: Optional[LLMProvider] = None) -> BaseLLMClient:
        provider = provider or self.default_provider
        if provider == LLMProvider.ANTHROPIC:
            return self.anthropic
        return self.openai

    async def generate(
        self,
        messages: list[LLMMessage],
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Generate completion using specified provider."""
        client = self._get_client(provider)
        return await client.generate(
            messages=messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
            timeout=timeout,
        )

    async def generate_fast(
        self,
        messages: list[LLMMessage],
        json_mode: bool = False,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate using the provider's fast model (classification, suggestions)."""
        if self.default_provider == LLMProvider.ANTHROPIC:
            model = settings.anthropic_model_fast
        else:
            model = settings.openai_model_fast
        return await self.generate(
            messages=messages,
            model=model,
            json_mode=json_mode,
            temperature=temperature,
            max_tokens=max_tokens,
        )


# Global LLM client instance
llm_client = LLMClient()
