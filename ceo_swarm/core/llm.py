"""
LLM Provider abstraction for the swarm's generative backend.

Both clients expose the OpenAI chat-completions interface
(`client.chat.completions.create(...)`), with `stream=True` yielding
chat-completion chunks.

Usage:
    from ceo_swarm.core.llm import create_llm_client, LLMProvider

    # OpenAI-compatible AI gateway (default)
    client = create_llm_client(LLMProvider.GATEWAY, api_key="...")

    # Or Claude directly
    client = create_llm_client(LLMProvider.ANTHROPIC, api_key="...")
"""

from enum import Enum
from types import SimpleNamespace
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog

from .errors import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


class LLMProvider(Enum):
    GATEWAY = "gateway"
    ANTHROPIC = "anthropic"


class AnthropicLLMClient:
    """Wrapper for Anthropic's Claude API with OpenAI-compatible interface."""

    def __init__(self, api_key: str, default_model: str = DEFAULT_ANTHROPIC_MODEL, timeout: Optional[float] = None):
        from anthropic import AsyncAnthropic

        kwargs: Dict[str, Any] = {"api_key": api_key}
        if timeout:
            kwargs["timeout"] = timeout
        self.client = AsyncAnthropic(**kwargs)
        self.default_model = default_model
        self.chat = self  # For compatibility with OpenAI interface
        self.completions = self

    def _resolve_model(self, model: Optional[str]) -> str:
        # Gateway ids like "google/gemini-..." mean nothing to Anthropic.
        if model and model.startswith("claude"):
            return model
        return self.default_model

    @staticmethod
    def _split_system(messages: List[Dict[str, str]]) -> Tuple[str, List[Dict[str, str]]]:
        system_parts = []
        chat_messages = []
        for msg in messages or []:
            role = msg.get("role", "user")
            if role == "system":
                system_parts.append(msg.get("content", ""))
            else:
                chat_messages.append({"role": role, "content": msg.get("content", "")})
        return "\n".join(system_parts).strip(), chat_messages

    async def create(
        self,
        model: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        stream: bool = False,
        **kwargs
    ) -> Any:
        """Create a chat completion using Claude."""
        system_content, chat_messages = self._split_system(messages or [])
        request_kwargs: Dict[str, Any] = {
            "model": self._resolve_model(model),
            "max_tokens": max_tokens,
            "messages": chat_messages,
            "temperature": temperature,
        }
        if system_content:
            request_kwargs["system"] = system_content

        if stream:
            return self._stream(request_kwargs)

        response = await self.client.messages.create(**request_kwargs)
        return self._convert_response(response)

    async def _stream(self, request_kwargs: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        async with self.client.messages.stream(**request_kwargs) as stream:
            async for text in stream.text_stream:
                yield {"object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {"content": text}}]}

    def _convert_response(self, response: Any) -> Any:
        """Convert Anthropic response to OpenAI-compatible format."""
        text_content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        message = SimpleNamespace(content=text_content, role="assistant", tool_calls=None)
        choice = SimpleNamespace(message=message, finish_reason=response.stop_reason)
        return SimpleNamespace(
            choices=[choice],
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )


class GatewayLLMClient:
    """Wrapper for an OpenAI-compatible chat-completions gateway."""

    def __init__(self, api_key: str, base_url: str, default_model: str, timeout: Optional[float] = None):
        from openai import AsyncOpenAI

        kwargs: Dict[str, Any] = {"api_key": api_key, "base_url": base_url}
        if timeout:
            kwargs["timeout"] = timeout
        self.client = AsyncOpenAI(**kwargs)
        self.default_model = default_model
        self.chat = self.client.chat
        self.completions = self.client.chat.completions


def create_llm_client(
    provider: Optional[LLMProvider] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Any:
    """
    Create an LLM client based on provider.

    Args:
        provider: gateway or anthropic. Taken from config if not specified.
        api_key: API key. Taken from config if not specified.
        model: Default model. Taken from config if not specified.
        base_url: Gateway base URL. Ignored for Anthropic.

    Returns:
        LLM client with OpenAI-compatible interface
    """
    from ..config import config

    if provider is None:
        try:
            provider = LLMProvider(config.llm_provider)
        except ValueError:
            raise ConfigurationError(f"Unknown provider: {config.llm_provider}") from None

    if provider == LLMProvider.GATEWAY:
        api_key = api_key or config.gateway_api_key
        if not api_key:
            raise ConfigurationError("GATEWAY_API_KEY is required")
        base_url = base_url or config.gateway_base_url
        logger.info("llm.client_created", provider=provider.value, base_url=base_url)
        return GatewayLLMClient(
            api_key=api_key,
            base_url=base_url,
            default_model=model or config.llm_model,
            timeout=config.timeout_seconds,
        )

    if provider == LLMProvider.ANTHROPIC:
        api_key = api_key or config.anthropic_api_key
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required")
        logger.info("llm.client_created", provider=provider.value)
        return AnthropicLLMClient(
            api_key=api_key,
            default_model=model if model and model.startswith("claude") else DEFAULT_ANTHROPIC_MODEL,
            timeout=config.timeout_seconds,
        )

    raise ConfigurationError(f"Unknown provider: {provider}")
