# services/llm_providers.py
"""Chat-completion providers behind one async interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic
import openai
from loguru import logger

from services.exceptions import ConfigurationError, ProviderError

FALLBACK_CONTENT = "I apologize, but I could not generate a response."


@dataclass
class Completion:
    content: str
    usage: Dict[str, int] = field(default_factory=dict)
    model: Optional[str] = None


class BaseLLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    name = "custom"

    @abstractmethod
    async def generate_response(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        """Generate a reply.

        Parameters
        ----------
        messages : List[Dict[str, Any]]
            OpenAI-style chat messages (role/content/name), system prompt first
            when configured.
        model : str
            Provider model name.
        temperature : float
        max_tokens : int

        Returns
        -------
        Completion
            Reply text plus token usage normalized to
            prompt_tokens / completion_tokens / total_tokens.
        """


class OpenAIProvider(BaseLLMProvider):
    name = "openai"

    def __init__(self, api_key: str, client=None):
        self.client = client or openai.AsyncOpenAI(api_key=api_key)

    async def generate_response(self, messages, model, temperature, max_tokens) -> Completion:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return Completion(content=(content or FALLBACK_CONTENT).strip(), usage=usage, model=model)


class AnthropicProvider(BaseLLMProvider):
    name = "anthropic"

    def __init__(self, api_key: str, client=None):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)

    @staticmethod
    def to_anthropic(messages: List[Dict[str, Any]]):
        """Split out the system prompt and fold messages into alternating turns"""
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system") or None
        turns: List[Dict[str, str]] = []
        for m in messages:
            if m["role"] == "system":
                continue
            if turns and turns[-1]["role"] == m["role"]:
                turns[-1]["content"] += "\n\n" + m["content"]
            else:
                turns.append({"role": m["role"], "content": m["content"]})
        # Conversations must open with a user turn
        while turns and turns[0]["role"] != "user":
            turns.pop(0)
        return system, turns

    async def generate_response(self, messages, model, temperature, max_tokens) -> Completion:
        system, turns = self.to_anthropic(messages)
        params = {"model": model, "messages": turns, "temperature": temperature, "max_tokens": max_tokens}
        if system:
            params["system"] = system

        try:
            response = await self.client.messages.create(**params)
        except anthropic.APIError as e:
            raise ProviderError(self.name, str(e)) from e

        text = "".join(getattr(block, "text", "") for block in response.content)
        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }
        return Completion(content=(text or FALLBACK_CONTENT).strip(), usage=usage, model=model)


def build_provider(name: str, api_key: Optional[str]) -> Optional[BaseLLMProvider]:
    """Provider for a configured name; None when the key is missing"""
    providers = {"openai": OpenAIProvider, "anthropic": AnthropicProvider}
    if name not in providers:
        raise ConfigurationError(f"Unsupported AI provider: {name}")
    if not api_key:
        logger.warning(f"⚠️ {name} API key not configured")
        return None
    return providers[name](api_key)
