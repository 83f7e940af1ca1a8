"""
Provider-agnostic LLM client for Discovery.

Supports OpenAI, Anthropic, and Google Gemini behind one async chat
interface: ``complete`` for a full answer, ``stream`` for text deltas.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Tuple

logger = logging.getLogger("discovery.common.llm_client")

Message = Dict[str, str]


class LLMClient:
    """Unified async chat completion client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @staticmethod
    def _split_system(messages: List[Message]) -> Tuple[str, List[Message]]:
        """Lift system messages out for providers that take them separately"""
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        rest = [m for m in messages if m["role"] != "system"]
        return system, rest

    def _gemini_chat(self, messages: List[Message]):
        system, rest = self._split_system(messages)
        kwargs = {"model_name": self.model}
        if system:
            kwargs["system_instruction"] = system
        model = self._client.GenerativeModel(**kwargs)
        history = [
            {"role": "user" if m["role"] == "user" else "model", "parts": [m["content"]]}
            for m in rest[:-1]
        ]
        last = rest[-1]["content"] if rest else ""
        return model.start_chat(history=history), last

    async def complete(
        self,
        messages: List[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Return the full completion text for ``messages``."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "openai":
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content or ""

        if self.provider == "anthropic":
            system, rest = self._split_system(messages)
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=rest,
                **kwargs,
            )
            return "".join(block.text for block in response.content if getattr(block, "text", None))

        if self.provider == "google":
            chat, last = self._gemini_chat(messages)
            response = await chat.send_message_async(
                last,
                generation_config={"temperature": temperature, "max_output_tokens": max_tokens},
            )
            return response.text

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    async def stream(
        self,
        messages: List[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> AsyncIterator[str]:
        """Yield completion text deltas as the provider produces them."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "openai":
            stream = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
            return

        if self.provider == "anthropic":
            system, rest = self._split_system(messages)
            kwargs = {}
            if system:
                kwargs["system"] = system
            async with self._client.messages.stream(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=rest,
                **kwargs,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
            return

        if self.provider == "google":
            chat, last = self._gemini_chat(messages)
            response = await chat.send_message_async(
                last,
                generation_config={"temperature": temperature, "max_output_tokens": max_tokens},
                stream=True,
            )
            async for chunk in response:
                if getattr(chunk, "text", None):
                    yield chunk.text
            return

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")


def create_llm_client(llm_config) -> LLMClient:
    """Build an LLMClient from an ``LLMConfig`` section."""
    return LLMClient(
        provider=llm_config.provider,
        model=llm_config.model,
        anthropic_api_key=llm_config.anthropic_api_key or None,
        openai_api_key=llm_config.openai_api_key or None,
        google_api_key=llm_config.google_api_key or None,
    )
