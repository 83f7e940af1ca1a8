"""Tests for LLMClient provider abstraction."""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from discovery.common.config import LLMConfig
from discovery.common.llm_client import LLMClient, create_llm_client

MESSAGES = [
    {"role": "system", "content": "Be brief."},
    {"role": "user", "content": "Who knows React?"},
]


class TestLLMClientInit:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "google"])
    def test_missing_key_logs_info(self, caplog, provider):
        with caplog.at_level(logging.INFO, logger="discovery.common.llm_client"):
            client = LLMClient(provider=provider)
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="discovery.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_create_from_config_uses_provider_model(self):
        client = create_llm_client(LLMConfig(provider="anthropic"))
        assert client.provider == "anthropic"
        assert client.model == LLMConfig().anthropic_model
        assert not client.is_available


class TestLLMClientUnavailable:
    @pytest.mark.asyncio
    async def test_complete_raises(self):
        with pytest.raises(RuntimeError, match="not available"):
            await LLMClient(provider="openai").complete(MESSAGES)

    @pytest.mark.asyncio
    async def test_stream_raises(self):
        with pytest.raises(RuntimeError, match="not available"):
            async for _ in LLMClient(provider="openai").stream(MESSAGES):
                pass


class TestOpenAI:
    @pytest.mark.asyncio
    async def test_complete(self):
        client = LLMClient(provider="openai", model="gpt-4o-mini")
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Alice."))]
        ))

        assert await client.complete(MESSAGES, temperature=0.2, max_tokens=50) == "Alice."
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == MESSAGES
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    async def test_stream_yields_deltas(self):
        async def chunks():
            for text in ["Ali", None, "ce."]:
                yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])

        client = LLMClient(provider="openai", model="gpt-4o-mini")
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=chunks())

        deltas = [d async for d in client.stream(MESSAGES)]

        assert deltas == ["Ali", "ce."]
        assert client._client.chat.completions.create.call_args.kwargs["stream"] is True


class TestAnthropic:
    @pytest.mark.asyncio
    async def test_system_prompt_lifted(self):
        client = LLMClient(provider="anthropic", model="claude")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(text="Alice.")]
        ))

        assert await client.complete(MESSAGES) == "Alice."
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["messages"] == [{"role": "user", "content": "Who knows React?"}]


class TestSplitSystem:
    def test_multiple_system_messages_joined(self):
        system, rest = LLMClient._split_system([
            {"role": "system", "content": "A"},
            {"role": "system", "content": "B"},
            {"role": "user", "content": "q"},
        ])
        assert system == "A\n\nB"
        assert rest == [{"role": "user", "content": "q"}]
