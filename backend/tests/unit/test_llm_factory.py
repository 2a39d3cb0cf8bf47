"""Tests for LLM Factory and providers."""

from types import SimpleNamespace

import pytest

from om_intel.core.config import LLMConfig
from om_intel.core.exceptions import ConfigurationError, LLMError
from om_intel.llm import LLMFactory
from om_intel.llm.anthropic_provider import JSON_ONLY_INSTRUCTION, prepare_messages
from om_intel.llm.messages import message_text


class FakeChatModel:
    def __init__(self, content="ok", error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls = []

    async def ainvoke(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.content)


class TestLLMFactory:
    """Test cases for LLM Factory."""

    def test_available_providers(self):
        """Test that providers are registered."""
        providers = LLMFactory.available_providers()
        assert "openai" in providers
        assert "anthropic" in providers

    def test_create_openai_provider(self):
        """Test creating OpenAI provider."""
        config = LLMConfig(provider="openai", model="gpt-4o-mini", openai_api_key="test-key")
        provider = LLMFactory.create(config)
        assert provider.__class__.__name__ == "OpenAIProvider"

    def test_create_anthropic_provider(self):
        config = LLMConfig(
            provider="anthropic",
            model="claude-3-5-haiku-latest",
            anthropic_api_key="test-key",
        )
        provider = LLMFactory.create(config)
        assert provider.__class__.__name__ == "AnthropicProvider"

    def test_unknown_provider_raises(self):
        """Test that unknown provider raises error."""
        config = LLMConfig(provider="unknown", model="x")
        with pytest.raises(ConfigurationError) as exc_info:
            LLMFactory.create(config)
        assert "Unknown LLM provider" in str(exc_info.value.message)

    def test_missing_api_key_raises(self):
        config = LLMConfig(provider="anthropic", model="claude-3-5-haiku-latest", anthropic_api_key=None)
        with pytest.raises(ConfigurationError) as exc_info:
            LLMFactory.create(config)
        assert "LLM_ANTHROPIC_API_KEY" in exc_info.value.message


class TestProviders:
    """Provider calls are made through the langchain chat model."""

    @pytest.mark.asyncio
    async def test_openai_json_mode(self):
        provider = LLMFactory.create(LLMConfig(provider="openai", openai_api_key="test-key"))
        provider.client = FakeChatModel('{"bullets": []}')

        result = await provider.generate([{"role": "user", "content": "hi"}], json_mode=True, max_tokens=350)

        assert result == '{"bullets": []}'
        _, kwargs = provider.client.calls[0]
        assert kwargs == {"response_format": {"type": "json_object"}, "max_tokens": 350}

    @pytest.mark.asyncio
    async def test_errors_become_llm_error(self):
        provider = LLMFactory.create(LLMConfig(provider="openai", openai_api_key="test-key"))
        provider.client = FakeChatModel(error=RuntimeError("rate limited"))

        with pytest.raises(LLMError) as exc_info:
            await provider.generate([{"role": "user", "content": "hi"}])

        assert exc_info.value.details == {"provider": "openai"}

    @pytest.mark.asyncio
    async def test_anthropic_content_blocks(self):
        provider = LLMFactory.create(LLMConfig(provider="anthropic", anthropic_api_key="test-key"))
        provider.client = FakeChatModel([{"type": "text", "text": "NOI is "}, {"type": "text", "text": "$1.2M"}])

        result = await provider.generate(
            [{"role": "system", "content": "a"}, {"role": "user", "content": "NOI?"}]
        )

        assert result == "NOI is $1.2M"


class TestMessageHelpers:
    def test_system_messages_folded(self):
        messages = [
            {"role": "system", "content": "base"},
            {"role": "system", "content": "Context:"},
            {"role": "user", "content": "What is the NOI?"},
        ]

        prepared = prepare_messages(messages)

        assert prepared == [
            {"role": "system", "content": "base\n\nContext:"},
            {"role": "user", "content": "What is the NOI?"},
        ]

    def test_json_instruction_appended(self):
        prepared = prepare_messages([{"role": "user", "content": "x"}], json_mode=True)
        assert prepared[0] == {"role": "system", "content": JSON_ONLY_INSTRUCTION}

    def test_message_text(self):
        assert message_text("plain") == "plain"
        assert message_text(["a", {"type": "text", "text": "b"}, {"type": "image"}]) == "ab"
        assert message_text(None) == ""
