"""Anthropic LLM Provider."""

from typing import Any

from langchain_anthropic import ChatAnthropic

from om_intel.core.config import LLMConfig
from om_intel.core.exceptions import LLMError
from om_intel.core.logging import get_logger
from om_intel.llm.factory import LLMFactory
from om_intel.llm.messages import message_text

logger = get_logger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with a single JSON object and nothing else."


def prepare_messages(messages: list[dict[str, str]], json_mode: bool = False) -> list[dict[str, str]]:
    """Fold every system message into one leading system prompt.

    The Messages API takes a single system prompt; with ``json_mode`` the
    JSON-only instruction is appended to it.
    """
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    if json_mode:
        system_parts.append(JSON_ONLY_INSTRUCTION)
    rest = [m for m in messages if m.get("role") != "system"]
    if not system_parts:
        return rest
    return [{"role": "system", "content": "\n\n".join(system_parts)}, *rest]


@LLMFactory.register("anthropic", api_key_field="anthropic_api_key")
class AnthropicProvider:
    """Anthropic API provider using langchain-anthropic.

    Supports custom base_url for Anthropic-compatible APIs.
    """

    name = "anthropic"

    def __init__(self, config: LLMConfig):
        self.config = config
        client_kwargs = {
            "model": config.model,
            "api_key": config.anthropic_api_key,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "timeout": config.timeout_seconds,
            "max_retries": 2,
        }
        if config.base_url:
            client_kwargs["anthropic_api_url"] = config.base_url
        self.client = ChatAnthropic(**client_kwargs)

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> str:
        """Generate a single response.

        The Messages API has no JSON mode; ``json_mode`` adds a JSON-only
        instruction to the system prompt instead.
        """
        messages = prepare_messages(messages, json_mode)

        try:
            response = await self.client.ainvoke(messages, **kwargs)
        except Exception as e:
            logger.error("llm_call_failed", provider=self.name, model=self.config.model, error=str(e))
            raise LLMError(f"Anthropic request failed: {e}", provider=self.name) from e

        return message_text(response.content)
