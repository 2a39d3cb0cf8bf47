"""OpenAI LLM Provider."""

from typing import Any

from langchain_openai import ChatOpenAI

from om_intel.core.config import LLMConfig
from om_intel.core.exceptions import LLMError
from om_intel.core.logging import get_logger
from om_intel.llm.factory import LLMFactory
from om_intel.llm.messages import message_text

logger = get_logger(__name__)


@LLMFactory.register("openai", api_key_field="openai_api_key")
class OpenAIProvider:
    """OpenAI API provider using langchain-openai."""

    name = "openai"

    def __init__(self, config: LLMConfig):
        self.config = config
        client_kwargs = {
            "model": config.model,
            "api_key": config.openai_api_key,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "timeout": config.timeout_seconds,
            "max_retries": 2,
        }
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        self.client = ChatOpenAI(**client_kwargs)

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> str:
        """Generate a single response.

        ``json_mode`` asks the API for a JSON object response.
        """
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.ainvoke(messages, **kwargs)
        except Exception as e:
            logger.error("llm_call_failed", provider=self.name, model=self.config.model, error=str(e))
            raise LLMError(f"OpenAI request failed: {e}", provider=self.name) from e

        return message_text(response.content)
