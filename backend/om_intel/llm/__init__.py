"""LLM abstraction layer - providers and factory."""

# Import providers first to trigger registration via decorators
from om_intel.llm import anthropic_provider, openai_provider
from om_intel.llm.factory import LLMFactory

__all__ = ["LLMFactory"]
