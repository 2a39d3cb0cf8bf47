"""LLM provider registry.

Providers register themselves with ``@LLMFactory.register(name, api_key_field)``;
``LLM_PROVIDER`` selects one at startup.
"""

from dataclasses import dataclass

from om_intel.core.config import LLMConfig
from om_intel.core.exceptions import ConfigurationError
from om_intel.core.protocols import LLMProvider


@dataclass(frozen=True)
class _Registration:
    provider_cls: type
    api_key_field: str | None


class LLMFactory:
    """Creates the configured chat-completion provider."""

    _providers: dict[str, _Registration] = {}

    @classmethod
    def register(cls, name: str, api_key_field: str | None = None):
        """Class decorator; ``api_key_field`` names the LLMConfig attribute the provider needs."""

        def decorator(provider_cls: type) -> type:
            cls._providers[name] = _Registration(provider_cls, api_key_field)
            return provider_cls

        return decorator

    @classmethod
    def create(cls, config: LLMConfig) -> LLMProvider:
        """Build the provider named by ``config.provider``.

        Raises:
            ConfigurationError: unknown provider or missing API key
        """
        registration = cls._providers.get(config.provider)
        if registration is None:
            raise ConfigurationError(
                f"Unknown LLM provider: '{config.provider}'. "
                f"Available: {', '.join(sorted(cls._providers)) or 'none registered'}"
            )

        key_field = registration.api_key_field
        if key_field and not getattr(config, key_field, None):
            raise ConfigurationError(
                f"LLM provider '{config.provider}' requires LLM_{key_field.upper()}"
            )

        return registration.provider_cls(config)

    @classmethod
    def available_providers(cls) -> list[str]:
        return sorted(cls._providers)
