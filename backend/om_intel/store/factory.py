"""Factory for creating context store instances."""

from om_intel.core.config import StoreConfig
from om_intel.core.exceptions import ConfigurationError
from om_intel.core.protocols import ContextStore


class ContextStoreFactory:
    """Factory for creating context store instances using registry pattern."""

    _registry: dict[str, type] = {}

    @classmethod
    def register(cls, backend: str):
        """Decorator to register a context store implementation.

        Usage:
            @ContextStoreFactory.register("redis")
            class RedisContextStore:
                ...
        """

        def decorator(store_cls: type) -> type:
            cls._registry[backend] = store_cls
            return store_cls

        return decorator

    @classmethod
    def create(cls, config: StoreConfig) -> ContextStore:
        """Create a context store from configuration.

        Raises:
            ConfigurationError: If backend is not registered
        """
        store_cls = cls._registry.get(config.backend)
        if store_cls is None:
            raise ConfigurationError(
                f"Unknown store backend: {config.backend}. Available: {list(cls._registry.keys())}"
            )
        return store_cls.from_config(config)

    @classmethod
    def available_backends(cls) -> list[str]:
        """Get list of available backend names."""
        return list(cls._registry.keys())
