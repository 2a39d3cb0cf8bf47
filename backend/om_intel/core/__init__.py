"""Core infrastructure module - config, DI container, protocols, exceptions."""

from om_intel.core.config import AppConfig, GateConfig, IngestConfig, LLMConfig, StoreConfig
from om_intel.core.exceptions import AppError, LLMError, StorageError

__all__ = [
    "AppConfig",
    "GateConfig",
    "IngestConfig",
    "LLMConfig",
    "StoreConfig",
    "AppError",
    "LLMError",
    "StorageError",
]
