"""Application configuration helpers."""

from __future__ import annotations

from .azure_devops import AzureDevOpsConfig, get_azure_devops_config
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .productboard import ProductBoardConfig, get_productboard_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "AzureDevOpsConfig",
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "ProductBoardConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "get_azure_devops_config",
    "get_database_config",
    "get_productboard_config",
    "get_storage_config",
    "get_sync_config",
    "require_env_vars",
]
