"""Shared utilities and configuration."""

from voxrelay.lib.config import AppConfig, load_config
from voxrelay.lib.timestamps import generate_timestamp
from voxrelay.lib.exceptions import (
    VoxRelayError,
    ConfigError,
    ConnectionFailure,
    TerminalAuthError,
    SessionExpiredError,
    RateLimitedError,
    TransientNetworkError,
    ProviderError,
    StagingError,
    DeliveryError,
    PersistenceError,
)

__all__ = [
    "AppConfig",
    "load_config",
    "generate_timestamp",
    "VoxRelayError",
    "ConfigError",
    "ConnectionFailure",
    "TerminalAuthError",
    "SessionExpiredError",
    "RateLimitedError",
    "TransientNetworkError",
    "ProviderError",
    "StagingError",
    "DeliveryError",
    "PersistenceError",
]
