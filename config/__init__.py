from .loader import load_config, get_config, reload_config, ConfigError
from .schema import (
    SentimentConfig,
    HttpConfig,
    CurrentRatioSourceConfig,
    FearGreedSourceConfig,
    SchedulerConfig,
    StorageConfig,
    LoggingConfig,
    NotificationConfig,
    ThresholdsConfig,
)

__all__ = [
    "load_config",
    "get_config",
    "reload_config",
    "ConfigError",
    "SentimentConfig",
    "HttpConfig",
    "CurrentRatioSourceConfig",
    "FearGreedSourceConfig",
    "SchedulerConfig",
    "StorageConfig",
    "LoggingConfig",
    "NotificationConfig",
    "ThresholdsConfig",
]
