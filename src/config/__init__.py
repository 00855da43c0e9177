"""Configuration loading for the analytics pipeline.

Configuration lives in a single YAML file, src/config/config.yaml by default
(override with the ANALYTICS_CONFIG environment variable or --config).

Usage:
    >>> from config import get_config
    >>> config = get_config()
    >>> config.kafka.primary_topics
    ['user-events', 'system-events']

Settings are merged in the following priority (highest to lowest):

1. Explicit overrides passed to load_config()
2. Environment variables referenced from the YAML file
3. YAML configuration file
4. Dataclass defaults
"""

from config.config import (
    AnalyticsConfig,
    ApiSettings,
    ElasticsearchSettings,
    KafkaSettings,
    ObservabilitySettings,
    PostgresSettings,
    ProcessingSettings,
    RedisSettings,
    config_from_dict,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "AnalyticsConfig",
    "ApiSettings",
    "ElasticsearchSettings",
    "KafkaSettings",
    "ObservabilitySettings",
    "PostgresSettings",
    "ProcessingSettings",
    "RedisSettings",
    "config_from_dict",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
]
