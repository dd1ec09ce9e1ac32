"""
Configuration management.

Config file parsing, environment resolution and the immutable agent settings.
"""

from galedi.config.loader import load_config, load_config_data
from galedi.config.resolver import resolve_config
from galedi.config.settings import (
    AgentConfig,
    EndpointConfig,
    IntervalConfig,
    LoggingConfig,
    PartnerConfig,
    ScheduleConfig,
    ServiceConfig,
    StoreConfig,
    build_agent_config,
)

__all__ = [
    "AgentConfig",
    "EndpointConfig",
    "IntervalConfig",
    "LoggingConfig",
    "PartnerConfig",
    "ScheduleConfig",
    "ServiceConfig",
    "StoreConfig",
    "build_agent_config",
    "load_config",
    "load_config_data",
    "resolve_config",
]
