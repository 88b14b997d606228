"""Configuration management for farmbot."""

from src.config.loader import Config, ConfigManager, get_default_config, load_config

__all__ = ["Config", "ConfigManager", "get_default_config", "load_config"]
