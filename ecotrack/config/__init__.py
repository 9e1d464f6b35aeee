"""Configuration module for ecosystem-tracker."""

from ecotrack.config.settings import TrackerConfig, get_env_github_token, load_config

__all__ = ["TrackerConfig", "get_env_github_token", "load_config"]
