"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.
"""

import os
from typing import Optional

from stateless_fhir import __version__
from stateless_fhir.infrastructure.config_manager import (
    ENV_PREFIX,
    ConfigManager,
    EngineConfig,
    StoreConfig,
)

# Application metadata
APP_NAME = "stateless-fhir"
APP_VERSION = __version__

DEFAULT_LOG_LEVEL = "INFO"


class Settings:
    """Application settings loaded from configuration manager and environment.

    Engine and store configuration are loaded lazily on first access, so
    importing this module never fails on a bad environment.
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv(f"{ENV_PREFIX}APP_NAME", APP_NAME)
        self.app_version = APP_VERSION

        # Logging
        self.log_level = os.getenv(f"{ENV_PREFIX}LOG_LEVEL", DEFAULT_LOG_LEVEL)
        self.log_json = os.getenv(f"{ENV_PREFIX}LOG_JSON", "false").lower() == "true"

    @property
    def config_manager(self) -> ConfigManager:
        """Get configuration manager instance."""
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def engine_config(self) -> EngineConfig:
        """Engine configuration, validated on first access."""
        return self.config_manager.get_engine_config()

    @property
    def store_config(self) -> StoreConfig:
        """Document store configuration, validated on first access."""
        return self.config_manager.get_store_config()


# Global settings instance
settings = Settings()
