import os

from .base import BaseConfig, ConfigurationError
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig

CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name=None):
    """
    Resolve and return the correct configuration class.

    The explicit ``name`` wins; otherwise the APP_ENV environment
    variable is used, defaulting to development.
    """

    env = (name or os.getenv("APP_ENV", "development")).lower()

    config = CONFIGS.get(env)
    if config is None:
        raise ConfigurationError(f"Invalid APP_ENV value: {env}")

    return config.validate()


__all__ = [
    "BaseConfig",
    "ConfigurationError",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "get_config",
]
