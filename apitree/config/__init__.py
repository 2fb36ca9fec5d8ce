"""Configuration module for apitree."""

from .loader import ConfigLoader, load_config
from .models import ApiTreeConfig, ApiTreeSettings, DatabaseSettings

__all__ = [
    "ApiTreeConfig",
    "ApiTreeSettings",
    "ConfigLoader",
    "DatabaseSettings",
    "load_config",
]
