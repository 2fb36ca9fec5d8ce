"""Locate and read ``apitree.yaml``."""

from __future__ import annotations

import logging
from pathlib import Path

import pydantic
import yaml

from .models import ApiTreeConfig

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Resolve the configuration for a project directory.

    ``<project>/apitree.yaml`` wins over ``~/.apitree/apitree.yaml``. A file
    that cannot be read or validated is reported and replaced by defaults,
    so a broken config never keeps the CLI from starting.
    """

    CONFIG_FILENAME = "apitree.yaml"
    USER_CONFIG_DIR = Path.home() / ".apitree"

    def __init__(self, project_path: Path | None = None):
        self._project_path = project_path or Path.cwd()

    def get_config_path(self) -> Path | None:
        for directory in (self._project_path, self.USER_CONFIG_DIR):
            candidate = directory / self.CONFIG_FILENAME
            if candidate.is_file():
                return candidate
        return None

    def load(self) -> ApiTreeConfig:
        config_path = self.get_config_path()
        if config_path is None:
            logger.debug(f"No {self.CONFIG_FILENAME} found, using defaults")
            return ApiTreeConfig()

        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            config = ApiTreeConfig.model_validate(data or {})
        except (OSError, yaml.YAMLError, pydantic.ValidationError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            return ApiTreeConfig()

        logger.info(
            f"Loaded config from {config_path} (database: {config.database.path})"
        )
        return config


def load_config(project_path: Path | str | None = None) -> ApiTreeConfig:
    """Load configuration for ``project_path`` (default: current directory)."""
    return ConfigLoader(Path(project_path) if project_path else None).load()
