"""YAML configuration loader."""

import logging
from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError

from .schemas import ThreatSpecConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = 'threatspec.yaml'


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or validated."""
    pass


def load_config(config_path: Optional[str | Path] = None) -> ThreatSpecConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Explicit file to load. When omitted, `threatspec.yaml`
            in the working directory is used if it exists.

    Returns:
        Validated configuration, defaults when no file applies.
    """
    if config_path is None:
        default = Path(DEFAULT_CONFIG_FILE)
        if not default.is_file():
            return ThreatSpecConfig()
        config_path = default

    path = Path(config_path)
    if not path.is_file():
        raise ConfigError(f"Configuration file does not exist: {path}")

    logger.debug("loading configuration from %s", path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parse error in {path}: {e}")

    if data is None:
        return ThreatSpecConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        return ThreatSpecConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation error in {path}: {e}")
