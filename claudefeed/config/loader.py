import logging
from pathlib import Path
from typing import Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from claudefeed.config.schema import FeedConfig
from claudefeed.core.errors import ConfigError
from claudefeed.utils import expand_env_vars

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_CONFIG_PATH = Path("~/.claude-feed/config.yml")


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Path, model_class: Type[T]) -> T:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML file.
        model_class: The Pydantic model class to use for validation.

    Returns:
        The validated configuration model. Defaults when the file is missing
        or unreadable.

    Raises:
        ConfigError: If the file parses but fails validation.
    """
    if not path.exists():
        return model_class()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to read config file %s: %s", path, e)
        return model_class()

    expanded = expand_env_vars(raw)
    try:
        model = model_class.model_validate(expanded)
    except ValidationError as e:
        raise ConfigError(f"Invalid config at {path}: {e}") from e
    _warn_unknown_keys(model, "root", path)
    return model


def load_feed_config(path: Optional[Path] = None) -> FeedConfig:
    """Load the claudefeed configuration."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    return load_config(path.expanduser(), FeedConfig)
