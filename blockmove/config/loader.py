import logging
import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError

from blockmove.config.schema import BlockmoveConfig
from blockmove.constants import DEFAULT_CONFIG_PATH, HOST_KEY_ENV
from blockmove.core.errors import ConfigError

logger = logging.getLogger(__name__)


def expand_env_vars(config: object) -> object:
    """Recursively replace ${VAR} patterns with environment variable values.

    Unset variables are left as written.
    """
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, config)
    return config


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys()))
    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Path) -> BlockmoveConfig:
    """Load and validate configuration from a YAML file.

    A missing file yields the defaults. A file that cannot be parsed or fails
    validation raises ConfigError.
    """
    if not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        raw: object = {}
    else:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    try:
        model = BlockmoveConfig.model_validate(expand_env_vars(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    _warn_unknown_keys(model, "root", path)
    # Unexpanded ${VAR} means the variable was unset
    key_path = model.server.host_key_path
    if not key_path or key_path.startswith("${"):
        model.server.host_key_path = os.getenv(HOST_KEY_ENV) or None
    return model


def resolve_config_path(cli_path: Optional[str] = None) -> Path:
    """Config path from the CLI flag, BLOCKMOVE_CONFIG, or the working directory."""
    return Path(cli_path or os.getenv("BLOCKMOVE_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()
