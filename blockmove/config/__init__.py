"""Configuration management.

Settings come from a YAML file (``blockmove.yml`` by default) validated with
pydantic. ``${VAR}`` references are expanded from the environment, and a
``.env`` file in the working directory is loaded first so those variables can
live next to the deployment.
"""

from dotenv import load_dotenv

from blockmove.config.loader import expand_env_vars, load_config, resolve_config_path
from blockmove.config.schema import (
    BlockmoveConfig,
    RenderConfig,
    ServerConfig,
    SessionConfig,
    SpriteConfig,
)

load_dotenv()

__all__ = [
    "BlockmoveConfig",
    "RenderConfig",
    "ServerConfig",
    "SessionConfig",
    "SpriteConfig",
    "expand_env_vars",
    "load_config",
    "resolve_config_path",
]
