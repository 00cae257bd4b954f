"""Exception types for blockmove.

Everything here is a startup precondition failure: the daemon logs it and
exits before accepting connections.
"""


class BlockmoveError(Exception):
    """Base class for blockmove errors."""


class SpriteLoadError(BlockmoveError):
    """Raised when a sprite image is missing or cannot be decoded."""


class HostKeyError(BlockmoveError):
    """Raised when the SSH host key is not configured or cannot be read."""


class ConfigError(BlockmoveError):
    """Raised when the configuration file fails validation."""
