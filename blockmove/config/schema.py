from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from blockmove.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_QUIT_KEY,
    DEFAULT_TERM_HEIGHT,
    DEFAULT_TERM_WIDTH,
    FRAME_INTERVAL_MS,
    OUTBOUND_QUEUE_DEPTH,
)


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    # Falls back to SECRETS_LOCATION when unset
    host_key_path: Optional[str] = None
    keepalive_interval: int = Field(default=30, ge=0)
    login_timeout: int = Field(default=30, ge=1)


class SpriteConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    calm_path: str = "./normal.png"
    alarmed_path: str = "./scared.png"


class RenderConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    frame_interval_ms: int = Field(default=FRAME_INTERVAL_MS, ge=1)
    default_width: int = Field(default=DEFAULT_TERM_WIDTH, ge=1)
    default_height: int = Field(default=DEFAULT_TERM_HEIGHT, ge=1)
    queue_depth: int = Field(default=OUTBOUND_QUEUE_DEPTH, ge=1)


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    quit_key: str = DEFAULT_QUIT_KEY
    seed: Optional[int] = None

    @field_validator("quit_key")
    @classmethod
    def validate_quit_key(cls, v: str) -> str:
        """The quit signal is a single input byte."""
        if len(v.encode("utf-8")) != 1:
            raise ValueError(f"quit_key must be a single ASCII character, got: {v!r}")
        return v


class BlockmoveConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    server: ServerConfig = Field(default_factory=ServerConfig)
    sprites: SpriteConfig = Field(default_factory=SpriteConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @property
    def quit_byte(self) -> bytes:
        return self.session.quit_key.encode("utf-8")
