"""Transport-level events delivered to a connection handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SessionOpened:
    """The client opened a session channel."""


@dataclass(frozen=True)
class PtyRequested:
    cols: int
    rows: int
    term_type: str = ""


@dataclass(frozen=True)
class WindowResized:
    cols: int
    rows: int


@dataclass(frozen=True)
class DataReceived:
    data: bytes


@dataclass(frozen=True)
class ChannelClosed:
    """The channel is gone, or writing to it failed."""

    reason: str = "closed by client"


ConnectionEvent = Union[SessionOpened, PtyRequested, WindowResized, DataReceived, ChannelClosed]
