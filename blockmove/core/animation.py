"""Per-session sprite physics: bounce, reflect and pick a sprite mode.

Each tick the sprite's offset is checked against the visible area shrunk by
fixed margins. Crossing a boundary reverses that axis and re-rolls its speed
between a cruise and a burst magnitude, which gives an erratic, game-like
bounce instead of a periodic billiard path.
"""

from __future__ import annotations

import hashlib
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator

from blockmove.constants import (
    ALARM_SPEED,
    BURST_CHANCE_X,
    BURST_CHANCE_Y,
    BURST_SPEED_X,
    BURST_SPEED_Y,
    CRUISE_SPEED_X,
    CRUISE_SPEED_Y,
    INITIAL_OFFSET,
    INITIAL_VELOCITY,
    MARGIN_X,
    MARGIN_Y,
)
from blockmove.core.sprite_field import RGB, Point, SpriteField, SpriteSet

RngFactory = Callable[[int], random.Random]


class SpriteMode(str, Enum):
    """Which sprite variant a tick renders."""

    CALM = "calm"
    ALARMED = "alarmed"


@dataclass
class Vector2:
    x: float = 0.0
    y: float = 0.0

    def __iadd__(self, other: "Vector2") -> "Vector2":
        self.x += other.x
        self.y += other.y
        return self

    def length(self) -> float:
        return math.hypot(self.x, self.y)


def select_mode(velocity: Vector2) -> SpriteMode:
    """Pick the sprite variant from the instantaneous speed. No hysteresis."""
    if velocity.length() > ALARM_SPEED:
        return SpriteMode.ALARMED
    return SpriteMode.CALM


def reflect(component: float, magnitude: float) -> float:
    """Reverse a velocity component and give it a new magnitude."""
    return -math.copysign(magnitude, component)


def roll_speed_x(rng: random.Random) -> float:
    return BURST_SPEED_X if rng.random() < BURST_CHANCE_X else CRUISE_SPEED_X


def roll_speed_y(rng: random.Random) -> float:
    return BURST_SPEED_Y if rng.random() < BURST_CHANCE_Y else CRUISE_SPEED_Y


def x_out_of_bounds(offset_x: float, width: float) -> bool:
    return offset_x > 0 or offset_x < -(width - MARGIN_X)


def y_out_of_bounds(offset_y: float, height: float) -> bool:
    return offset_y > 0 or offset_y < -(height - MARGIN_Y)


@dataclass
class AnimationState:
    """Position and velocity of one session's sprite.

    Owned by a single session and advanced only by the render scheduler.
    """

    offset: Vector2 = field(default_factory=lambda: Vector2(*INITIAL_OFFSET))
    velocity: Vector2 = field(default_factory=lambda: Vector2(*INITIAL_VELOCITY))
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def advance(self, width: float, height: float) -> None:
        """Reflect on boundary crossings, then take one Euler step."""
        if y_out_of_bounds(self.offset.y, height):
            self.velocity.y = reflect(self.velocity.y, roll_speed_y(self.rng))
        if x_out_of_bounds(self.offset.x, width):
            self.velocity.x = reflect(self.velocity.x, roll_speed_x(self.rng))
        self.offset += self.velocity

    @property
    def mode(self) -> SpriteMode:
        return select_mode(self.velocity)

    def sprite(self, sprites: SpriteSet) -> SpriteField:
        """The sprite variant for the current velocity."""
        if self.mode is SpriteMode.ALARMED:
            return sprites.alarmed
        return sprites.calm

    def project(self, sprite: SpriteField, height: float) -> Iterator[tuple[list[Point], RGB]]:
        """Translate every sprite point into canvas space, one batch per color.

        Increasing offset moves the sprite left and down; the field is
        flipped vertically for the canvas's bottom-left origin.
        """
        ox, oy = self.offset.x, self.offset.y
        for color, points in sprite.by_color().items():
            yield [(x - ox, height - y + oy) for x, y in points], color


def seeded_rng_factory(seed: int) -> RngFactory:
    """Derive an independent, reproducible stream per session id."""

    def factory(session_id: int) -> random.Random:
        # Stable across processes, unlike hash()
        digest = hashlib.sha256(f"{seed}:{session_id}".encode("utf-8")).digest()
        return random.Random(int.from_bytes(digest[:8], byteorder="big"))

    return factory


def entropy_rng_factory(_session_id: int) -> random.Random:
    return random.Random()


def rng_factory_for(seed: int | None) -> RngFactory:
    """Seeded per-session streams when `seed` is set, fresh entropy otherwise."""
    if seed is None:
        return entropy_rng_factory
    return seeded_rng_factory(seed)
