"""Sprite fields: decoded images as point -> color maps.

A sprite field is loaded once at startup and shared read-only by every
session. Coordinates are canvas units: columns map 1:1, rows are squashed by
half so a roughly square source image fits the taller half-block cells.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping

from PIL import Image

from blockmove.constants import ROW_SQUASH
from blockmove.core.errors import SpriteLoadError

logger = logging.getLogger(__name__)

Point = tuple[float, float]
RGB = tuple[int, int, int]


def squash_row(row: int) -> float:
    """Map a source row to its canvas y. Rows 0 and 1 both land on 0."""
    return row * ROW_SQUASH * float(row > 1)


@dataclass(frozen=True)
class SpriteField:
    """Immutable mapping from canvas point to RGB color."""

    name: str
    pixels: Mapping[Point, RGB]
    # Points grouped by color so a frame issues one draw call per color
    _by_color: Mapping[RGB, tuple[Point, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        frozen = MappingProxyType(dict(self.pixels))
        grouped: dict[RGB, list[Point]] = {}
        for point, color in frozen.items():
            grouped.setdefault(color, []).append(point)
        object.__setattr__(self, "pixels", frozen)
        object.__setattr__(
            self, "_by_color", MappingProxyType({color: tuple(points) for color, points in grouped.items()})
        )

    def __len__(self) -> int:
        return len(self.pixels)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.pixels)

    def __getitem__(self, point: Point) -> RGB:
        return self.pixels[point]

    def by_color(self) -> Mapping[RGB, tuple[Point, ...]]:
        """Points of the field grouped by their color."""
        return self._by_color


@dataclass(frozen=True)
class SpriteSet:
    """The calm and alarmed variants of the sprite."""

    calm: SpriteField
    alarmed: SpriteField


def sprite_field_from_image(image: Image.Image, name: str) -> SpriteField:
    """Build a sprite field from an already decoded image.

    When two source pixels collapse onto the same point the later row wins.
    """
    rgb = image.convert("RGB")
    width, height = rgb.size
    pixels: dict[Point, RGB] = {}
    for row in range(height):
        y = squash_row(row)
        for col in range(width):
            r, g, b = rgb.getpixel((col, row))
            pixels[(float(col), y)] = (r, g, b)
    return SpriteField(name=name, pixels=pixels)


def load_sprite_field(path: str | Path, name: str | None = None) -> SpriteField:
    """Decode the image at `path` into a sprite field.

    Raises:
        SpriteLoadError: If the file is missing or cannot be decoded.
    """
    path = Path(path)
    try:
        with Image.open(path) as image:
            image.load()
            sprite = sprite_field_from_image(image, name or path.stem)
    except FileNotFoundError as exc:
        raise SpriteLoadError(f"Sprite image not found: {path}") from exc
    except (OSError, ValueError) as exc:
        raise SpriteLoadError(f"Could not decode sprite image {path}: {exc}") from exc

    logger.info("Loaded sprite %s from %s (%d points)", sprite.name, path, len(sprite))
    return sprite


def load_sprite_set(calm_path: str | Path, alarmed_path: str | Path) -> SpriteSet:
    """Load both sprite variants. Either failing is fatal."""
    return SpriteSet(
        calm=load_sprite_field(calm_path, name="calm"),
        alarmed=load_sprite_field(alarmed_path, name="alarmed"),
    )
