"""Terminal render target: a half-block point canvas rendered with rich.

A draw callback paints points in canvas units (`[0, W] x [0, H]`, origin
bottom-left). Each terminal cell holds two vertical pixels using the upper and
lower half-block glyphs, and rich turns the styled rows into truecolor ANSI.
"""

from __future__ import annotations

import io
import logging
from typing import Callable, Iterable, Iterator, Protocol

from rich.color import Color
from rich.console import Console
from rich.control import Control
from rich.style import Style
from rich.text import Text

from blockmove.constants import CLEAR_SCREEN
from blockmove.core.sprite_field import RGB, Point

logger = logging.getLogger(__name__)

UPPER_HALF = "▀"
LOWER_HALF = "▄"


class FrameSink(Protocol):
    def write(self, data: bytes) -> None: ...


class HalfBlockCanvas:
    """Paint context handed to draw callbacks."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        # (column, pixel row from the top) -> color
        self._pixels: dict[tuple[int, int], RGB] = {}

    def __len__(self) -> int:
        return len(self._pixels)

    def draw_points(self, coords: Iterable[Point], color: RGB) -> None:
        """Plot points; anything outside the canvas bounds is dropped."""
        width, height = self.width, self.height
        if width <= 0 or height <= 0:
            return
        x_scale = (width - 1) / width
        y_scale = (height * 2 - 1) / height
        pixels = self._pixels
        for x, y in coords:
            if x < 0 or x > width or y < 0 or y > height:
                continue
            pixels[(int(x * x_scale), int((height - y) * y_scale))] = color

    def pixel(self, column: int, row: int) -> RGB | None:
        return self._pixels.get((column, row))

    def lines(self) -> Iterator[Text]:
        """One rich Text per terminal row."""
        for cell_row in range(self.height):
            line = Text(no_wrap=True, overflow="crop")
            for column in range(self.width):
                upper = self._pixels.get((column, cell_row * 2))
                lower = self._pixels.get((column, cell_row * 2 + 1))
                if upper is None and lower is None:
                    line.append(" ")
                elif lower is None:
                    line.append(UPPER_HALF, style=Style(color=_rich_color(upper)))
                elif upper is None:
                    line.append(LOWER_HALF, style=Style(color=_rich_color(lower)))
                else:
                    line.append(UPPER_HALF, style=Style(color=_rich_color(upper), bgcolor=_rich_color(lower)))
            yield line


def _rich_color(rgb: RGB | None) -> Color | None:
    if rgb is None:
        return None
    return Color.from_rgb(*rgb)


def render_frame(canvas: HalfBlockCanvas) -> bytes:
    """Encode a full redraw of `canvas` with absolute cursor positioning."""
    buffer = io.StringIO()
    console = Console(
        file=buffer,
        width=max(canvas.width, 1),
        height=max(canvas.height, 1),
        force_terminal=True,
        color_system="truecolor",
        no_color=False,
        legacy_windows=False,
        highlight=False,
        markup=False,
        emoji=False,
    )
    for row, line in enumerate(canvas.lines()):
        console.control(Control.move_to(0, row))
        console.print(line, end="", crop=True, soft_wrap=False)
    return buffer.getvalue().encode("utf-8")


class RenderTarget:
    """One client's drawable area.

    Frames identical to the previous one are not re-sent. A resize clears
    the screen before the next frame. A target created with `sized=False`
    draws nothing until its first resize reports the real terminal size.
    """

    def __init__(self, sink: FrameSink, width: int, height: int, sized: bool = True) -> None:
        self._sink = sink
        self.width = width
        self.height = height
        self.sized = sized
        self._last_frame: bytes | None = None
        self._clear_pending = True

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def resize(self, width: int, height: int) -> None:
        self.sized = True
        if (width, height) == self.size:
            return
        self.width = width
        self.height = height
        self._last_frame = None
        self._clear_pending = True

    def draw(self, paint: Callable[[HalfBlockCanvas], None]) -> bool:
        """Run `paint` on a fresh canvas and enqueue the frame.

        Returns:
            True if bytes were handed to the sink.
        """
        if not self.sized or self.width <= 0 or self.height <= 0:
            return False
        canvas = HalfBlockCanvas(self.width, self.height)
        paint(canvas)
        frame = render_frame(canvas)
        if frame == self._last_frame:
            return False
        payload = CLEAR_SCREEN + frame if self._clear_pending else frame
        self._sink.write(payload)
        self._last_frame = frame
        self._clear_pending = False
        return True
