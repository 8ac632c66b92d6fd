"""Display sinks that consume tiles from a :class:`TilePipeline`."""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Iterable, Optional, TextIO

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont

from .engine import Tile
from .geometry import Point, TileSpecification, Viewport, world_width_from_zoom
from .navigation import DEFAULT_VIEWPORT, ZOOM_STEP, Drag, Event, Reset, Resize, Scroll, apply_event
from .pipeline import PipelineStatus, TilePipeline

logger = logging.getLogger(__name__)

# Half-open iteration-count ranges and their glyphs.
SYMBOL_BUCKETS = (
    (0, 1, " "),
    (1, 64, "+"),
    (64, 128, "*"),
    (128, 255, "#"),
)
OVERFLOW_SYMBOL = "X"

SETTLED = (PipelineStatus.FRESH, PipelineStatus.FAILED, PipelineStatus.WORKER_UNAVAILABLE)


def symbol_for(count: int) -> str:
    for low, high, symbol in SYMBOL_BUCKETS:
        if low <= count < high:
            return symbol
    return OVERFLOW_SYMBOL


def render_ascii(tile: Tile) -> str:
    """Render a tile as a character grid, one text line per pixel row."""

    return "\n".join("".join(symbol_for(int(count)) for count in row) for row in tile.iterations)


def drive_until_settled(pipeline: TilePipeline, viewport: Viewport, timeout: Optional[float] = None) -> PipelineStatus:
    """Tick ``pipeline`` until the tile for ``viewport`` is current or the pipeline gives up.

    Idle time is spent blocked on the completion channel rather than spinning.
    """

    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        status = pipeline.tick(viewport)
        if status in SETTLED:
            return status
        remaining = None if deadline is None else deadline - time.monotonic()
        if remaining is not None and remaining <= 0:
            return status
        pipeline.wait(remaining)


def run_terminal(
    pipeline: TilePipeline,
    viewport: Viewport,
    *,
    events: Iterable[Event] = (),
    zoom_step: float = ZOOM_STEP,
    timeout: Optional[float] = None,
    stream: Optional[TextIO] = None,
) -> Optional[Tile]:
    """Print the tile for ``viewport`` and for every viewport reached by ``events``."""

    stream = stream if stream is not None else sys.stdout
    viewports = [viewport]
    for event in events:
        viewport = apply_event(viewport, event, zoom_step=zoom_step)
        viewports.append(viewport)

    for index, current in enumerate(viewports):
        status = drive_until_settled(pipeline, current, timeout)
        if status is not PipelineStatus.FRESH:
            logger.error("No fresh tile available (%s): %s", status.value, pipeline.last_error)
            return None
        if index:
            stream.write("\n")
        stream.write(render_ascii(pipeline.current_tile))
        stream.write("\n")
    stream.flush()
    return pipeline.current_tile


def colorize(tile: Tile, colormap: str = "gray") -> np.ndarray:
    """Map a tile's grayscale values through a matplotlib colormap to RGB bytes."""

    spec = tile.specification
    gray = tile.colors[:, 0].reshape(spec.pixel_height, spec.pixel_width)
    cmap = matplotlib.colormaps[colormap]
    rgba = np.asarray(cmap(gray))
    return np.uint8(np.clip(rgba[..., :3] * 255, 0, 255))


def tile_to_image(tile: Tile, colormap: str = "gray") -> PIL.Image.Image:
    return PIL.Image.fromarray(colorize(tile, colormap))


_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeMono.ttf",
)


def _load_hud_font(image: PIL.Image.Image) -> PIL.ImageFont.ImageFont:
    target_size = max(10, int(round(max(min(image.size), 1) * 0.04)))
    for path in _FONT_CANDIDATES:
        font_path = Path(path)
        if font_path.exists():
            try:
                return PIL.ImageFont.truetype(str(font_path), target_size)
            except OSError:
                continue
    return PIL.ImageFont.load_default()


def annotate_with_viewport(
    image: PIL.Image.Image,
    spec: TileSpecification,
    status: PipelineStatus,
) -> PIL.Image.Image:
    """Overlay the view center, zoom and pipeline status on ``image``."""

    if image.mode != "RGBA":
        image = image.convert("RGBA")

    draw = PIL.ImageDraw.Draw(image, "RGBA")
    font = _load_hud_font(image)
    text = "\n".join(
        [
            f"center ({spec.center.x:.6g}, {spec.center.y:.6g})",
            f"zoom {spec.zoom:.4g}  width {world_width_from_zoom(spec.zoom):.3g}",
            f"tile {status.value}",
        ]
    )

    padding = 6
    left, top, right, bottom = draw.multiline_textbbox((padding, padding), text, font=font, spacing=2)
    draw.rounded_rectangle(
        [(left - padding, top - padding), (right + padding, bottom + padding)],
        radius=padding,
        fill=(10, 12, 24, 170),
        outline=(255, 255, 255, 45),
    )
    draw.multiline_text((padding + 1, padding + 1), text, font=font, fill=(0, 0, 0, 170), spacing=2)
    draw.multiline_text((padding, padding), text, font=font, fill=(240, 244, 255, 255), spacing=2)
    return image


class WindowSink:
    """Matplotlib window that shows the current tile and feeds input back as events.

    Scroll zooms around the cursor, left-drag pans, ``r`` resets and
    ``q``/``escape`` closes. A figure timer ticks the pipeline; the latest
    tile is drawn on every frame whether or not it is fresh.
    """

    def __init__(
        self,
        pipeline: TilePipeline,
        viewport: Viewport = DEFAULT_VIEWPORT,
        *,
        zoom_step: float = ZOOM_STEP,
        interval_ms: int = 30,
        colormap: str = "gray",
        show_hud: bool = False,
    ) -> None:
        self.pipeline = pipeline
        self.viewport = viewport
        self.home = viewport
        self.zoom_step = zoom_step
        self.colormap = colormap
        self.show_hud = show_hud
        self.status = PipelineStatus.STALE
        self._shown: Optional[Tile] = None
        self._drag_origin: Optional[Point] = None

        dpi = 100
        self.figure = plt.figure(figsize=(viewport.pixel_width / dpi, viewport.pixel_height / dpi), dpi=dpi)
        self.axes = self.figure.add_axes((0.0, 0.0, 1.0, 1.0))
        self.axes.set_axis_off()
        blank = np.zeros((viewport.pixel_height, viewport.pixel_width, 3), dtype=np.uint8)
        self.image = self.axes.imshow(
            blank,
            extent=(0, viewport.pixel_width, viewport.pixel_height, 0),
            interpolation="nearest",
        )

        canvas = self.figure.canvas
        canvas.mpl_connect("scroll_event", self._on_scroll)
        canvas.mpl_connect("button_press_event", self._on_press)
        canvas.mpl_connect("button_release_event", self._on_release)
        canvas.mpl_connect("motion_notify_event", self._on_motion)
        canvas.mpl_connect("key_press_event", self._on_key)
        canvas.mpl_connect("resize_event", self._on_resize)
        canvas.mpl_connect("close_event", self._on_close)

        self.timer = canvas.new_timer(interval=interval_ms)
        self.timer.add_callback(self.frame)

    def dispatch(self, event: Event) -> None:
        self.viewport = apply_event(self.viewport, event, zoom_step=self.zoom_step, home=self.home)

    def frame(self) -> PipelineStatus:
        """One foreground tick: advance the pipeline and draw the current tile."""

        self.status = self.pipeline.tick(self.viewport)
        tile = self.pipeline.current_tile
        if tile is not None and (tile is not self._shown or self.show_hud):
            self._draw(tile)
        return self.status

    def _draw(self, tile: Tile) -> None:
        spec = tile.specification
        if self.show_hud:
            pixels = np.asarray(annotate_with_viewport(tile_to_image(tile, self.colormap), spec, self.status))
        else:
            pixels = colorize(tile, self.colormap)
        self.image.set_data(pixels)
        # The tile may lag the window, so stretch it over the current pixel extent.
        self.image.set_extent((0, self.viewport.pixel_width, self.viewport.pixel_height, 0))
        self.axes.set_xlim(0, self.viewport.pixel_width)
        self.axes.set_ylim(self.viewport.pixel_height, 0)
        self._shown = tile
        self.figure.canvas.draw_idle()

    def _cursor(self, event) -> Optional[Point]:
        if event.inaxes is not self.axes or event.xdata is None or event.ydata is None:
            return None
        return Point(float(event.xdata), float(event.ydata))

    def _on_scroll(self, event) -> None:
        cursor = self._cursor(event)
        if cursor is not None:
            self.dispatch(Scroll(cursor, float(event.step)))

    def _on_press(self, event) -> None:
        if event.button == 1:
            self._drag_origin = self._cursor(event)

    def _on_release(self, event) -> None:
        self._drag_origin = None

    def _on_motion(self, event) -> None:
        if self._drag_origin is None:
            return
        cursor = self._cursor(event)
        if cursor is None:
            return
        self.dispatch(Drag(cursor - self._drag_origin))
        self._drag_origin = cursor

    def _on_key(self, event) -> None:
        if event.key == "r":
            self.dispatch(Reset())
        elif event.key in ("q", "escape"):
            plt.close(self.figure)

    def _on_resize(self, event) -> None:
        width, height = self.figure.canvas.get_width_height()
        self.dispatch(Resize(width, height))

    def _on_close(self, event) -> None:
        self.timer.stop()

    def show(self) -> None:
        self.timer.start()
        plt.show()
