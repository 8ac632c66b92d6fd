"""Input events and the pure step that folds them into a viewport."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Union

from .geometry import Point, Viewport, pan_by_pixels, zoom_at_cursor

ZOOM_STEP = 0.1

DEFAULT_VIEWPORT = Viewport(
    pixel_width=500,
    pixel_height=300,
    center=Point(-0.7, 0.0),
    zoom=1.8,
)


@dataclass(frozen=True)
class Scroll:
    """Wheel motion at ``cursor``; positive ``delta`` zooms in."""

    cursor: Point
    delta: float


@dataclass(frozen=True)
class Drag:
    """Cursor moved by ``delta`` pixels with the pan button held."""

    delta: Point


@dataclass(frozen=True)
class Resize:
    pixel_width: int
    pixel_height: int


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[Scroll, Drag, Resize, Reset]


def apply_event(
    viewport: Viewport,
    event: Event,
    *,
    zoom_step: float = ZOOM_STEP,
    home: Viewport = DEFAULT_VIEWPORT,
) -> Viewport:
    """Return the viewport that results from ``event``."""

    if isinstance(event, Scroll):
        return zoom_at_cursor(viewport, event.cursor, viewport.zoom - event.delta * zoom_step)
    if isinstance(event, Drag):
        return pan_by_pixels(viewport, event.delta)
    if isinstance(event, Resize):
        # Minimised windows report a zero-sized framebuffer.
        if event.pixel_width <= 0 or event.pixel_height <= 0:
            return viewport
        return replace(viewport, pixel_width=int(event.pixel_width), pixel_height=int(event.pixel_height))
    if isinstance(event, Reset):
        return replace(home, pixel_width=viewport.pixel_width, pixel_height=viewport.pixel_height)
    raise TypeError(f"Unsupported event {event!r}")


def apply_events(viewport: Viewport, events, **kwargs) -> Viewport:
    for event in events:
        viewport = apply_event(viewport, event, **kwargs)
    return viewport
