"""Viewport values and the pixel/world coordinate mapping."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Generic, TypeVar

import numpy as np

from .errors import InvalidTileSpecification

T = TypeVar("T", int, float)


@dataclass(frozen=True)
class Point(Generic[T]):
    """A 2-D vector in either pixel or world space."""

    x: T
    y: T

    def __add__(self, other: "Point[T]") -> "Point[T]":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point[T]") -> "Point[T]":
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: T) -> "Point[T]":
        return Point(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__


@dataclass(frozen=True)
class Viewport:
    """The observer's current window into world space."""

    pixel_width: int
    pixel_height: int
    center: Point[float]
    zoom: float

    @property
    def pixel_dims(self) -> Point[int]:
        return Point(self.pixel_width, self.pixel_height)


@dataclass(frozen=True)
class TileSpecification:
    """Immutable snapshot of a :class:`Viewport` taken when a tile is requested.

    Equality is structural and is the only staleness test used by the
    pipeline.
    """

    pixel_width: int
    pixel_height: int
    center: Point[float]
    zoom: float

    def __post_init__(self) -> None:
        _validate_dims(self.pixel_width, self.pixel_height)

    @classmethod
    def from_viewport(cls, viewport: Viewport) -> "TileSpecification":
        return cls(
            pixel_width=int(viewport.pixel_width),
            pixel_height=int(viewport.pixel_height),
            center=Point(float(viewport.center.x), float(viewport.center.y)),
            zoom=float(viewport.zoom),
        )

    @property
    def pixel_dims(self) -> Point[int]:
        return Point(self.pixel_width, self.pixel_height)

    @property
    def pixel_count(self) -> int:
        return self.pixel_width * self.pixel_height

    def bounds(self) -> "ScreenBounds":
        return screen_bounds(self.zoom, self.pixel_dims, self.center)


@dataclass(frozen=True)
class ScreenBounds:
    """World-space extent of a viewport."""

    world_width: float
    world_height: float
    left: float
    top: float
    bottom: float


def _validate_dims(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise InvalidTileSpecification(
            f"pixel dimensions must be positive, got {width}x{height}"
        )


def world_width_from_zoom(zoom: float) -> float:
    """Width of the visible world for ``zoom``; one unit of zoom doubles it."""

    return float(np.exp2(np.float64(zoom)))


def screen_bounds(zoom: float, pixel_dims: Point[int], center: Point[float]) -> ScreenBounds:
    _validate_dims(pixel_dims.x, pixel_dims.y)

    world_width = np.float64(world_width_from_zoom(zoom))
    world_height = world_width * np.float64(pixel_dims.y) / np.float64(pixel_dims.x)
    cx = np.float64(center.x)
    cy = np.float64(center.y)

    return ScreenBounds(
        world_width=float(world_width),
        world_height=float(world_height),
        left=float(cx - world_width / 2.0),
        top=float(cy + world_height / 2.0),
        bottom=float(cy - world_height / 2.0),
    )


def pixel_to_world(pixel: Point, zoom: float, pixel_dims: Point[int], center: Point[float]) -> Point[float]:
    """Map a pixel position to world coordinates.

    Pixel Y grows downward while world Y grows upward, hence the sign flip.
    """

    bounds = screen_bounds(zoom, pixel_dims, center)
    x = np.float64(pixel.x) / np.float64(pixel_dims.x) * bounds.world_width + bounds.left
    y = -np.float64(pixel.y) / np.float64(pixel_dims.y) * bounds.world_height + bounds.top
    return Point(float(x), float(y))


def world_to_pixel(world: Point[float], zoom: float, pixel_dims: Point[int], center: Point[float]) -> Point[float]:
    """Inverse of :func:`pixel_to_world`; the result is a fractional pixel."""

    bounds = screen_bounds(zoom, pixel_dims, center)
    x = (np.float64(world.x) - bounds.left) / bounds.world_width * np.float64(pixel_dims.x)
    y = (bounds.top - np.float64(world.y)) / bounds.world_height * np.float64(pixel_dims.y)
    return Point(float(x), float(y))


def zoom_at_cursor(viewport: Viewport, cursor: Point, new_zoom: float) -> Viewport:
    """Change the zoom while keeping the world point under ``cursor`` fixed."""

    dims = viewport.pixel_dims
    before = pixel_to_world(cursor, viewport.zoom, dims, viewport.center)
    after = pixel_to_world(cursor, new_zoom, dims, viewport.center)
    center = viewport.center + (before - after)
    return replace(viewport, zoom=float(new_zoom), center=Point(float(center.x), float(center.y)))


def pan_by_pixels(viewport: Viewport, delta: Point) -> Viewport:
    """Move the view so that the world follows a cursor dragged by ``delta`` pixels."""

    bounds = screen_bounds(viewport.zoom, viewport.pixel_dims, viewport.center)
    shift = Point(
        float(delta.x) / viewport.pixel_width * bounds.world_width,
        -float(delta.y) / viewport.pixel_height * bounds.world_height,
    )
    return replace(viewport, center=viewport.center - shift)
