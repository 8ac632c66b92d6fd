"""Public API for the tile computation pipeline."""

from .engine import Line, Projection, Tile, TileEngine, assemble_tile, compute_tile_serial
from .errors import InvalidTileSpecification, MandeltilesError, RowComputationFault, WorkerUnavailable
from .geometry import (
    Point,
    ScreenBounds,
    TileSpecification,
    Viewport,
    pan_by_pixels,
    pixel_to_world,
    screen_bounds,
    world_to_pixel,
    world_width_from_zoom,
    zoom_at_cursor,
)
from .kernel import DEFAULT_MAX_ITERATIONS, escape_row, escape_time
from .navigation import DEFAULT_VIEWPORT, Drag, Reset, Resize, Scroll, apply_event, apply_events
from .pipeline import PipelineStatus, TileCompletion, TilePipeline

__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_VIEWPORT",
    "Drag",
    "InvalidTileSpecification",
    "Line",
    "MandeltilesError",
    "PipelineStatus",
    "Point",
    "Projection",
    "Reset",
    "Resize",
    "RowComputationFault",
    "ScreenBounds",
    "Scroll",
    "Tile",
    "TileCompletion",
    "TileEngine",
    "TilePipeline",
    "TileSpecification",
    "Viewport",
    "WorkerUnavailable",
    "apply_event",
    "apply_events",
    "assemble_tile",
    "compute_tile_serial",
    "escape_row",
    "escape_time",
    "pan_by_pixels",
    "pixel_to_world",
    "screen_bounds",
    "world_to_pixel",
    "world_width_from_zoom",
    "zoom_at_cursor",
]
