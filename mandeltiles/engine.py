"""Row-parallel computation of complete tiles."""

from __future__ import annotations

import enum
import os
import queue
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np

from . import kernel
from .errors import RowComputationFault
from .geometry import Point, TileSpecification, pixel_to_world

RowKernel = Callable[[np.ndarray, float, int], np.ndarray]

BACKENDS = ("numpy", "tensorflow")


class Projection(enum.Enum):
    """How pixel positions are encoded in a :class:`Tile`."""

    NORMALIZED = "normalized"
    WORLD = "world"


@dataclass(frozen=True)
class Line:
    """Iteration counts of one scanline, tagged with its row."""

    row_index: int
    iteration_counts: np.ndarray


@dataclass(frozen=True, eq=False)
class Tile:
    """A fully computed grid of escape-time results for one specification."""

    specification: TileSpecification
    positions: np.ndarray
    colors: np.ndarray
    iterations: np.ndarray
    max_iterations: int

    def __len__(self) -> int:
        return int(self.positions.shape[0])


def sample_axes(spec: TileSpecification) -> tuple[np.ndarray, np.ndarray]:
    """World coordinates of every pixel column and row of ``spec``."""

    bounds = spec.bounds()
    width = np.float64(spec.pixel_width)
    height = np.float64(spec.pixel_height)
    columns = np.arange(spec.pixel_width, dtype=np.float64)
    rows = np.arange(spec.pixel_height, dtype=np.float64)
    xs = columns / width * bounds.world_width + bounds.left
    ys = -rows / height * bounds.world_height + bounds.top
    return xs, ys


def project_positions(spec: TileSpecification, projection: Projection) -> np.ndarray:
    if projection is Projection.NORMALIZED:
        xs = np.arange(spec.pixel_width, dtype=np.float64) / np.float64(spec.pixel_width)
        ys = np.arange(spec.pixel_height, dtype=np.float64) / np.float64(spec.pixel_height)
    elif projection is Projection.WORLD:
        xs, ys = sample_axes(spec)
    else:
        raise ValueError(f"Unknown projection {projection!r}")

    grid_x, grid_y = np.meshgrid(xs, ys)
    return np.stack((grid_x.ravel(), grid_y.ravel()), axis=-1).astype(np.float32)


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def assemble_tile(
    spec: TileSpecification,
    lines: Iterable[Line],
    max_iterations: int,
    projection: Projection = Projection.NORMALIZED,
) -> Tile:
    """Gather scanlines into a :class:`Tile`.

    Lines may arrive in any order; each is placed by its own ``row_index``.
    A missing, duplicated or malformed line fails the whole tile.
    """

    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1.")

    width = spec.pixel_width
    height = spec.pixel_height
    grid = np.empty((height, width), dtype=np.uint32)
    seen = np.zeros(height, dtype=bool)

    for line in lines:
        row = line.row_index
        if not 0 <= row < height:
            raise RowComputationFault(row, f"row index {row} outside [0, {height})")
        if seen[row]:
            raise RowComputationFault(row, f"row {row} delivered twice")
        counts = np.asarray(line.iteration_counts)
        if counts.shape != (width,):
            raise RowComputationFault(row, f"row {row} has shape {counts.shape}, expected ({width},)")
        grid[row] = counts
        seen[row] = True

    if not seen.all():
        missing = int(np.flatnonzero(~seen)[0])
        raise RowComputationFault(missing, f"row {missing} was never delivered")

    gray = (grid.astype(np.float64) / np.float64(max_iterations)).astype(np.float32).ravel()
    colors = np.repeat(gray[:, np.newaxis], 3, axis=1)

    return Tile(
        specification=spec,
        positions=_frozen(project_positions(spec, projection)),
        colors=_frozen(colors),
        iterations=_frozen(grid),
        max_iterations=int(max_iterations),
    )


def compute_tile_serial(
    spec: TileSpecification,
    max_iterations: int = kernel.DEFAULT_MAX_ITERATIONS,
    projection: Projection = Projection.NORMALIZED,
) -> Tile:
    """Single-threaded reference built from the scalar kernel."""

    dims = spec.pixel_dims
    lines = []
    for y_pixel in range(spec.pixel_height):
        counts = [
            kernel.escape_time(pixel_to_world(Point(x_pixel, y_pixel), spec.zoom, dims, spec.center), max_iterations)
            for x_pixel in range(spec.pixel_width)
        ]
        lines.append(Line(y_pixel, np.array(counts, dtype=np.uint32)))
    return assemble_tile(spec, lines, max_iterations, projection)


def resolve_row_kernel(backend: str) -> RowKernel:
    if backend == "numpy":
        return kernel.escape_row
    if backend == "tensorflow":
        from . import tf_kernel

        return tf_kernel.escape_row
    raise ValueError(f"Unknown backend '{backend}'. Valid choices: {', '.join(BACKENDS)}.")


class TileEngine:
    """Fan a tile's scanlines out over a fixed thread pool and gather the result.

    The pool is created once and reused for every tile. The engine performs no
    I/O and does not log; failures surface as :class:`RowComputationFault`.
    """

    def __init__(
        self,
        max_iterations: int = kernel.DEFAULT_MAX_ITERATIONS,
        projection: Projection = Projection.NORMALIZED,
        *,
        workers: Optional[int] = None,
        backend: str = "numpy",
        row_kernel: Optional[RowKernel] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        if workers is not None and workers < 1:
            raise ValueError("workers must be at least 1.")

        self.max_iterations = int(max_iterations)
        self.projection = Projection(projection)
        self._row_kernel = row_kernel if row_kernel is not None else resolve_row_kernel(backend)
        self._owns_executor = executor is None
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=workers or os.cpu_count() or 1,
                thread_name_prefix="mandeltiles-row",
            )
        self._executor = executor

    def __enter__(self) -> "TileEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True, cancel_futures=True)

    def compute_row(self, xs: np.ndarray, row_index: int, y: float) -> Line:
        counts = self._row_kernel(xs, y, self.max_iterations)
        return Line(row_index, np.asarray(counts, dtype=np.uint32))

    def compute_tile(self, spec: TileSpecification) -> Tile:
        xs, ys = sample_axes(spec)
        results: queue.SimpleQueue = queue.SimpleQueue()

        def run_row(row_index: int) -> None:
            try:
                results.put((row_index, self.compute_row(xs, row_index, float(ys[row_index])), None))
            except Exception as exc:
                results.put((row_index, None, exc))

        futures: list[Future] = []
        try:
            for row_index in range(spec.pixel_height):
                futures.append(self._executor.submit(run_row, row_index))
        except RuntimeError as exc:
            _cancel(futures)
            raise RowComputationFault(None, f"row executor unavailable: {exc}") from exc

        lines = []
        for _ in range(spec.pixel_height):
            row_index, line, error = results.get()
            if error is not None:
                _cancel(futures)
                raise RowComputationFault(row_index, f"row {row_index} failed: {error}") from error
            lines.append(line)

        return assemble_tile(spec, lines, self.max_iterations, self.projection)


def _cancel(futures: list[Future]) -> None:
    for future in futures:
        future.cancel()
