from __future__ import annotations

import random
import threading
import time

import numpy as np
import pytest

from mandeltiles import kernel
from mandeltiles.engine import (
    Line,
    Projection,
    TileEngine,
    assemble_tile,
    compute_tile_serial,
    sample_axes,
)
from mandeltiles.errors import RowComputationFault
from mandeltiles.geometry import Point, TileSpecification, pixel_to_world


@pytest.fixture
def spec() -> TileSpecification:
    return TileSpecification(pixel_width=24, pixel_height=16, center=Point(-0.7, 0.0), zoom=1.8)


def test_tile_shapes_and_grayscale_colors(spec: TileSpecification) -> None:
    with TileEngine(max_iterations=64, workers=4) as engine:
        tile = engine.compute_tile(spec)

    n = spec.pixel_width * spec.pixel_height
    assert len(tile) == n
    assert tile.positions.shape == (n, 2)
    assert tile.colors.shape == (n, 3)
    assert tile.positions.dtype == np.float32
    assert tile.colors.dtype == np.float32
    assert np.all((tile.colors >= 0.0) & (tile.colors <= 1.0))
    assert np.all(tile.colors[:, 0] == tile.colors[:, 1])
    assert np.all(tile.colors[:, 1] == tile.colors[:, 2])
    assert tile.specification == spec


def test_parallel_tile_matches_serial_reference(spec: TileSpecification) -> None:
    reference = compute_tile_serial(spec, 64)
    with TileEngine(max_iterations=64, workers=3) as engine:
        tile = engine.compute_tile(spec)

    np.testing.assert_array_equal(tile.iterations, reference.iterations)
    np.testing.assert_array_equal(tile.positions, reference.positions)
    np.testing.assert_array_equal(tile.colors, reference.colors)


def test_out_of_order_rows_assemble_identically(spec: TileSpecification) -> None:
    reference = compute_tile_serial(spec, 32)
    lines = [Line(row, reference.iterations[row].copy()) for row in range(spec.pixel_height)]
    random.Random(7).shuffle(lines)

    shuffled = assemble_tile(spec, lines, 32)

    np.testing.assert_array_equal(shuffled.positions, reference.positions)
    np.testing.assert_array_equal(shuffled.colors, reference.colors)


def test_rows_finishing_in_reverse_order_are_reassembled(spec: TileSpecification) -> None:
    height = spec.pixel_height
    _, ys = sample_axes(spec)
    row_of = {float(y): row for row, y in enumerate(ys)}

    def slow_top_rows(xs, y, max_iterations):
        # Earlier rows sleep longer, so completion order is reversed.
        time.sleep(0.002 * (height - row_of[y]))
        return kernel.escape_row(xs, y, max_iterations)

    reference = compute_tile_serial(spec, 48)
    with TileEngine(max_iterations=48, workers=height, row_kernel=slow_top_rows) as engine:
        tile = engine.compute_tile(spec)

    np.testing.assert_array_equal(tile.colors, reference.colors)
    np.testing.assert_array_equal(tile.positions, reference.positions)


def test_normalized_positions_are_pixel_over_size(spec: TileSpecification) -> None:
    with TileEngine(max_iterations=8, workers=2) as engine:
        tile = engine.compute_tile(spec)

    width = spec.pixel_width
    for index in (0, 1, width, width + 5, len(tile) - 1):
        y_pixel, x_pixel = divmod(index, width)
        assert tile.positions[index, 0] == np.float32(x_pixel / width)
        assert tile.positions[index, 1] == np.float32(y_pixel / spec.pixel_height)


def test_world_projection_uses_pixel_to_world(spec: TileSpecification) -> None:
    with TileEngine(max_iterations=8, projection=Projection.WORLD, workers=2) as engine:
        tile = engine.compute_tile(spec)

    width = spec.pixel_width
    for index in (0, 7, width * 3 + 2, len(tile) - 1):
        y_pixel, x_pixel = divmod(index, width)
        world = pixel_to_world(Point(x_pixel, y_pixel), spec.zoom, spec.pixel_dims, spec.center)
        assert tile.positions[index, 0] == pytest.approx(world.x, abs=1e-6)
        assert tile.positions[index, 1] == pytest.approx(world.y, abs=1e-6)


def test_color_is_count_over_budget() -> None:
    spec = TileSpecification(3, 1, Point(0.0, 0.0), 4.0)
    lines = [Line(0, np.array([0, 32, 128], dtype=np.uint32))]

    tile = assemble_tile(spec, lines, 128)

    assert tile.colors[:, 0].tolist() == [0.0, 0.25, 1.0]


def test_tile_arrays_are_read_only(spec: TileSpecification) -> None:
    tile = compute_tile_serial(spec, 8)
    with pytest.raises(ValueError):
        tile.colors[0, 0] = 0.5
    with pytest.raises(ValueError):
        tile.positions[0, 0] = 0.5


def test_failing_row_fails_whole_tile(spec: TileSpecification) -> None:
    _, ys = sample_axes(spec)
    bad_y = float(ys[5])

    def flaky(xs, y, max_iterations):
        if y == bad_y:
            raise ArithmeticError("boom")
        return kernel.escape_row(xs, y, max_iterations)

    with TileEngine(max_iterations=16, workers=4, row_kernel=flaky) as engine:
        with pytest.raises(RowComputationFault) as excinfo:
            engine.compute_tile(spec)

    assert excinfo.value.row_index == 5
    assert isinstance(excinfo.value.__cause__, ArithmeticError)


@pytest.mark.parametrize(
    "rows",
    [
        [0, 1],
        [0, 0, 1, 2],
        [0, 1, 2, 3],
    ],
)
def test_gather_rejects_incomplete_or_duplicated_rows(rows: list[int]) -> None:
    spec = TileSpecification(2, 3, Point(0.0, 0.0), 0.0)
    lines = [Line(row, np.zeros(2, dtype=np.uint32)) for row in rows]

    with pytest.raises(RowComputationFault):
        assemble_tile(spec, lines, 8)


def test_gather_rejects_wrong_row_width() -> None:
    spec = TileSpecification(4, 1, Point(0.0, 0.0), 0.0)
    with pytest.raises(RowComputationFault):
        assemble_tile(spec, [Line(0, np.zeros(3, dtype=np.uint32))], 8)


def test_pool_is_reused_across_tiles(spec: TileSpecification) -> None:
    names = set()

    def recording(xs, y, max_iterations):
        names.add(threading.current_thread().name)
        return kernel.escape_row(xs, y, max_iterations)

    with TileEngine(max_iterations=8, workers=2, row_kernel=recording) as engine:
        for _ in range(3):
            engine.compute_tile(spec)

    assert 1 <= len(names) <= 2


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValueError):
        TileEngine(max_iterations=0)
    with pytest.raises(ValueError):
        TileEngine(workers=0)
    with pytest.raises(ValueError):
        TileEngine(backend="opencl")
