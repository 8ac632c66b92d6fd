from __future__ import annotations

import numpy as np
import pytest

pytest.importorskip("tensorflow")

from mandeltiles import tf_kernel  # noqa: E402
from mandeltiles.engine import TileEngine, compute_tile_serial  # noqa: E402
from mandeltiles.geometry import Point, TileSpecification  # noqa: E402
from mandeltiles.kernel import escape_row  # noqa: E402


def test_tensorflow_row_matches_numpy_row() -> None:
    xs = np.linspace(-2.1, 0.7, 97)
    for y in (-0.9, 0.0, 0.35):
        np.testing.assert_array_equal(tf_kernel.escape_row(xs, y, 48), escape_row(xs, y, 48))


def test_tensorflow_backend_builds_same_tile() -> None:
    spec = TileSpecification(10, 6, Point(-0.7, 0.0), 1.8)
    with TileEngine(max_iterations=24, workers=2, backend="tensorflow") as engine:
        tile = engine.compute_tile(spec)

    np.testing.assert_array_equal(tile.iterations, compute_tile_serial(spec, 24).iterations)
