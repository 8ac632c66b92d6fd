"""Escape-time evaluation of the Mandelbrot iteration."""

from __future__ import annotations

import numpy as np

from .geometry import Point

DEFAULT_MAX_ITERATIONS = 128
ESCAPE_RADIUS_SQUARED = 4.0


def escape_time(c: Point[float], max_iterations: int = DEFAULT_MAX_ITERATIONS) -> int:
    """Return the 0-based iteration at which ``c`` escapes, or ``max_iterations``.

    The orbit starts at ``z = c`` (the first step from zero) and the escape test
    ``x*x + y*y > 4`` runs after every update. A point landing exactly on the
    radius does not count as escaped.
    """

    cx = float(c.x)
    cy = float(c.y)
    x = cx
    y = cy

    for i in range(max_iterations):
        x_next = x * x - y * y + cx
        y = 2.0 * x * y + cy
        x = x_next

        if x * x + y * y > ESCAPE_RADIUS_SQUARED:
            return i

    return max_iterations


def escape_row(xs: np.ndarray, y: float, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> np.ndarray:
    """Vectorised :func:`escape_time` over one scanline.

    ``xs`` holds the real parts of the row, ``y`` the shared imaginary part.
    Every pixel gets exactly the value the scalar kernel would return.
    """

    cx = np.asarray(xs, dtype=np.float64)
    cy = np.full_like(cx, np.float64(y))
    x = cx.copy()
    yv = cy.copy()
    counts = np.full(cx.shape, max_iterations, dtype=np.uint32)
    active = np.ones(cx.shape, dtype=bool)

    # Escaped points are frozen, but huge |c| can still overflow on the step they escape.
    with np.errstate(over="ignore", invalid="ignore"):
        for i in range(max_iterations):
            if not active.any():
                break
            x_next = x * x - yv * yv + cx
            y_next = 2.0 * x * yv + cy
            x = np.where(active, x_next, x)
            yv = np.where(active, y_next, yv)

            escaped = active & (x * x + yv * yv > ESCAPE_RADIUS_SQUARED)
            counts[escaped] = i
            active &= ~escaped

    return counts
