"""TensorFlow implementation of the scanline escape-time kernel."""

from __future__ import annotations

import numpy as np
import tensorflow as tf

from .kernel import DEFAULT_MAX_ITERATIONS, ESCAPE_RADIUS_SQUARED


@tf.function
def _escape_step(
    x: tf.Tensor, y: tf.Tensor, cx: tf.Tensor, cy: tf.Tensor, i: tf.Tensor, ns: tf.Tensor, active: tf.Tensor
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance every still-bounded point by one iteration."""

    x_next = x * x - y * y + cx
    y_next = tf.constant(2.0, dtype=x.dtype) * x * y + cy
    x = tf.where(active, x_next, x)
    y = tf.where(active, y_next, y)
    radius = tf.constant(ESCAPE_RADIUS_SQUARED, dtype=x.dtype)
    escaped = tf.logical_and(active, x * x + y * y > radius)
    ns = tf.where(escaped, tf.fill(tf.shape(ns), i), ns)
    return x, y, ns, tf.logical_and(active, tf.logical_not(escaped))


@tf.function
def _escape_run(cx: tf.Tensor, cy: tf.Tensor, max_iterations: tf.Tensor) -> tf.Tensor:
    """Iterate the row with a TensorFlow while loop and return the counts."""

    max_iterations = tf.cast(max_iterations, tf.int32)
    i = tf.constant(0, dtype=tf.int32)
    ns = tf.fill(tf.shape(cx), max_iterations)
    active = tf.ones_like(ns, tf.bool)

    def cond(i, x, y, ns, active):
        return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(active))

    def body(i, x, y, ns, active):
        x, y, ns, active = _escape_step(x, y, cx, cy, i, ns, active)
        return i + 1, x, y, ns, active

    _, _, _, ns, _ = tf.while_loop(cond, body, (i, cx, cy, ns, active))
    return ns


def escape_row(xs: np.ndarray, y: float, max_iterations: int = DEFAULT_MAX_ITERATIONS, *, device: str | None = None) -> np.ndarray:
    """Scanline kernel matching :func:`mandeltiles.kernel.escape_row`."""

    xs = np.asarray(xs, dtype=np.float64)
    with tf.device(device if device is not None else "/CPU:0"):
        cx = tf.convert_to_tensor(xs, dtype=tf.float64)
        cy = tf.fill(tf.shape(cx), tf.constant(y, dtype=tf.float64))
        ns = _escape_run(cx, cy, tf.constant(max_iterations, dtype=tf.int32))
    return ns.numpy().astype(np.uint32)
