import logging
import os
import shutil
import sys
from argparse import ArgumentParser
from dataclasses import dataclass

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

# Must be set before TensorFlow is first imported by the tensorflow backend.
if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

from mandeltiles import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_VIEWPORT,
    Point,
    Projection,
    Scroll,
    TileEngine,
    TilePipeline,
    Viewport,
)
from mandeltiles.engine import BACKENDS
from mandeltiles.logging_config import setup_logging
from mandeltiles.navigation import ZOOM_STEP

logger = logging.getLogger("mandeltiles.viewer")


@dataclass(frozen=True)
class ViewerConfig:
    sink: str
    viewport: Viewport
    max_iterations: int
    workers: int | None
    backend: str
    projection: Projection
    zoom_step: float
    interval_ms: int
    colormap: str
    show_hud: bool
    steps: int
    timeout: float | None
    log_file: str | None
    verbose: bool


def build_parser():
    parser = ArgumentParser(description="Interactive Mandelbrot viewer with a background tile pipeline.")

    parser.add_argument('--sink', choices=['window', 'terminal'], default='window',
                        help='Where tiles are displayed: a matplotlib window or a character grid on stdout.')

    parser.add_argument('--width', type=int, dest='width', metavar='WIDTH', default=None,
                        help='viewport width in pixels (terminal: columns). Defaults to the window or terminal size.')

    parser.add_argument('--height', type=int, dest='height', metavar='HEIGHT', default=None,
                        help='viewport height in pixels (terminal: rows).')

    parser.add_argument('--center-x', type=float, dest='center_x', metavar='CENTER_X',
                        default=DEFAULT_VIEWPORT.center.x, help='real part of the initial view center')

    parser.add_argument('--center-y', type=float, dest='center_y', metavar='CENTER_Y',
                        default=DEFAULT_VIEWPORT.center.y, help='imaginary part of the initial view center')

    parser.add_argument('--zoom', type=float, dest='zoom', metavar='ZOOM', default=DEFAULT_VIEWPORT.zoom,
                        help='initial zoom; the visible world is 2**ZOOM units wide')

    parser.add_argument('--max-iterations', type=int, dest='max_iterations', metavar='MAX_ITERATIONS',
                        default=DEFAULT_MAX_ITERATIONS, help='iteration budget per pixel')

    parser.add_argument('--workers', type=int, dest='workers', metavar='WORKERS', default=None,
                        help='size of the scanline thread pool (default: CPU count)')

    parser.add_argument('--backend', choices=BACKENDS, default='numpy',
                        help='scanline kernel implementation')

    parser.add_argument('--projection', choices=[p.value for p in Projection], default=Projection.NORMALIZED.value,
                        help='encoding of tile positions: normalized tile coordinates or world coordinates')

    parser.add_argument('--zoom-step', type=float, dest='zoom_step', default=ZOOM_STEP,
                        help='zoom change per scroll notch')

    parser.add_argument('--interval-ms', type=int, dest='interval_ms', default=30,
                        help='window frame interval in milliseconds')

    parser.add_argument('--colormap', type=str, dest='colormap', metavar='COLORMAP', default='gray',
                        help='matplotlib colormap applied to the grayscale tile in the window sink')

    parser.add_argument('--show-hud', dest='show_hud', action='store_true',
                        help='overlay center, zoom and tile status on the window')

    parser.add_argument('--steps', type=int, dest='steps', default=0,
                        help='terminal sink: number of zoom-in notches around the center to render after the first view')

    parser.add_argument('--timeout', type=float, dest='timeout', default=None,
                        help='terminal sink: seconds to wait for each tile before giving up')

    parser.add_argument('--log-file', type=str, dest='log_file', default=None,
                        help='also write log records to this file')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics.')

    return parser


def resolve_config(opt, parser: ArgumentParser) -> ViewerConfig:
    if opt.sink == 'terminal':
        columns, lines = shutil.get_terminal_size()
        default_width, default_height = columns, max(lines - 1, 1)
    else:
        default_width, default_height = DEFAULT_VIEWPORT.pixel_width, DEFAULT_VIEWPORT.pixel_height

    width = opt.width if opt.width is not None else default_width
    height = opt.height if opt.height is not None else default_height
    if width <= 0 or height <= 0:
        parser.error("--width and --height must be positive.")
    if opt.max_iterations < 1:
        parser.error("--max-iterations must be at least 1.")
    if opt.workers is not None and opt.workers < 1:
        parser.error("--workers must be at least 1.")
    if opt.zoom_step <= 0:
        parser.error("--zoom-step must be positive.")
    if opt.interval_ms < 1:
        parser.error("--interval-ms must be at least 1.")
    if opt.steps < 0:
        parser.error("--steps cannot be negative.")
    if opt.steps and opt.sink != 'terminal':
        parser.error("--steps is only valid with the terminal sink.")
    if opt.timeout is not None and opt.timeout <= 0:
        parser.error("--timeout must be positive.")

    import matplotlib
    if opt.colormap not in matplotlib.colormaps:
        parser.error(f"Unknown colormap '{opt.colormap}'.")

    return ViewerConfig(
        sink=opt.sink,
        viewport=Viewport(
            pixel_width=width,
            pixel_height=height,
            center=Point(opt.center_x, opt.center_y),
            zoom=opt.zoom,
        ),
        max_iterations=opt.max_iterations,
        workers=opt.workers,
        backend=opt.backend,
        projection=Projection(opt.projection),
        zoom_step=opt.zoom_step,
        interval_ms=opt.interval_ms,
        colormap=opt.colormap,
        show_hud=bool(opt.show_hud),
        steps=opt.steps,
        timeout=opt.timeout,
        log_file=opt.log_file,
        verbose=bool(opt.verbose),
    )


def _quiet_tensorflow() -> None:
    import tensorflow as tf

    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")


def main(argv=None) -> int:
    parser = build_parser()
    opt = parser.parse_args(argv)
    config = resolve_config(opt, parser)

    setup_logging(logging.DEBUG if config.verbose else logging.WARNING, config.log_file)

    engine = TileEngine(
        config.max_iterations,
        config.projection,
        workers=config.workers,
        backend=config.backend,
    )
    if config.backend == 'tensorflow' and _suppress_messages and not config.verbose:
        _quiet_tensorflow()

    logger.info("Viewport %dx%d, %s backend, %s sink",
                config.viewport.pixel_width, config.viewport.pixel_height, config.backend, config.sink)

    with engine, TilePipeline(engine) as pipeline:
        if config.sink == 'terminal':
            from mandeltiles.sinks import run_terminal

            viewport = config.viewport
            cursor = Point(viewport.pixel_width / 2.0, viewport.pixel_height / 2.0)
            tile = run_terminal(
                pipeline,
                viewport,
                events=[Scroll(cursor, 1.0)] * config.steps,
                zoom_step=config.zoom_step,
                timeout=config.timeout,
            )
            return 0 if tile is not None else 1

        from mandeltiles.sinks import WindowSink

        window = WindowSink(
            pipeline,
            config.viewport,
            zoom_step=config.zoom_step,
            interval_ms=config.interval_ms,
            colormap=config.colormap,
            show_hud=config.show_hud,
        )
        window.show()
        return 0


if __name__ == '__main__':
    sys.exit(main())
