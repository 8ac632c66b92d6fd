from __future__ import annotations

import pytest

import viewer
from mandeltiles.engine import Projection
from mandeltiles.geometry import Point


def _config(*args: str):
    parser = viewer.build_parser()
    opt = parser.parse_args(list(args))
    return viewer.resolve_config(opt, parser)


def test_defaults_resolve_to_window_viewport() -> None:
    config = _config()

    assert config.sink == "window"
    assert config.viewport.pixel_width == 500
    assert config.viewport.pixel_height == 300
    assert config.viewport.center == Point(-0.7, 0.0)
    assert config.max_iterations == 128
    assert config.projection is Projection.NORMALIZED
    assert config.backend == "numpy"


def test_explicit_options_are_carried_through() -> None:
    config = _config(
        "--sink", "terminal", "--width", "40", "--height", "12", "--center-x", "-1.25",
        "--center-y", "0.1", "--zoom", "-2", "--max-iterations", "64", "--projection", "world",
        "--workers", "3", "--steps", "2",
    )

    assert config.viewport.pixel_dims == Point(40, 12)
    assert config.viewport.center == Point(-1.25, 0.1)
    assert config.viewport.zoom == -2.0
    assert config.max_iterations == 64
    assert config.projection is Projection.WORLD
    assert config.workers == 3
    assert config.steps == 2


@pytest.mark.parametrize(
    "args",
    [
        ["--width", "0"],
        ["--height", "-3"],
        ["--max-iterations", "0"],
        ["--workers", "0"],
        ["--zoom-step", "0"],
        ["--steps", "2"],
        ["--colormap", "not-a-colormap"],
        ["--sink", "terminal", "--timeout", "0"],
    ],
)
def test_invalid_options_exit(args: list[str]) -> None:
    with pytest.raises(SystemExit):
        _config(*args)


def test_terminal_sink_end_to_end(capsys: pytest.CaptureFixture[str]) -> None:
    code = viewer.main(
        ["--sink", "terminal", "--width", "16", "--height", "5", "--max-iterations", "32", "--steps", "1",
         "--timeout", "10"]
    )

    assert code == 0
    frames = capsys.readouterr().out.rstrip("\n").split("\n\n")
    assert len(frames) == 2
    assert all(len(frame.split("\n")) == 5 for frame in frames)
