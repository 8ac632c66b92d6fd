from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass

BASE_ARGS = ["--sink", "terminal", "--width", "60", "--height", "18", "--timeout", "60"]


@dataclass
class Example:
    name: str
    args: list[str]
    frames: int = 1

    def full_args(self) -> list[str]:
        return [sys.executable, "viewer.py", *BASE_ARGS, *self.args]


EXAMPLES: list[Example] = [
    Example(name="defaults", args=[]),
    Example(name="max-iterations", args=["--max-iterations", "500"]),
    Example(name="center", args=["--center-x", "-0.743643", "--center-y", "0.131825", "--zoom", "-6"]),
    Example(name="zoom", args=["--zoom", "0"]),
    Example(name="workers", args=["--workers", "1"]),
    Example(name="projection", args=["--projection", "world"]),
    Example(name="steps", args=["--steps", "3", "--zoom-step", "0.5"], frames=4),
    Example(name="verbose", args=["--verbose"]),
]


def _verify(example: Example, output: str) -> None:
    frames = output.rstrip("\n").split("\n\n")
    if len(frames) != example.frames:
        raise RuntimeError(f"Example {example.name} printed {len(frames)} frames, expected {example.frames}")
    for frame in frames:
        rows = frame.split("\n")
        if len(rows) != 18 or any(len(row) != 60 for row in rows):
            raise RuntimeError(f"Example {example.name} printed a malformed grid")


def main() -> None:
    for example in EXAMPLES:
        print(f"\n[cli-example] {example.name}")
        completed = subprocess.run(example.full_args(), check=True, capture_output=True, text=True)
        _verify(example, completed.stdout)
        print(completed.stdout.split("\n\n")[-1], end="")
    print("\nAll CLI examples ran successfully.")


if __name__ == "__main__":
    main()
