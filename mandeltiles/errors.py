"""Exceptions raised by the tile computation core."""

from __future__ import annotations


class MandeltilesError(Exception):
    """Base class for all mandeltiles errors."""


class InvalidTileSpecification(MandeltilesError, ValueError):
    """Pixel dimensions are not strictly positive."""


class RowComputationFault(MandeltilesError):
    """A scanline could not be computed, so the whole tile is discarded."""

    def __init__(self, row_index: int | None, message: str) -> None:
        super().__init__(message)
        self.row_index = row_index


class WorkerUnavailable(MandeltilesError):
    """The background worker has stopped or its channel is closed."""
