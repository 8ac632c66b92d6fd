"""Single-worker, staleness-aware tile request/response pipeline.

The foreground calls :meth:`TilePipeline.tick` once per frame with the live
viewport. At most one request is ever in flight, so any number of viewport
changes made while the worker is busy collapse into a single follow-up
request for the latest view. :attr:`TilePipeline.current_tile` can be read at
any time without blocking.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .engine import Tile, TileEngine
from .errors import InvalidTileSpecification, WorkerUnavailable
from .geometry import TileSpecification, Viewport

logger = logging.getLogger(__name__)

REQUEST_CAPACITY = 1
# Longest single block in wait() before the worker is checked for liveness.
WAIT_SLICE = 0.1


class PipelineStatus(enum.Enum):
    FRESH = "fresh"
    STALE = "stale"
    REQUESTING = "requesting"
    FAILED = "failed"
    WORKER_UNAVAILABLE = "worker-unavailable"


@dataclass(frozen=True, eq=False)
class TileCompletion:
    """What the worker sends back for one request."""

    specification: TileSpecification
    tile: Optional[Tile] = None
    error: Optional[BaseException] = None


def _worker_loop(engine: TileEngine, requests: queue.Queue, completions: queue.Queue) -> None:
    logger.debug("Tile worker running.")
    while True:
        spec = requests.get()
        if spec is None:
            break
        try:
            tile = engine.compute_tile(spec)
        except Exception as exc:
            completions.put(TileCompletion(spec, error=exc))
        else:
            completions.put(TileCompletion(spec, tile=tile))
    logger.debug("Tile worker stopping.")


class TilePipeline:
    def __init__(self, engine: TileEngine, *, start: bool = True) -> None:
        self.engine = engine
        self.current_tile: Optional[Tile] = None
        self.desired_spec: Optional[TileSpecification] = None
        self.last_error: Optional[BaseException] = None
        self.requests_sent = 0

        self._status = PipelineStatus.STALE
        self._failed_spec: Optional[TileSpecification] = None
        self._pending: Optional[TileCompletion] = None
        self._ignored_dims = None
        self._closed = False
        self._worker: Optional[threading.Thread] = None
        self._requests: queue.Queue = queue.Queue(maxsize=REQUEST_CAPACITY)
        self._completions: queue.Queue = queue.Queue()

        if start:
            self.start()

    def __enter__(self) -> "TilePipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def status(self) -> PipelineStatus:
        if self._status is not PipelineStatus.WORKER_UNAVAILABLE and not self.worker_alive:
            return PipelineStatus.WORKER_UNAVAILABLE
        return self._status

    @property
    def worker_alive(self) -> bool:
        return not self._closed and self._worker is not None and self._worker.is_alive()

    @property
    def is_fresh(self) -> bool:
        return self.status is PipelineStatus.FRESH

    def start(self) -> None:
        """Spawn the background worker with a new pair of channels."""

        if self._closed:
            raise WorkerUnavailable("pipeline is closed; use restart()")
        if self.worker_alive:
            return
        self._requests = queue.Queue(maxsize=REQUEST_CAPACITY)
        self._completions = queue.Queue()
        self._worker = threading.Thread(
            target=_worker_loop,
            args=(self.engine, self._requests, self._completions),
            name="mandeltiles-tile-worker",
            daemon=True,
        )
        self._worker.start()

    def restart(self) -> None:
        """Replace a dead worker; the last desired view is re-sent on the next tick."""

        if self.worker_alive:
            return
        logger.info("Restarting tile worker.")
        self._closed = False
        self._pending = None
        self.start()
        self._status = PipelineStatus.STALE

    def close(self, timeout: Optional[float] = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        worker = self._worker
        if worker is not None and worker.is_alive():
            try:
                self._requests.get_nowait()
            except queue.Empty:
                pass
            else:
                logger.debug("Dropped a queued tile request on shutdown.")
            try:
                self._requests.put(None, timeout=timeout)
            except queue.Full:
                logger.warning("Tile worker did not accept the shutdown request.")
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Tile worker is still finishing a tile; leaving it to exit on its own.")
        # A worker that outlives the join has its sentinel and must not be reused.
        self._worker = None
        self._status = PipelineStatus.WORKER_UNAVAILABLE

    def tick(self, viewport: Viewport) -> PipelineStatus:
        """Advance the state machine by one foreground step. Never blocks."""

        try:
            self.desired_spec = TileSpecification.from_viewport(viewport)
        except InvalidTileSpecification as exc:
            if viewport.pixel_dims != self._ignored_dims:
                logger.warning("Ignoring viewport: %s", exc)
                self._ignored_dims = viewport.pixel_dims
        else:
            self._ignored_dims = None

        if not self.worker_alive:
            if self._status is not PipelineStatus.WORKER_UNAVAILABLE:
                logger.error("Tile worker is unavailable.")
            self._poll()
            self._status = PipelineStatus.WORKER_UNAVAILABLE
            return self._status

        desired = self.desired_spec
        if desired is None:
            return self._status

        if self._status is PipelineStatus.FRESH and self.current_tile.specification != desired:
            self._status = PipelineStatus.STALE
        elif self._status is PipelineStatus.FAILED and self._failed_spec != desired:
            self._status = PipelineStatus.STALE

        if self._status is PipelineStatus.STALE:
            try:
                self._send(desired)
            except WorkerUnavailable:
                self._status = PipelineStatus.WORKER_UNAVAILABLE
                return self._status

        self._poll()
        return self._status

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a completion is ready for the next :meth:`tick`.

        Returns False straight away when nothing is in flight, when ``timeout``
        runs out, or as soon as the worker is found dead. The wait happens in
        slices of at most :data:`WAIT_SLICE` seconds, so a worker that dies
        mid-request never leaves the caller blocked.
        """

        if self._pending is not None:
            return True
        if self._status is not PipelineStatus.REQUESTING:
            return False
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            block = WAIT_SLICE if deadline is None else min(WAIT_SLICE, deadline - time.monotonic())
            try:
                self._pending = self._completions.get(timeout=max(block, 0.0))
            except queue.Empty:
                if not self.worker_alive:
                    return False
                if deadline is not None and time.monotonic() >= deadline:
                    return False
            else:
                return True

    def _send(self, spec: TileSpecification) -> None:
        if not self.worker_alive:
            raise WorkerUnavailable("tile worker is not running")
        try:
            self._requests.put_nowait(spec)
        except queue.Full:
            logger.warning("Request channel full; retrying on the next tick.")
            return
        self.requests_sent += 1
        self._status = PipelineStatus.REQUESTING
        logger.debug("Requested tile %dx%d zoom=%g center=(%g, %g)",
                     spec.pixel_width, spec.pixel_height, spec.zoom, spec.center.x, spec.center.y)

    def _poll(self) -> None:
        completion = self._pending
        self._pending = None
        if completion is None:
            try:
                completion = self._completions.get_nowait()
            except queue.Empty:
                return

        if completion.error is not None:
            self.last_error = completion.error
            self._failed_spec = completion.specification
            logger.error("Tile computation failed: %s", completion.error)
            if completion.specification == self.desired_spec:
                self._status = PipelineStatus.FAILED
            else:
                self._status = PipelineStatus.STALE
            return

        self.current_tile = completion.tile
        self.last_error = None
        if completion.specification == self.desired_spec:
            self._status = PipelineStatus.FRESH
        else:
            self._status = PipelineStatus.STALE
        logger.debug("Received tile (%s).", self._status.value)
