"""
Asynchronous rendering with cancellation by staleness.

Interactive callers submit a render on every slider tick. Each submission gets
a generation number from a monotonic counter; when a render finishes it is
committed only if no newer submission has been made since. Older renders that
finish late are discarded, so the committed result always reflects the most
recently submitted EditState.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

import numpy as np

from ..config import settings
from ..processing import pipeline
from ..processing.processing_strategy import ProcessingContext
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RenderTicket:
    """Handle returned by RenderService.submit."""
    generation: int
    signature: str
    future: Future = field(compare=False, repr=False)


@dataclass(frozen=True)
class RenderOutcome:
    """A finished render. Stale outcomes carry no pixels."""
    generation: int
    pixels: Optional[Union[bytes, np.ndarray]]
    backend: Optional[str]
    stale: bool


ResultCallback = Callable[[RenderOutcome], None]


class RenderService:
    """
    Runs renders on a thread pool and discards stale completions.

    Args:
        context: Backend selection; a new ProcessingContext by default.
        max_workers: Pool size, ``RENDER_DEFAULTS["max_workers"]`` by default.
        on_result: Called with each committed (non-stale) outcome, from the
            worker thread, while the service lock is held.
    """

    def __init__(
        self,
        context: Optional[ProcessingContext] = None,
        max_workers: Optional[int] = None,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        if max_workers is None:
            max_workers = int(settings.RENDER_DEFAULTS.get("max_workers", 2))
        self._context = context or ProcessingContext()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="render")
        self._on_result = on_result
        # RLock so on_result may submit again from the worker thread
        self._lock = threading.RLock()
        self._generation = 0
        self._latest: Optional[RenderOutcome] = None
        self._closed = False

    @property
    def current_generation(self) -> int:
        with self._lock:
            return self._generation

    def submit(
        self,
        pixels,
        width: int,
        height: int,
        edit,
        bypass: Optional[Iterable[Any]] = frozenset(),
        seed: Optional[int] = None,
    ) -> RenderTicket:
        """
        Schedule a render and return its ticket.

        The buffer is validated and copied before this returns, so the caller
        may reuse it immediately.

        Raises:
            InvalidBufferShape: if the buffer does not match width and height.
            RuntimeError: if the service was shut down.
        """
        edit = pipeline.coerce_edit(edit)
        image = pipeline.validate_buffer(pixels, width, height).copy()
        as_array = isinstance(pixels, np.ndarray)

        with self._lock:
            if self._closed:
                raise RuntimeError("RenderService has been shut down")
            self._generation += 1
            generation = self._generation
            future = self._executor.submit(
                self._render, generation, image, edit, bypass, seed, as_array
            )

        future.add_done_callback(lambda f: self._on_done(generation, f))
        logger.debug("Submitted render generation %d", generation)
        return RenderTicket(generation, edit.signature(bypass), future)

    def is_current(self, ticket: RenderTicket) -> bool:
        """True if no render was submitted after ``ticket``."""
        with self._lock:
            return ticket.generation == self._generation

    def _render(self, generation, image, edit, bypass, seed, as_array):
        # Already superseded before it started: skip the work
        if generation != self.current_generation:
            logger.debug("Skipping superseded render generation %d", generation)
            return None
        result, backend = self._context.process(image, edit, bypass, seed)
        return (result if as_array else result.tobytes()), backend

    def _on_done(self, generation: int, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Render generation %d failed: %s", generation, error)
            return
        value = future.result()
        if value is None:
            return
        pixels, backend = value

        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Discarding stale render generation %d (current %d)", generation, self._generation
                )
                return
            outcome = RenderOutcome(generation, pixels, backend, stale=False)
            self._latest = outcome
            if self._on_result is not None:
                self._on_result(outcome)

    def result(self, ticket: RenderTicket, timeout: Optional[float] = None) -> RenderOutcome:
        """
        Wait for ``ticket`` and return its outcome.

        A render superseded by a newer submission comes back with
        ``stale=True`` and ``pixels=None``. Errors of a current render are
        re-raised; errors of a stale one are discarded with it.
        """
        try:
            value = ticket.future.result(timeout)
        except Exception:
            if self.is_current(ticket):
                raise
            value = None

        if value is None or not self.is_current(ticket):
            return RenderOutcome(ticket.generation, None, None, stale=True)
        pixels, backend = value
        return RenderOutcome(ticket.generation, pixels, backend, stale=False)

    def latest(self) -> Optional[RenderOutcome]:
        """Most recent committed outcome, if any."""
        with self._lock:
            return self._latest

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting renders and release the pool; pending renders are cancelled."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "RenderService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
