"""Debounced rendering with stale-result suppression.

Every edit advances a generation counter and arms a single-shot timer that
remembers the generation it was armed for. A timer whose generation is no
longer current does nothing, so a burst of edits produces one render of the
final state. Renders run on a worker pool; a finished render is applied only
if its generation is still current, otherwise it is dropped without a trace
in the sinks. In-flight renders are not interrupted, only ignored.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from PySide6.QtCore import QObject, QRunnable, QThreadPool, QTimer, Signal

from .assembler import RenderInputs, SkippedImage, assemble
from .config import RENDER_DEBOUNCE_MS
from .engine import RenderEngine, RenderMode
from .errors import EmptySourceError, RenderEngineError
from .output import format_document

logger = logging.getLogger(__name__)


class EditKind(enum.Enum):
    SOURCE = "source"
    BIBLIOGRAPHY = "bibliography"
    IMAGES = "images"


@dataclass(frozen=True)
class RenderSuccess:
    mode: RenderMode
    page_count: int
    markup: str | None = None
    data: bytes | None = None
    skipped_images: tuple[SkippedImage, ...] = ()


@dataclass(frozen=True)
class RenderFailure:
    message: str
    # "empty_source", "render" (engine rejected the unit) or "internal"
    kind: str = "render"


RenderOutcome = Union[RenderSuccess, RenderFailure]


def run_pipeline(inputs: RenderInputs, engine: RenderEngine, mode: RenderMode = RenderMode.SVG) -> RenderOutcome:
    """Assemble, render and format one attempt; failures come back as outcomes."""
    try:
        assembly = assemble(inputs.source, inputs.bibliography, inputs.images)
    except EmptySourceError as exc:
        return RenderFailure(str(exc), "empty_source")

    try:
        document = engine.render(assembly.unit, mode)
    except RenderEngineError as exc:
        logger.error("Compilation error: %s", exc.message)
        return RenderFailure(exc.message, "render")

    formatted = format_document(document, mode)
    if isinstance(formatted, bytes):
        return RenderSuccess(mode, len(document.pages), data=formatted, skipped_images=assembly.skipped)
    return RenderSuccess(mode, len(document.pages), markup=formatted, skipped_images=assembly.skipped)


class GenerationCounter:
    """Single owner of the current generation token."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def advance(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._value

    def commit_if_current(self, token: int, apply: Callable[[], None]) -> bool:
        """Run `apply` only if `token` is current; compare and apply are atomic."""
        with self._lock:
            if token != self._value:
                return False
            apply()
            return True


class RenderWorkerSignals(QObject):
    """Signals emitted by background render workers."""

    finished = Signal(int, object)


class RenderWorker(QRunnable):
    """Run one render attempt off the UI thread."""

    def __init__(self, token: int, inputs: RenderInputs, engine: RenderEngine, mode: RenderMode):
        super().__init__()
        self.token = token
        self.inputs = inputs
        self.engine = engine
        self.mode = mode
        self.signals = RenderWorkerSignals()
        # The scheduler holds the only reference and drops it on completion.
        self.setAutoDelete(False)

    def run(self) -> None:
        try:
            outcome = run_pipeline(self.inputs, self.engine, self.mode)
        except Exception as exc:
            logger.exception("Render attempt %d crashed", self.token)
            outcome = RenderFailure(f"Render failed: {exc}", "internal")
        self.signals.finished.emit(self.token, outcome)


class RenderScheduler(QObject):
    """Coalesce edits into renders and route the current result to the sinks.

    `snapshot` is called when a render attempt starts and must return the
    inputs for that attempt. The `output` and `error` sinks are mutually
    exclusive: committing one clears the other.
    """

    output_changed = Signal(object)
    error_changed = Signal(object)
    rendering_changed = Signal(bool)
    attempt_started = Signal(int)

    def __init__(
        self,
        engine: RenderEngine,
        snapshot: Callable[[], RenderInputs],
        mode: RenderMode = RenderMode.SVG,
        delay_ms: int = RENDER_DEBOUNCE_MS,
        max_workers: int = 1,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self.engine = engine
        self.mode = mode
        self.delay_ms = delay_ms
        self._snapshot = snapshot
        self._generation = GenerationCounter()
        self._pool = QThreadPool(self)
        self._pool.setMaxThreadCount(max(1, max_workers))
        self._active_workers: set[RenderWorker] = set()
        self._output: RenderSuccess | None = None
        self._error: str | None = None
        self._rendering = False

    @property
    def generation(self) -> int:
        return self._generation.current

    @property
    def output(self) -> RenderSuccess | None:
        return self._output

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_rendering(self) -> bool:
        return self._rendering

    def notify(self, edit_kind: EditKind = EditKind.SOURCE) -> int:
        """Record an edit and arm the debounce timer for it."""
        token = self._generation.advance()
        logger.debug("Edit %d (%s), render in %d ms", token, edit_kind.value, self.delay_ms)
        QTimer.singleShot(self.delay_ms, lambda token=token: self._on_settled(token))
        return token

    def shutdown(self, timeout_ms: int = 5000) -> None:
        """Invalidate pending work and wait for running workers to finish."""
        self._generation.advance()
        self._cancel_queued_workers()
        if self._pool.waitForDone(timeout_ms):
            self._active_workers.clear()
        self._set_rendering(bool(self._active_workers))

    def _cancel_queued_workers(self) -> None:
        # Workers that have not started yet can be pulled from the queue;
        # running ones finish and are discarded as stale.
        for worker in list(self._active_workers):
            if self._pool.tryTake(worker):
                self._active_workers.discard(worker)

    def _on_settled(self, token: int) -> None:
        if not self._generation.is_current(token):
            logger.debug("Edit %d superseded during debounce", token)
            return

        inputs = self._snapshot()
        self._cancel_queued_workers()
        worker = RenderWorker(token, inputs, self.engine, self.mode)
        worker.signals.finished.connect(self._on_render_finished)
        self._active_workers.add(worker)
        self._set_rendering(True)
        self.attempt_started.emit(token)
        self._pool.start(worker)

    def _on_render_finished(self, token: int, outcome: RenderOutcome) -> None:
        """Apply a finished render if it is still the current generation."""
        for worker in list(self._active_workers):
            if worker.token == token:
                self._active_workers.discard(worker)

        committed = self._generation.commit_if_current(token, lambda: self._store(outcome))
        if committed:
            self.output_changed.emit(self._output)
            self.error_changed.emit(self._error)
        else:
            logger.debug("Discarding stale render result for edit %d", token)
        self._set_rendering(bool(self._active_workers))

    def _store(self, outcome: RenderOutcome) -> None:
        if isinstance(outcome, RenderSuccess):
            self._output = outcome
            self._error = None
        else:
            self._output = None
            self._error = outcome.message

    def _set_rendering(self, rendering: bool) -> None:
        if rendering == self._rendering:
            return
        self._rendering = rendering
        self.rendering_changed.emit(rendering)
