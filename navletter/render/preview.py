from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ..config import get_settings
from ..layout.engine import KeepTogetherPolicy, LayoutResult, render_document
from ..types import DocumentData
from .pdf_backend import render_pdf


logger = logging.getLogger(__name__)


def measure_document(data: DocumentData, *, policy: KeepTogetherPolicy | None = None) -> LayoutResult:
    """Run the full layout pass without producing a file."""
    return render_document(data, policy=policy)


def render_preview_png(
    data: DocumentData,
    *,
    page: int = 1,
    dpi: int | None = None,
    policy: KeepTogetherPolicy | None = None,
) -> bytes:
    import pymupdf as fitz

    resolution = int(dpi or get_settings().preview_dpi)
    pdf_bytes = render_pdf(data, policy=policy)
    document = fitz.open(stream=pdf_bytes, filetype='pdf')
    try:
        index = min(max(1, int(page)), document.page_count) - 1
        pixmap = document[index].get_pixmap(dpi=resolution)
        return pixmap.tobytes('png')
    finally:
        document.close()


class PreviewScheduler:
    """Debounced single-slot preview renderer.

    Each call to :meth:`schedule` replaces the pending render. A finished
    render is published through ``on_result`` only when nothing newer has
    been published already; the handle it replaces goes to ``on_release``.
    """

    def __init__(
        self,
        render: Callable[[DocumentData], Any],
        on_result: Callable[[Any], None],
        *,
        delay: float | None = None,
        on_release: Callable[[Any], None] | None = None,
    ):
        self._render = render
        self._on_result = on_result
        self._on_release = on_release
        self.delay = get_settings().preview_debounce_seconds if delay is None else float(delay)

        self._lock = threading.Lock()
        self._render_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: tuple[int, DocumentData] | None = None
        self._generation = 0
        self._published_generation = 0
        self._current: Any = None

    @property
    def current(self) -> Any:
        return self._current

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, data: DocumentData) -> int:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._pending = (generation, data)
            self._timer = threading.Timer(self.delay, self._fire, args=(generation,))
            self._timer.daemon = True
            self._timer.start()
        return generation

    def flush(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending = self._pending
        if pending is not None:
            self._fire(pending[0])

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if self._pending is None or self._pending[0] != generation:
                return
            _, data = self._pending
            self._pending = None
            self._timer = None

        with self._render_lock:
            try:
                result = self._render(data)
            except Exception as exc:
                logger.warning('Preview render %d failed: %s', generation, exc)
                return
            self._publish(generation, result)

    def _publish(self, generation: int, result: Any) -> None:
        with self._lock:
            if generation <= self._published_generation:
                stale, replaced = True, None
            else:
                stale = False
                replaced = self._current
                self._current = result
                self._published_generation = generation
        if stale:
            logger.debug('Dropping stale preview %d', generation)
            self._release(result)
            return
        if replaced is not None:
            self._release(replaced)
        self._on_result(result)

    def _release(self, handle: Any) -> None:
        if self._on_release is not None and handle is not None:
            self._on_release(handle)
