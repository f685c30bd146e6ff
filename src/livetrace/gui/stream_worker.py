"""Threaded worker that runs the websocket feed and relays samples as Qt signals."""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Sequence, Set, Tuple

from PySide6.QtCore import QObject, Signal, Slot

from ..config import StreamConfig
from ..core.selection import SelectionSource
from ..core.session import StreamSession
from ..core.trace_buffers import TraceBuffer
from ..remote.websocket_client import WebSocketFeed

logger = logging.getLogger(__name__)

TraceInfo = Tuple[int, int, str]  # trace_index, dataset_id, label
Extension = Tuple[int, float, float]


class StreamWorker(QObject):
    """QObject worker that owns the session and acts as its trace sink.

    It is meant to live in its own QThread. Decoding and buffer writes stay
    on that thread; the GUI only ever receives copies: the trace layout
    once, the historical arrays once, then small batches of live samples.
    """

    traces_declared = Signal(list)  # list[TraceInfo]
    history_loaded = Signal(list)  # list[(trace_index, t, y)]
    samples_batch = Signal(list)  # list[Extension]
    error = Signal(str)
    finished = Signal()

    def __init__(
        self,
        cfg: StreamConfig,
        selection: SelectionSource,
        *,
        batch_size: int = 50,
        max_latency_ms: int = 100,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._cfg = cfg
        self._selection = selection
        self._batch_size = max(1, int(batch_size))
        self._max_latency_s = max(0.0, float(max_latency_ms)) / 1000.0
        self._pending: List[Extension] = []
        self._update_ends: Set[int] = set()
        self._last_emit = time.monotonic()
        self._session: Optional[StreamSession] = None
        self._feed: Optional[WebSocketFeed] = None

    # ------------------------------------------------------------ TraceSink
    def initialize(self, traces: Sequence[TraceBuffer]) -> None:
        assert self._session is not None
        registry = self._session.registry
        info: List[TraceInfo] = [
            (trace.trace_index, trace.dataset_id, trace.label) for trace in registry.traces()
        ]
        # extend() is called once per trace in registry order, so the last
        # trace of a dataset closes one live update.
        self._update_ends = {ds.trace_indices[-1] for ds in registry if ds.traces}
        self.traces_declared.emit(info)

    def bulk_loaded(self, traces: Sequence[TraceBuffer]) -> None:
        self.history_loaded.emit([(buf.trace_index, buf.t.copy(), buf.y.copy()) for buf in traces])

    def extend(self, trace_index: int, time_s: float, value: float) -> None:
        self._pending.append((trace_index, time_s, value))
        if trace_index not in self._update_ends:
            return
        now = time.monotonic()
        # Emit when enough samples piled up or the oldest one waited too long.
        if len(self._pending) >= self._batch_size or now - self._last_emit >= self._max_latency_s:
            self._flush(now)

    def build_session(self) -> StreamSession:
        """Create the session this worker feeds from and renders for."""
        self._session = StreamSession(
            self._selection,
            sink=self,
            start_ts=self._cfg.start_ts,
            stop_ts=self._cfg.stop_ts,
            max_plot_points=self._cfg.max_plot_points,
            on_error=lambda exc: self.error.emit(f"{type(exc).__name__}: {exc}"),
        )
        return self._session

    # ----------------------------------------------------------------- slots
    @Slot()
    def start(self) -> None:
        """Entry point for the QThread: run the feed until it closes."""
        session = self.build_session()
        self._feed = WebSocketFeed(self._cfg.url, session, verify_tls=self._cfg.verify_tls)
        try:
            self._feed.run()
        except ValueError as exc:
            self.error.emit(str(exc))
        finally:
            self._flush(time.monotonic())
            self.finished.emit()

    @Slot()
    def stop(self) -> None:
        """Ask the feed to close; safe to call from the GUI thread."""
        if self._feed is not None:
            self._feed.stop_threadsafe()

    def _flush(self, now: float) -> None:
        if self._pending:
            self.samples_batch.emit(list(self._pending))
            self._pending.clear()
        self._last_emit = now
