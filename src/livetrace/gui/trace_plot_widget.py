"""PyQtGraph widget showing one curve per trace, one plot per dataset."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
import pyqtgraph as pg
from PySide6.QtCore import QTimer, Slot
from PySide6.QtWidgets import QVBoxLayout, QWidget

from ..core.trace_buffers import GrowableArray
from ..protocol.frames import TIME_DTYPE, VALUE_DTYPE

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_MS = 50
# Updating faster than this gains nothing visible and costs CPU with many traces.
MIN_REFRESH_INTERVAL_MS = 10


class _CurveData:
    __slots__ = ("times", "values")

    def __init__(self) -> None:
        self.times = GrowableArray(0, TIME_DTYPE)
        self.values = GrowableArray(0, VALUE_DTYPE)


class TracePlotWidget(QWidget):
    """
    Live plot of decoded traces.

    The widget keeps its own copy of every trace; it is fed through the
    :meth:`declare_traces`, :meth:`load_history` and :meth:`extend_batch`
    slots (see :class:`~livetrace.gui.stream_worker.StreamWorker`) and redraws
    changed curves on a timer rather than per sample.
    """

    def __init__(
        self,
        parent: Optional[QWidget] = None,
        *,
        window_seconds: float = 0.0,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
    ) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self._glw = pg.GraphicsLayoutWidget(self)
        layout.addWidget(self._glw)

        self._window_seconds = max(0.0, float(window_seconds))
        self._plots: Dict[int, pg.PlotItem] = {}
        self._curves: Dict[int, pg.PlotDataItem] = {}
        self._data: Dict[int, _CurveData] = {}
        self._dirty: Set[int] = set()
        self._latest_time: Optional[float] = None

        self._timer = QTimer(self)
        self._timer.setInterval(max(MIN_REFRESH_INTERVAL_MS, int(refresh_interval_ms)))
        self._timer.timeout.connect(self._refresh)
        self._timer.start()

    # ----------------------------------------------------------------- slots
    @Slot(list)
    def declare_traces(self, traces: Sequence[Tuple[int, int, str]]) -> None:
        """Build one plot per dataset and one curve per trace."""
        self._glw.clear()
        self._plots.clear()
        self._curves.clear()
        self._data.clear()
        self._dirty.clear()

        for row, dataset_id in enumerate(_unique(ds for _, ds, _ in traces)):
            plot = self._glw.addPlot(row=row, col=0, axisItems={"bottom": pg.DateAxisItem()})
            plot.setMenuEnabled(False)
            plot.showGrid(x=True, y=True, alpha=0.3)
            plot.addLegend()
            plot.setLabel("left", f"dataset {dataset_id}")
            self._plots[dataset_id] = plot

        for color_idx, (trace_index, dataset_id, label) in enumerate(traces):
            pen = pg.mkPen(pg.intColor(color_idx, hues=max(len(traces), 1)), width=1.5)
            curve = self._plots[dataset_id].plot([], [], pen=pen, name=label, connect="finite")
            self._curves[trace_index] = curve
            self._data[trace_index] = _CurveData()
        logger.info("Plotting %d trace(s) in %d plot(s)", len(traces), len(self._plots))

    @Slot(list)
    def load_history(self, history: Sequence[Tuple[int, np.ndarray, np.ndarray]]) -> None:
        for trace_index, times, values in history:
            data = self._data.get(trace_index)
            if data is None:
                logger.warning("History for undeclared trace %d ignored", trace_index)
                continue
            data.times = GrowableArray(len(times), TIME_DTYPE)
            data.values = GrowableArray(len(values), VALUE_DTYPE)
            data.times.write(0, times)
            data.values.write(0, values)
            self._note_time(times)
            self._dirty.add(trace_index)

    @Slot(list)
    def extend_batch(self, samples: Iterable[Tuple[int, float, float]]) -> None:
        for trace_index, time_s, value in samples:
            data = self._data.get(trace_index)
            if data is None:
                continue
            data.times.append(time_s)
            data.values.append(value)
            self._dirty.add(trace_index)
            if self._latest_time is None or time_s > self._latest_time:
                self._latest_time = time_s

    def set_window_seconds(self, seconds: float) -> None:
        """Show only the last ``seconds`` of data; 0 shows everything."""
        self._window_seconds = max(0.0, float(seconds))

    # --------------------------------------------------------------- helpers
    def _note_time(self, times: np.ndarray) -> None:
        finite = times[np.isfinite(times)]
        if finite.size:
            latest = float(finite.max())
            if self._latest_time is None or latest > self._latest_time:
                self._latest_time = latest

    @Slot()
    def _refresh(self) -> None:
        if not self._dirty:
            return
        for trace_index in list(self._dirty):
            data = self._data[trace_index]
            self._curves[trace_index].setData(data.times.view(), data.values.view())
        self._dirty.clear()

        if self._window_seconds > 0 and self._latest_time is not None:
            start = self._latest_time - self._window_seconds
            for plot in self._plots.values():
                plot.setXRange(start, self._latest_time, padding=0.0)


def _unique(items: Iterable[int]) -> List[int]:
    seen: List[int] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen
