"""Qt application entry point for the live trace viewer.

Builds a main window around :class:`TracePlotWidget`, moves a
:class:`StreamWorker` into its own QThread and wires the two together.
"""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from PySide6.QtCore import QThread
from PySide6.QtWidgets import QApplication, QMainWindow

from ..config import StreamConfig
from ..core.selection import SelectionSource
from .stream_worker import StreamWorker
from .trace_plot_widget import TracePlotWidget

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, cfg: StreamConfig, selection: SelectionSource) -> None:
        super().__init__()
        self.setWindowTitle(f"livetrace - {cfg.url}")
        self.resize(1100, 700)

        self.plot = TracePlotWidget(
            self,
            window_seconds=cfg.plot_window_seconds,
            refresh_interval_ms=cfg.refresh_interval_ms,
        )
        self.setCentralWidget(self.plot)

        self._thread = QThread(self)
        self._worker = StreamWorker(cfg, selection)
        self._worker.moveToThread(self._thread)

        self._thread.started.connect(self._worker.start)
        self._worker.traces_declared.connect(self.plot.declare_traces)
        self._worker.history_loaded.connect(self.plot.load_history)
        self._worker.samples_batch.connect(self.plot.extend_batch)
        self._worker.error.connect(self._on_error)
        self._worker.finished.connect(self._thread.quit)

    def start(self) -> None:
        self._thread.start()

    def _on_error(self, message: str) -> None:
        logger.error("Stream error: %s", message)
        self.statusBar().showMessage(f"Stream error: {message}")

    def closeEvent(self, event) -> None:  # noqa: N802 - Qt override
        self._worker.stop()
        self._thread.quit()
        self._thread.wait(2000)
        super().closeEvent(event)


def run_gui(cfg: StreamConfig, selection: SelectionSource, argv: Sequence[str] | None = None) -> int:
    app = QApplication.instance() or QApplication(list(argv or sys.argv))
    window = MainWindow(cfg, selection)
    window.show()
    window.start()
    return app.exec()
