"""Rendering-side collaborators that receive finished buffers and live samples."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Sequence, Tuple

from .trace_buffers import TraceBuffer

logger = logging.getLogger(__name__)

__all__ = [
    "TraceSink",
    "NullSink",
    "LoggingSink",
    "CollectingSink",
]


class TraceSink(Protocol):
    """Interface the session drives; implemented by plot widgets."""

    def initialize(self, traces: Sequence[TraceBuffer]) -> None:  # pragma: no cover - protocol
        """Called once, right after the buffers have been allocated."""
        ...

    def bulk_loaded(self, traces: Sequence[TraceBuffer]) -> None:  # pragma: no cover - protocol
        """Called once, after the terminal chunk of every dataset."""
        ...

    def extend(self, trace_index: int, time: float, value: float) -> None:  # pragma: no cover - protocol
        """Called once per trace for every live update."""
        ...


@dataclass
class NullSink:
    """No-op sink used when nothing renders the traces."""

    def initialize(self, traces: Sequence[TraceBuffer]) -> None:  # pragma: no cover - trivial
        return

    def bulk_loaded(self, traces: Sequence[TraceBuffer]) -> None:  # pragma: no cover - trivial
        return

    def extend(self, trace_index: int, time: float, value: float) -> None:  # pragma: no cover - trivial
        return


@dataclass
class LoggingSink:
    """Headless sink that reports progress through :mod:`logging`."""

    every: int = 1
    _count: int = field(init=False, default=0, repr=False)

    def initialize(self, traces: Sequence[TraceBuffer]) -> None:
        logger.info(
            "Allocated %d trace(s), capacities %s",
            len(traces),
            [buf.capacity for buf in traces],
        )

    def bulk_loaded(self, traces: Sequence[TraceBuffer]) -> None:
        logger.info("Historical data loaded for %d trace(s)", len(traces))

    def extend(self, trace_index: int, time: float, value: float) -> None:
        self._count += 1
        if self._count % max(1, self.every) == 0:
            logger.info("trace %d: t=%.3f value=%g", trace_index, time, value)


@dataclass
class CollectingSink:
    """Records every call; handy for tests and offline replay."""

    initialized: List[List[int]] = field(default_factory=list)
    loaded: List[List[int]] = field(default_factory=list)
    extensions: List[Tuple[int, float, float]] = field(default_factory=list)

    def initialize(self, traces: Sequence[TraceBuffer]) -> None:
        self.initialized.append([buf.trace_index for buf in traces])

    def bulk_loaded(self, traces: Sequence[TraceBuffer]) -> None:
        self.loaded.append([buf.trace_index for buf in traces])

    def extend(self, trace_index: int, time: float, value: float) -> None:
        self.extensions.append((trace_index, float(time), float(value)))
