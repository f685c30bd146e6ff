"""Appends live samples once the bulk transfer is done."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

from ..protocol.errors import MalformedFrame
from ..protocol.frames import LiveUpdate
from .registry import DatasetRegistry
from .sinks import NullSink, TraceSink
from .trace_buffers import TraceBufferStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceExtension:
    trace_index: int
    time: float
    value: float


class UpdateDecoder:
    """
    Turn one :class:`LiveUpdate` into one appended sample per trace.

    Every trace of the dataset grows by exactly one element before the sink
    hears about any of them, so a sink reading sibling traces during
    ``extend`` always sees equal lengths.
    """

    def __init__(
        self,
        registry: DatasetRegistry,
        store: TraceBufferStore,
        sink: Optional[TraceSink] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._sink: TraceSink = sink or NullSink()
        self._counts: Counter[int] = Counter()

    def apply(self, update: LiveUpdate) -> List[TraceExtension]:
        traces = self._registry.lookup(update.dataset_id)
        if len(update.values) != len(traces):
            raise MalformedFrame(
                f"update for dataset {update.dataset_id} carries {len(update.values)} "
                f"value(s), expected {len(traces)}"
            )

        extensions: List[TraceExtension] = []
        for trace_index, value in zip(traces, update.values):
            self._store.append(trace_index, update.timestamp, value)
            extensions.append(TraceExtension(trace_index, update.timestamp, float(value)))

        for ext in extensions:
            self._sink.extend(ext.trace_index, ext.time, ext.value)

        self._counts[update.dataset_id] += 1
        return extensions

    def update_count(self, dataset_id: int) -> int:
        return self._counts[dataset_id]
