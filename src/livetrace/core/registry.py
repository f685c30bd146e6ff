"""Dataset/field to trace-index mapping built from the metadata record."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from ..protocol.errors import UnknownDataset
from ..protocol.frames import MetadataRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Field:
    dataset_id: int
    field_id: str


@dataclass(frozen=True)
class Trace:
    """Buffer slot assigned to one field for the lifetime of a session."""

    trace_index: int
    dataset_id: int
    field_id: str
    name: Optional[str] = None

    @property
    def field(self) -> Field:
        return Field(self.dataset_id, self.field_id)

    @property
    def label(self) -> str:
        return self.name or f"{self.dataset_id}:{self.field_id}"


@dataclass(frozen=True)
class Dataset:
    """Fields sharing one time axis, in the order the metadata declared them."""

    dataset_id: int
    traces: Tuple[Trace, ...]
    capacity: int

    @property
    def fields(self) -> Tuple[Field, ...]:
        return tuple(trace.field for trace in self.traces)

    @property
    def trace_indices(self) -> Tuple[int, ...]:
        return tuple(trace.trace_index for trace in self.traces)


class DatasetRegistry:
    """
    Per-session mapping of ``dataset_id`` to its ordered traces.

    :meth:`register` runs exactly once. Trace indices come from a single
    counter across the whole record, so they are unique across datasets and
    never change afterwards.
    """

    def __init__(self) -> None:
        self._datasets: Dict[int, Dataset] = {}
        self._traces: List[Trace] = []
        self._registered = False

    def register(self, metadata: MetadataRecord) -> List[Dataset]:
        if self._registered:
            raise RuntimeError("DatasetRegistry.register() may only be called once per session")

        next_index = 0
        datasets: Dict[int, Dataset] = {}
        traces: List[Trace] = []
        for meta in metadata.datasets:
            members: List[Trace] = []
            for pos, field_id in enumerate(meta.field_ids):
                trace = Trace(
                    trace_index=next_index,
                    dataset_id=meta.dataset_id,
                    field_id=field_id,
                    name=meta.name_of(pos),
                )
                members.append(trace)
                next_index += 1
            datasets[meta.dataset_id] = Dataset(
                dataset_id=meta.dataset_id,
                traces=tuple(members),
                capacity=metadata.capacity_of(meta),
            )
            traces.extend(members)

        self._datasets = datasets
        self._traces = traces
        self._registered = True
        logger.info(
            "Registered %d dataset(s) with %d trace(s)", len(datasets), len(traces)
        )
        return list(datasets.values())

    # ------------------------------------------------------------------- query
    @property
    def is_registered(self) -> bool:
        return self._registered

    @property
    def trace_count(self) -> int:
        return len(self._traces)

    def dataset(self, dataset_id: int) -> Dataset:
        try:
            return self._datasets[dataset_id]
        except KeyError:
            raise UnknownDataset(dataset_id) from None

    def lookup(self, dataset_id: int) -> Tuple[int, ...]:
        """Trace indices of ``dataset_id`` in registration order."""
        return self.dataset(dataset_id).trace_indices

    def field_count(self, dataset_id: int) -> int:
        return len(self.dataset(dataset_id).traces)

    def trace(self, trace_index: int) -> Trace:
        return self._traces[trace_index]

    def traces(self) -> List[Trace]:
        return list(self._traces)

    def datasets(self) -> List[Dataset]:
        return list(self._datasets.values())

    def capacities(self) -> List[int]:
        """Capacity of every trace, indexed by trace index."""
        return [self._datasets[trace.dataset_id].capacity for trace in self._traces]

    def __contains__(self, dataset_id: object) -> bool:
        return dataset_id in self._datasets

    def __len__(self) -> int:
        return len(self._datasets)

    def __iter__(self) -> Iterator[Dataset]:
        return iter(self._datasets.values())
