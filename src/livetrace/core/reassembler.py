"""Places bulk-transfer chunks into the trace buffers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Set

from ..protocol.errors import BufferOverrun, MalformedFrame, OutOfSequenceFrame
from ..protocol.frames import BulkChunk
from ..tools.debug import time_block
from .registry import Dataset, DatasetRegistry
from .trace_buffers import TraceBufferStore

logger = logging.getLogger(__name__)


@dataclass
class DatasetProgress:
    """Bulk-transfer bookkeeping for one dataset."""

    dataset_id: int
    n_chunks: int
    received: Set[int] = field(default_factory=set)
    complete: bool = False

    def missing(self) -> List[int]:
        return sorted(set(range(self.n_chunks)) - self.received)


class ChunkReassembler:
    """
    Write bulk chunks at the offset implied by their index.

    The server counts chunks down: for a dataset split into ``n`` chunks the
    first one sent carries index ``n - 1`` and lands at offset 0, the last one
    carries index 0 and marks the end of the transfer. Offsets therefore
    follow from the index and ``package_size`` alone, and bookkeeping is kept
    per dataset so interleaved datasets do not disturb each other.

    Every check runs before the first write, so a rejected chunk leaves the
    store untouched.
    """

    def __init__(
        self,
        registry: DatasetRegistry,
        store: TraceBufferStore,
        package_size: int,
    ) -> None:
        if package_size <= 0:
            raise ValueError("package_size must be positive")
        self._registry = registry
        self._store = store
        self._package_size = int(package_size)
        self._progress: Dict[int, DatasetProgress] = {}

    @property
    def package_size(self) -> int:
        return self._package_size

    def chunk_count(self, dataset: Dataset) -> int:
        return max(1, math.ceil(dataset.capacity / self._package_size))

    def offset_for(self, dataset_id: int, chunk_index: int) -> int:
        """Destination offset of ``chunk_index`` within ``dataset_id``'s buffers."""
        dataset = self._registry.dataset(dataset_id)
        n_chunks = self.chunk_count(dataset)
        if not 0 <= chunk_index < n_chunks:
            raise BufferOverrun(
                f"chunk index {chunk_index} outside 0..{n_chunks - 1} for dataset {dataset_id}"
            )
        return (n_chunks - 1 - chunk_index) * self._package_size

    def apply(self, chunk: BulkChunk) -> bool:
        """
        Write ``chunk`` into the store.

        Returns True only when this chunk completes its dataset for the first
        time; repeated terminal chunks overwrite in place but do not signal
        again.
        """
        if not self._registry.is_registered:
            raise OutOfSequenceFrame("bulk chunk received before metadata was registered")

        dataset = self._registry.dataset(chunk.dataset_id)
        traces = dataset.trace_indices
        rows = chunk.rows
        if chunk.values.shape != (rows, len(traces)):
            raise MalformedFrame(
                f"chunk for dataset {dataset.dataset_id} carries values shaped "
                f"{chunk.values.shape}, expected ({rows}, {len(traces)})"
            )

        offset = self.offset_for(dataset.dataset_id, chunk.chunk_index)
        if offset + rows > dataset.capacity:
            raise BufferOverrun(
                f"chunk {chunk.chunk_index} of dataset {dataset.dataset_id}: {rows} row(s) "
                f"at offset {offset} exceed capacity {dataset.capacity}"
            )
        for trace_index in traces:
            self._store.check_write(trace_index, offset, rows)

        with time_block(f"chunk {chunk.chunk_index} of dataset {dataset.dataset_id}"):
            for column, trace_index in enumerate(traces):
                self._store.write_time(trace_index, offset, chunk.timestamps)
                self._store.write_values(trace_index, offset, chunk.values[:, column])

        progress = self._progress_for(dataset)
        progress.received.add(chunk.chunk_index)
        logger.debug(
            "Chunk %d of dataset %d: %d row(s) at offset %d",
            chunk.chunk_index,
            dataset.dataset_id,
            rows,
            offset,
        )

        if not chunk.is_terminal:
            if progress.complete:
                logger.warning(
                    "Chunk %d for dataset %d arrived after its terminal chunk",
                    chunk.chunk_index,
                    dataset.dataset_id,
                )
            return False

        if progress.complete:
            logger.debug("Repeated terminal chunk for dataset %d", dataset.dataset_id)
            return False

        missing = progress.missing()
        if missing:
            # No reordering: the terminal chunk closes the dataset even with gaps.
            logger.warning(
                "Dataset %d completed with %d chunk(s) never received: %s",
                dataset.dataset_id,
                len(missing),
                missing,
            )
        progress.complete = True
        logger.info(
            "Bulk transfer for dataset %d complete (%d chunk(s))",
            dataset.dataset_id,
            len(progress.received),
        )
        return True

    # ------------------------------------------------------------------- query
    def is_complete(self, dataset_id: int) -> bool:
        progress = self._progress.get(dataset_id)
        return progress is not None and progress.complete

    @property
    def complete(self) -> bool:
        """True once every registered dataset has received its terminal chunk."""
        if not self._registry.is_registered:
            return False
        return all(self.is_complete(ds.dataset_id) for ds in self._registry)

    def pending_datasets(self) -> List[int]:
        return [ds.dataset_id for ds in self._registry if not self.is_complete(ds.dataset_id)]

    def progress(self, dataset_id: int) -> DatasetProgress:
        return self._progress_for(self._registry.dataset(dataset_id))

    def _progress_for(self, dataset: Dataset) -> DatasetProgress:
        progress = self._progress.get(dataset.dataset_id)
        if progress is None:
            progress = DatasetProgress(
                dataset_id=dataset.dataset_id,
                n_chunks=self.chunk_count(dataset),
            )
            self._progress[dataset.dataset_id] = progress
        return progress
