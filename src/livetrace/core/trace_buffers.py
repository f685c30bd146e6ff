from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import List

import numpy as np

from ..protocol.errors import BufferOverrun
from ..protocol.frames import TIME_DTYPE, VALUE_DTYPE

logger = logging.getLogger(__name__)

MIN_GROWTH = 64


class GrowableArray:
    """
    NumPy-backed array with a logical length and amortized growth.

    ``write`` overwrites inside the logical length, ``append`` extends it by
    one element and doubles the backing storage when it runs out.
    """

    __slots__ = ("_data", "_size", "_fill")

    def __init__(self, length: int, dtype: np.dtype | str, fill: float = np.nan) -> None:
        if length < 0:
            raise ValueError("length must not be negative")
        self._fill = fill
        self._data = np.full(max(1, length), fill, dtype=dtype)
        self._size = length

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, index: int) -> float:
        return self.view()[index]

    def __iter__(self) -> Iterator[float]:
        return iter(self.view())

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def view(self) -> np.ndarray:
        """Logical contents as a view; invalidated by the next growth."""
        return self._data[: self._size]

    def write(self, offset: int, values: Sequence[float] | np.ndarray) -> None:
        arr = np.asarray(values, dtype=self._data.dtype).reshape(-1)
        end = offset + arr.size
        if offset < 0 or end > self._size:
            raise IndexError(f"write [{offset}, {end}) outside length {self._size}")
        self._data[offset:end] = arr

    def append(self, value: float) -> None:
        if self._size == self._data.shape[0]:
            self._grow()
        self._data[self._size] = value
        self._size += 1

    def _grow(self) -> None:
        new_size = max(MIN_GROWTH, self._data.shape[0] * 2)
        data = np.full(new_size, self._fill, dtype=self._data.dtype)
        data[: self._size] = self._data[: self._size]
        self._data = data


class TraceBuffer:
    """Time and value buffer of one trace."""

    __slots__ = ("trace_index", "capacity", "times", "values")

    def __init__(self, trace_index: int, capacity: int) -> None:
        self.trace_index = trace_index
        self.capacity = capacity
        self.times = GrowableArray(capacity, TIME_DTYPE)
        self.values = GrowableArray(capacity, VALUE_DTYPE)

    def __len__(self) -> int:
        return len(self.times)

    @property
    def t(self) -> np.ndarray:
        return self.times.view()

    @property
    def y(self) -> np.ndarray:
        return self.values.view()


class TraceBufferStore:
    """
    Passive holder of one time buffer and one value buffer per trace.

    The store does not know about session phases; the session only calls
    :meth:`append` once the bulk phase has completed. All mutation happens on
    the single frame-handling path, so no locking is needed here.
    """

    def __init__(self) -> None:
        self._buffers: List[TraceBuffer] = []

    def allocate(self, trace_count: int, capacity: int | Sequence[int]) -> None:
        """Pre-size every trace; ``capacity`` may be one value or one per trace."""
        if trace_count < 0:
            raise ValueError("trace_count must not be negative")
        if isinstance(capacity, (int, np.integer)):
            capacities = [int(capacity)] * trace_count
        else:
            capacities = [int(c) for c in capacity]
            if len(capacities) != trace_count:
                raise ValueError(
                    f"expected {trace_count} capacities, got {len(capacities)}"
                )
        self._buffers = [TraceBuffer(i, cap) for i, cap in enumerate(capacities)]
        logger.debug("Allocated %d trace buffer(s): %s", trace_count, capacities)

    # ------------------------------------------------------------------ writes
    def write_time(self, trace_index: int, offset: int, values: Sequence[float] | np.ndarray) -> None:
        buf = self._buffer(trace_index)
        self._check_range(buf, offset, len(values))
        buf.times.write(offset, values)

    def write_values(self, trace_index: int, offset: int, values: Sequence[float] | np.ndarray) -> None:
        buf = self._buffer(trace_index)
        self._check_range(buf, offset, len(values))
        buf.values.write(offset, values)

    def append(self, trace_index: int, time: float, value: float) -> None:
        buf = self._buffer(trace_index)
        buf.times.append(time)
        buf.values.append(value)

    def check_write(self, trace_index: int, offset: int, count: int) -> None:
        """Raise :class:`BufferOverrun` if a write of ``count`` would not fit."""
        self._check_range(self._buffer(trace_index), offset, count)

    # ------------------------------------------------------------------- reads
    def __len__(self) -> int:
        return len(self._buffers)

    def __iter__(self) -> Iterator[TraceBuffer]:
        return iter(self._buffers)

    @property
    def allocated(self) -> bool:
        return bool(self._buffers)

    def trace_buffer(self, trace_index: int) -> TraceBuffer:
        return self._buffer(trace_index)

    def trace_buffers(self) -> List[TraceBuffer]:
        return list(self._buffers)

    def times(self, trace_index: int) -> np.ndarray:
        return self._buffer(trace_index).t

    def values(self, trace_index: int) -> np.ndarray:
        return self._buffer(trace_index).y

    def length(self, trace_index: int) -> int:
        return len(self._buffer(trace_index))

    def capacity(self, trace_index: int) -> int:
        return self._buffer(trace_index).capacity

    def window(self, trace_index: int, start: float, end: float) -> tuple[np.ndarray, np.ndarray]:
        """
        Return copies of the samples with ``start <= t <= end``.

        Unfilled (NaN) positions are skipped. Timestamps are assumed to be
        non-decreasing, which holds for data delivered in order.
        """
        if end < start:
            start, end = end, start
        buf = self._buffer(trace_index)
        times = buf.t
        values = buf.y
        filled = ~np.isnan(times)
        times = times[filled]
        values = values[filled]
        if times.size == 0:
            return np.empty(0, dtype=TIME_DTYPE), np.empty(0, dtype=VALUE_DTYPE)

        start_idx = np.searchsorted(times, start, side="left")
        end_idx = np.searchsorted(times, end, side="right")
        return times[start_idx:end_idx].copy(), values[start_idx:end_idx].copy()

    # ----------------------------------------------------------------- helpers
    def _buffer(self, trace_index: int) -> TraceBuffer:
        if not 0 <= trace_index < len(self._buffers):
            raise IndexError(
                f"trace index {trace_index} not allocated ({len(self._buffers)} trace(s))"
            )
        return self._buffers[trace_index]

    @staticmethod
    def _check_range(buf: TraceBuffer, offset: int, count: int) -> None:
        if offset < 0 or offset + count > buf.capacity:
            raise BufferOverrun(
                f"trace {buf.trace_index}: write of {count} sample(s) at offset {offset} "
                f"exceeds capacity {buf.capacity}"
            )
