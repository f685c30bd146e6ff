from __future__ import annotations

import numpy as np
import pytest

from livetrace.core.trace_buffers import GrowableArray, TraceBufferStore
from livetrace.protocol.errors import BufferOverrun


def test_growable_array_write_overwrites_and_append_grows() -> None:
    arr = GrowableArray(3, np.float64)
    assert np.isnan(arr.view()).all()

    arr.write(1, [5.0, 6.0])
    arr.write(1, [5.0, 6.0])
    assert len(arr) == 3
    np.testing.assert_array_equal(arr.view()[1:], [5.0, 6.0])

    for value in range(200):
        arr.append(float(value))
    assert len(arr) == 203
    assert arr[-1] == 199.0
    assert arr[1] == 5.0


def test_growable_array_rejects_out_of_range_write() -> None:
    arr = GrowableArray(2, np.float32)
    with pytest.raises(IndexError):
        arr.write(1, [1.0, 2.0])
    with pytest.raises(IndexError):
        arr.write(-1, [1.0])


def test_allocate_presizes_all_traces_empty() -> None:
    store = TraceBufferStore()
    store.allocate(2, 4)

    assert len(store) == 2
    for idx in range(2):
        assert store.length(idx) == 4
        assert store.capacity(idx) == 4
        assert np.isnan(store.times(idx)).all()
        assert np.isnan(store.values(idx)).all()
        assert store.times(idx).dtype == np.float64
        assert store.values(idx).dtype == np.float32


def test_allocate_with_per_trace_capacity() -> None:
    store = TraceBufferStore()
    store.allocate(3, [2, 2, 5])
    assert [store.capacity(i) for i in range(3)] == [2, 2, 5]
    with pytest.raises(ValueError):
        store.allocate(2, [1])


def test_write_past_capacity_raises_without_mutation() -> None:
    store = TraceBufferStore()
    store.allocate(1, 3)
    store.write_values(0, 0, [1.0, 2.0])

    with pytest.raises(BufferOverrun):
        store.write_values(0, 2, [3.0, 4.0])
    with pytest.raises(BufferOverrun):
        store.write_time(0, -1, [3.0])

    np.testing.assert_array_equal(store.values(0)[:2], [1.0, 2.0])
    assert np.isnan(store.values(0)[2])


def test_append_grows_time_and_value_together() -> None:
    store = TraceBufferStore()
    store.allocate(2, 1)
    for idx in range(2):
        store.write_time(idx, 0, [10.0])
        store.write_values(idx, 0, [float(idx)])

    store.append(0, 11.0, 7.0)
    store.append(1, 11.0, 8.0)

    assert store.length(0) == store.length(1) == 2
    np.testing.assert_array_equal(store.times(0), [10.0, 11.0])
    np.testing.assert_array_equal(store.values(1), [1.0, 8.0])
    # capacity tracks the bulk allocation, not the appended length
    assert store.capacity(0) == 1


def test_window_skips_unfilled_positions() -> None:
    store = TraceBufferStore()
    store.allocate(1, 5)
    store.write_time(0, 0, [1.0, 2.0, 3.0])
    store.write_values(0, 0, [10.0, 20.0, 30.0])
    store.append(0, 6.0, 60.0)

    times, values = store.window(0, 1.5, 6.0)
    np.testing.assert_array_equal(times, [2.0, 3.0, 6.0])
    np.testing.assert_array_equal(values, [20.0, 30.0, 60.0])

    times, _ = store.window(0, 100.0, 200.0)
    assert times.size == 0


def test_unallocated_trace_index_raises() -> None:
    store = TraceBufferStore()
    store.allocate(1, 1)
    with pytest.raises(IndexError):
        store.append(3, 0.0, 0.0)
