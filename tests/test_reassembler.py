from __future__ import annotations

import logging

import numpy as np
import pytest

from livetrace.core.reassembler import ChunkReassembler
from livetrace.core.registry import DatasetRegistry
from livetrace.core.trace_buffers import TraceBufferStore
from livetrace.protocol.errors import BufferOverrun, MalformedFrame, OutOfSequenceFrame, UnknownDataset
from livetrace.protocol.frames import BulkChunk, decode_chunk, decode_metadata, encode_chunk, encode_metadata


def _setup(metadata_text: str):
    metadata = decode_metadata(metadata_text)
    registry = DatasetRegistry()
    registry.register(metadata)
    store = TraceBufferStore()
    store.allocate(registry.trace_count, registry.capacities())
    return registry, store, ChunkReassembler(registry, store, metadata.package_size)


def _chunk(registry: DatasetRegistry, index: int, dataset_id: int, times, values) -> BulkChunk:
    return decode_chunk(encode_chunk(index, dataset_id, times, values), registry.field_count)


def test_single_terminal_chunk_fills_both_traces() -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "t"), (1, "h")], 2, 2))

    done = reassembler.apply(_chunk(registry, 0, 1, [1000.0, 1000.5], [[50, 51], [52, 53]]))

    assert done is True
    assert reassembler.complete
    np.testing.assert_array_equal(store.values(0), [50.0, 52.0])
    np.testing.assert_array_equal(store.values(1), [51.0, 53.0])
    np.testing.assert_array_equal(store.times(0), [1000.0, 1000.5])
    np.testing.assert_array_equal(store.times(1), [1000.0, 1000.5])


def test_chunks_count_down_to_the_terminal_index() -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "v")], 5, 2))
    assert reassembler.chunk_count(registry.dataset(1)) == 3
    assert [reassembler.offset_for(1, i) for i in (2, 1, 0)] == [0, 2, 4]

    assert reassembler.apply(_chunk(registry, 2, 1, [1.0, 2.0], [[10], [20]])) is False
    assert reassembler.apply(_chunk(registry, 1, 1, [3.0, 4.0], [[30], [40]])) is False
    assert not reassembler.complete
    assert reassembler.apply(_chunk(registry, 0, 1, [5.0], [[50]])) is True

    np.testing.assert_array_equal(store.times(0), [1.0, 2.0, 3.0, 4.0, 5.0])
    np.testing.assert_array_equal(store.values(0), [10.0, 20.0, 30.0, 40.0, 50.0])


def test_repeated_terminal_chunk_overwrites_without_signalling_again() -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "v")], 2, 2))

    assert reassembler.apply(_chunk(registry, 0, 1, [1.0, 2.0], [[1], [2]])) is True
    assert reassembler.apply(_chunk(registry, 0, 1, [1.0, 2.0], [[1], [2]])) is False

    assert store.length(0) == 2
    np.testing.assert_array_equal(store.values(0), [1.0, 2.0])


def test_terminal_chunk_with_gap_completes_and_warns(caplog: pytest.LogCaptureFixture) -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "v")], 6, 2))

    reassembler.apply(_chunk(registry, 2, 1, [1.0, 2.0], [[1], [2]]))
    with caplog.at_level(logging.WARNING, logger="livetrace.core.reassembler"):
        assert reassembler.apply(_chunk(registry, 0, 1, [5.0, 6.0], [[5], [6]])) is True

    assert reassembler.progress(1).missing() == [1]
    assert "never received" in caplog.text
    assert np.isnan(store.values(0)[2:4]).all()


def test_chunk_index_outside_range_is_an_overrun() -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "v")], 4, 2))

    with pytest.raises(BufferOverrun):
        reassembler.apply(_chunk(registry, 5, 1, [1.0], [[1]]))
    with pytest.raises(BufferOverrun):
        reassembler.apply(_chunk(registry, -1, 1, [1.0], [[1]]))
    assert np.isnan(store.values(0)).all()


def test_rows_past_capacity_leave_store_untouched() -> None:
    registry, store, reassembler = _setup(encode_metadata([(1, "a"), (1, "b")], 3, 2))

    with pytest.raises(BufferOverrun):
        reassembler.apply(_chunk(registry, 0, 1, [1.0, 2.0], [[1, 2], [3, 4]]))
    assert np.isnan(store.times(0)).all()
    assert np.isnan(store.values(1)).all()
    assert not reassembler.is_complete(1)


def test_interleaved_datasets_keep_separate_bookkeeping() -> None:
    registry, store, reassembler = _setup(
        '{"datasets": ['
        '{"dataset_id": 1, "field_ids": ["x"], "n_lines": 4},'
        '{"dataset_id": 2, "field_ids": ["a", "b"], "n_lines": 2}'
        '], "package_size": 2}'
    )

    assert reassembler.apply(_chunk(registry, 1, 1, [1.0, 2.0], [[1], [2]])) is False
    assert reassembler.apply(_chunk(registry, 0, 2, [7.0, 8.0], [[70, 71], [80, 81]])) is True
    assert reassembler.is_complete(2)
    assert reassembler.pending_datasets() == [1]
    assert not reassembler.complete

    assert reassembler.apply(_chunk(registry, 0, 1, [3.0, 4.0], [[3], [4]])) is True
    assert reassembler.complete

    np.testing.assert_array_equal(store.values(0), [1.0, 2.0, 3.0, 4.0])
    np.testing.assert_array_equal(store.values(1), [70.0, 80.0])
    np.testing.assert_array_equal(store.values(2), [71.0, 81.0])


def test_dataset_without_fields_still_completes() -> None:
    registry, store, reassembler = _setup(
        '{"datasets": [{"dataset_id": 7, "field_ids": [], "n_lines": 2}], "package_size": 2}'
    )

    chunk = _chunk(registry, 0, 7, [1.0, 2.0], np.empty((2, 0)))
    assert reassembler.apply(chunk) is True
    assert reassembler.complete
    assert len(store) == 0


def test_chunk_for_unknown_dataset() -> None:
    registry, _, reassembler = _setup(encode_metadata([(1, "v")], 2, 2))
    chunk = BulkChunk(0, 9, np.array([1.0]), np.array([[1.0]], dtype=np.float32))
    with pytest.raises(UnknownDataset):
        reassembler.apply(chunk)


def test_chunk_shape_must_match_field_count() -> None:
    _, _, reassembler = _setup(encode_metadata([(1, "a"), (1, "b")], 2, 2))
    chunk = BulkChunk(0, 1, np.array([1.0]), np.array([[1.0]], dtype=np.float32))
    with pytest.raises(MalformedFrame):
        reassembler.apply(chunk)


def test_chunk_before_registration() -> None:
    reassembler = ChunkReassembler(DatasetRegistry(), TraceBufferStore(), 2)
    chunk = BulkChunk(0, 1, np.array([1.0]), np.array([[1.0]], dtype=np.float32))
    with pytest.raises(OutOfSequenceFrame):
        reassembler.apply(chunk)
    assert not reassembler.complete
