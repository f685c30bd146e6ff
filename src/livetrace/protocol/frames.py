"""Wire layouts for the metadata, bulk-chunk and live-update frames.

The feed is not self-describing: a binary frame is a bulk chunk during the
bulk phase and a live update while streaming, and the number of values it
carries depends on the field count the metadata declared for its dataset.
The decoders therefore take a ``field_count_of`` callable (normally
:meth:`DatasetRegistry.field_count`) that raises :class:`UnknownDataset`
for ids the metadata never mentioned.

Binary layouts (all little-endian)::

    bulk chunk   <int16 chunk_index><int16 dataset_id>
                 rows   x float64 timestamp
                 rows x fields x float32 value (row-major)

    live update  <int16 dataset_id><float64 timestamp>
                 fields x float32 value
"""

from __future__ import annotations

import json
import struct
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Union

import numpy as np

from .errors import MalformedFrame

CHUNK_HEADER = struct.Struct("<hh")  # chunk_index, dataset_id
UPDATE_HEADER = struct.Struct("<hd")  # dataset_id, timestamp

TIME_DTYPE = np.dtype("<f8")
VALUE_DTYPE = np.dtype("<f4")

INT16_MIN = -(2**15)
INT16_MAX = 2**15 - 1

RawFrame = Union[str, bytes, bytearray, memoryview]
FieldCountLookup = Callable[[int], int]


@dataclass(frozen=True)
class FieldEntry:
    """One ``{dataset_id, field_id}`` entry of the flat ``id_info`` list."""

    dataset_id: int
    field_id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class DatasetMeta:
    """Fields declared for one dataset, in declaration order."""

    dataset_id: int
    field_ids: Tuple[str, ...]
    n_lines: Optional[int] = None
    names: Tuple[Optional[str], ...] = ()

    @property
    def field_count(self) -> int:
        return len(self.field_ids)

    def name_of(self, position: int) -> Optional[str]:
        if position < len(self.names):
            return self.names[position]
        return None


@dataclass(frozen=True)
class MetadataRecord:
    """Decoded reply to ``/meta``."""

    datasets: Tuple[DatasetMeta, ...]
    numb_of_lines: int
    package_size: int

    def capacity_of(self, dataset: DatasetMeta) -> int:
        """Expected sample count for ``dataset`` (per-dataset value wins)."""
        if dataset.n_lines is not None:
            return dataset.n_lines
        return self.numb_of_lines

    def entries(self) -> List[FieldEntry]:
        """Flatten back into ``id_info`` order."""
        return [
            FieldEntry(ds.dataset_id, field_id, ds.name_of(pos))
            for ds in self.datasets
            for pos, field_id in enumerate(ds.field_ids)
        ]


@dataclass(frozen=True)
class BulkChunk:
    chunk_index: int
    dataset_id: int
    timestamps: np.ndarray
    values: np.ndarray = field(repr=False)

    @property
    def rows(self) -> int:
        return int(self.timestamps.shape[0])

    @property
    def is_terminal(self) -> bool:
        return self.chunk_index == 0


@dataclass(frozen=True)
class LiveUpdate:
    dataset_id: int
    timestamp: float
    values: np.ndarray


def is_binary(frame: RawFrame) -> bool:
    return isinstance(frame, (bytes, bytearray, memoryview))


# --------------------------------------------------------------------- metadata
def decode_metadata(raw: RawFrame) -> MetadataRecord:
    """
    Parse the metadata record sent in reply to ``/meta``.

    Two shapes are understood:

    - flat: ``{"id_info": [{"dataset_id": 1, "field_id": "t"}, ...],
      "numb_of_lines": N, "package_size": P}``; contiguous runs of the same
      ``dataset_id`` form one dataset.
    - nested: ``{"datasets": [{"dataset_id": 1, "field_ids": [...],
      "n_lines": N, "traces_meta": [{"name": ...}, ...]}], "package_size": P}``.
    """
    if is_binary(raw):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedFrame(f"metadata is not UTF-8 text: {exc}") from exc
    else:
        text = str(raw)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedFrame(f"metadata is not valid JSON: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise MalformedFrame(f"metadata must be a JSON object, got {type(payload).__name__}")

    if "package_size" not in payload:
        raise MalformedFrame("metadata is missing 'package_size'")
    package_size = _as_count(payload["package_size"], "package_size")
    if package_size == 0:
        raise MalformedFrame("package_size must be positive")

    if "id_info" in payload:
        datasets = _datasets_from_id_info(payload["id_info"])
    elif "datasets" in payload:
        datasets = _datasets_from_nested(payload["datasets"])
    else:
        raise MalformedFrame("metadata needs either 'id_info' or 'datasets'")

    raw_lines = payload.get("numb_of_lines")
    if raw_lines is None:
        if any(ds.n_lines is None for ds in datasets):
            raise MalformedFrame("metadata is missing 'numb_of_lines'")
        numb_of_lines = max((ds.n_lines or 0 for ds in datasets), default=0)
    else:
        numb_of_lines = _as_count(raw_lines, "numb_of_lines")

    return MetadataRecord(
        datasets=tuple(datasets),
        numb_of_lines=numb_of_lines,
        package_size=package_size,
    )


def _datasets_from_id_info(entries: Any) -> List[DatasetMeta]:
    if not isinstance(entries, list):
        raise MalformedFrame("'id_info' must be a list")

    runs: List[Tuple[int, List[str], List[Optional[str]]]] = []
    seen: set[int] = set()
    for pos, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or "dataset_id" not in entry or "field_id" not in entry:
            raise MalformedFrame(f"id_info[{pos}] needs 'dataset_id' and 'field_id': {entry!r}")
        dataset_id = _as_int16(entry["dataset_id"], f"id_info[{pos}].dataset_id")
        field_id = str(entry["field_id"])
        name = entry.get("name")
        if runs and runs[-1][0] == dataset_id:
            runs[-1][1].append(field_id)
            runs[-1][2].append(None if name is None else str(name))
            continue
        if dataset_id in seen:
            raise MalformedFrame(
                f"dataset {dataset_id} is declared in two separate runs of id_info"
            )
        seen.add(dataset_id)
        runs.append((dataset_id, [field_id], [None if name is None else str(name)]))

    return [
        DatasetMeta(dataset_id=ds_id, field_ids=tuple(fields), names=tuple(names))
        for ds_id, fields, names in runs
    ]


def _datasets_from_nested(items: Any) -> List[DatasetMeta]:
    if not isinstance(items, list):
        raise MalformedFrame("'datasets' must be a list")

    result: List[DatasetMeta] = []
    seen: set[int] = set()
    for pos, item in enumerate(items):
        if not isinstance(item, Mapping) or "dataset_id" not in item:
            raise MalformedFrame(f"datasets[{pos}] needs 'dataset_id': {item!r}")
        dataset_id = _as_int16(item["dataset_id"], f"datasets[{pos}].dataset_id")
        if dataset_id in seen:
            raise MalformedFrame(f"dataset {dataset_id} is declared twice")
        seen.add(dataset_id)

        raw_fields = item.get("field_ids", [])
        if not isinstance(raw_fields, list):
            raise MalformedFrame(f"datasets[{pos}].field_ids must be a list")
        field_ids = tuple(str(f) for f in raw_fields)

        n_lines = item.get("n_lines")
        if n_lines is not None:
            n_lines = _as_count(n_lines, f"datasets[{pos}].n_lines")

        names: Tuple[Optional[str], ...] = ()
        traces_meta = item.get("traces_meta")
        if traces_meta:
            if not isinstance(traces_meta, list) or len(traces_meta) != len(field_ids):
                raise MalformedFrame(
                    f"datasets[{pos}].traces_meta must list one entry per field"
                )
            names = tuple(
                str(meta["name"]) if isinstance(meta, Mapping) and meta.get("name") is not None else None
                for meta in traces_meta
            )

        result.append(
            DatasetMeta(dataset_id=dataset_id, field_ids=field_ids, n_lines=n_lines, names=names)
        )
    return result


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise MalformedFrame(f"{key} must be an integer, got {value!r}")
    # is_integer() is False for NaN and the infinities as well
    if isinstance(value, float) and not value.is_integer():
        raise MalformedFrame(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise MalformedFrame(f"{key} must be an integer, got {value!r}") from exc


def _as_count(value: Any, key: str) -> int:
    number = _as_int(value, key)
    if number < 0:
        raise MalformedFrame(f"{key} must not be negative, got {number}")
    return number


def _as_int16(value: Any, key: str) -> int:
    number = _as_int(value, key)
    if not INT16_MIN <= number <= INT16_MAX:
        raise MalformedFrame(f"{key} {number} does not fit in int16")
    return number


def encode_metadata(
    id_info: Iterable[Tuple[int, str]],
    numb_of_lines: int,
    package_size: int,
) -> str:
    """Build a flat metadata record (server side of ``/meta``)."""
    entries = [{"dataset_id": int(ds), "field_id": str(fid)} for ds, fid in id_info]
    return json.dumps(
        {"id_info": entries, "numb_of_lines": int(numb_of_lines), "package_size": int(package_size)}
    )


# ------------------------------------------------------------------ bulk chunks
def decode_chunk(payload: RawFrame, field_count_of: FieldCountLookup) -> BulkChunk:
    """Decode one bulk-transfer frame."""
    if not is_binary(payload):
        raise MalformedFrame("bulk chunk must be a binary frame")
    data = bytes(payload)
    if len(data) < CHUNK_HEADER.size:
        raise MalformedFrame(f"bulk chunk shorter than its {CHUNK_HEADER.size}-byte header")

    chunk_index, dataset_id = CHUNK_HEADER.unpack_from(data, 0)
    fields = field_count_of(dataset_id)

    row_size = TIME_DTYPE.itemsize + VALUE_DTYPE.itemsize * fields
    body = len(data) - CHUNK_HEADER.size
    rows, remainder = divmod(body, row_size)
    if remainder:
        raise MalformedFrame(
            f"bulk chunk for dataset {dataset_id} has {body} payload bytes, "
            f"not a multiple of the {row_size}-byte row for {fields} field(s)"
        )

    if rows == 0:
        timestamps = np.empty(0, dtype=TIME_DTYPE)
        values = np.empty((0, fields), dtype=VALUE_DTYPE)
    else:
        timestamps = np.frombuffer(data, dtype=TIME_DTYPE, count=rows, offset=CHUNK_HEADER.size)
        values_offset = CHUNK_HEADER.size + rows * TIME_DTYPE.itemsize
        if fields == 0:
            values = np.empty((rows, 0), dtype=VALUE_DTYPE)
        else:
            values = np.frombuffer(
                data, dtype=VALUE_DTYPE, count=rows * fields, offset=values_offset
            ).reshape(rows, fields)

    return BulkChunk(
        chunk_index=chunk_index,
        dataset_id=dataset_id,
        timestamps=timestamps,
        values=values,
    )


def encode_chunk(
    chunk_index: int,
    dataset_id: int,
    timestamps: Sequence[float] | np.ndarray,
    values: Sequence[float] | np.ndarray,
) -> bytes:
    """Pack a bulk chunk; ``values`` is ``(rows, fields)`` or already flat row-major."""
    times = np.asarray(timestamps, dtype=TIME_DTYPE).reshape(-1)
    vals = np.asarray(values, dtype=VALUE_DTYPE)
    if vals.ndim == 2 and vals.shape[0] != times.size:
        raise ValueError("values must have one row per timestamp")
    return CHUNK_HEADER.pack(chunk_index, dataset_id) + times.tobytes() + vals.reshape(-1).tobytes()


# ----------------------------------------------------------------- live updates
def decode_update(payload: RawFrame, field_count_of: FieldCountLookup) -> LiveUpdate:
    """Decode one live-update frame."""
    if not is_binary(payload):
        raise MalformedFrame("live update must be a binary frame")
    data = bytes(payload)
    if len(data) < UPDATE_HEADER.size:
        raise MalformedFrame(f"live update shorter than its {UPDATE_HEADER.size}-byte header")

    dataset_id, timestamp = UPDATE_HEADER.unpack_from(data, 0)
    fields = field_count_of(dataset_id)
    expected = UPDATE_HEADER.size + VALUE_DTYPE.itemsize * fields
    if len(data) != expected:
        raise MalformedFrame(
            f"live update for dataset {dataset_id} is {len(data)} bytes, "
            f"expected {expected} for {fields} field(s)"
        )

    if fields == 0:
        values = np.empty(0, dtype=VALUE_DTYPE)
    else:
        values = np.frombuffer(data, dtype=VALUE_DTYPE, count=fields, offset=UPDATE_HEADER.size)
    return LiveUpdate(dataset_id=dataset_id, timestamp=float(timestamp), values=values)


def encode_update(dataset_id: int, timestamp: float, values: Sequence[float] | np.ndarray) -> bytes:
    vals = np.asarray(values, dtype=VALUE_DTYPE).reshape(-1)
    return UPDATE_HEADER.pack(dataset_id, float(timestamp)) + vals.tobytes()


__all__ = [
    "CHUNK_HEADER",
    "UPDATE_HEADER",
    "TIME_DTYPE",
    "VALUE_DTYPE",
    "FieldEntry",
    "DatasetMeta",
    "MetadataRecord",
    "BulkChunk",
    "LiveUpdate",
    "is_binary",
    "decode_metadata",
    "encode_metadata",
    "decode_chunk",
    "encode_chunk",
    "decode_update",
    "encode_update",
]
