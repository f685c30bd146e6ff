"""Core decoding engine: registry, buffers, reassembly and the session.

The session owns one instance of each component and hands frames to the
component that matches its current phase; everything else in the package
either feeds it frames (:mod:`livetrace.remote`) or consumes the buffers it
fills (:mod:`livetrace.gui`).
"""

from .reassembler import ChunkReassembler, DatasetProgress
from .registry import Dataset, DatasetRegistry, Field, Trace
from .selection import SelectionSource, StaticSelection
from .session import DispatchResult, SessionState, StreamSession
from .sinks import CollectingSink, LoggingSink, NullSink, TraceSink
from .trace_buffers import GrowableArray, TraceBuffer, TraceBufferStore
from .updates import TraceExtension, UpdateDecoder

__all__ = [
    "ChunkReassembler",
    "DatasetProgress",
    "Dataset",
    "DatasetRegistry",
    "Field",
    "Trace",
    "SelectionSource",
    "StaticSelection",
    "DispatchResult",
    "SessionState",
    "StreamSession",
    "CollectingSink",
    "LoggingSink",
    "NullSink",
    "TraceSink",
    "GrowableArray",
    "TraceBuffer",
    "TraceBufferStore",
    "TraceExtension",
    "UpdateDecoder",
]
