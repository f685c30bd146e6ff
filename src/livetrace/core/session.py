"""Protocol state machine tying the codec, registry, buffers and decoders together.

The session is sans-IO: the transport calls :meth:`StreamSession.on_open`,
:meth:`StreamSession.dispatch` for every inbound frame and
:meth:`StreamSession.on_close` when the connection ends, and sends whatever
commands the returned :class:`DispatchResult` carries, in order.

Phases::

    CONNECTING --open--> AWAITING_META --metadata--> BULK_TRANSFER
        --last terminal chunk--> STREAMING

Any state moves to CLOSED on transport close/error or on the first protocol
error; nothing is processed after that.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from ..protocol.commands import DATA, SUB, UNSUB, meta_command, subscription_commands
from ..protocol.errors import (
    MalformedFrame,
    OutOfSequenceFrame,
    StreamProtocolError,
    TransportClosed,
)
from ..protocol.frames import RawFrame, decode_chunk, decode_metadata, decode_update, is_binary
from .reassembler import ChunkReassembler
from .registry import DatasetRegistry
from .selection import SelectionSource, StaticSelection
from .sinks import NullSink, TraceSink
from .trace_buffers import TraceBufferStore
from .updates import UpdateDecoder

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception], None]


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    AWAITING_META = "awaiting_meta"
    BULK_TRANSFER = "bulk_transfer"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class DispatchResult:
    """Outcome of one session entry point."""

    state: SessionState
    commands: List[str] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StreamSession:
    """
    Drives one connection from subscription to live streaming.

    The session owns its :class:`DatasetRegistry`, :class:`TraceBufferStore`,
    :class:`ChunkReassembler` and :class:`UpdateDecoder`; nothing is shared
    between sessions.
    """

    def __init__(
        self,
        selection: Union[SelectionSource, Mapping[int, Sequence[str]]],
        sink: Optional[TraceSink] = None,
        *,
        start_ts: float = 0,
        stop_ts: float = 0,
        max_plot_points: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if isinstance(selection, Mapping):
            selection = StaticSelection(selection)
        self._selection_source: SelectionSource = selection
        self._sink: TraceSink = sink or NullSink()
        self._start_ts = start_ts
        self._stop_ts = stop_ts
        self._max_plot_points = max_plot_points
        self._on_error = on_error

        self.registry = DatasetRegistry()
        self.store = TraceBufferStore()
        self._reassembler: Optional[ChunkReassembler] = None
        self._updates = UpdateDecoder(self.registry, self.store, self._sink)

        self._state = SessionState.CONNECTING
        self.last_error: Optional[Exception] = None
        self._handlers: Dict[SessionState, Callable[[RawFrame], List[str]]] = {
            SessionState.AWAITING_META: self._handle_metadata,
            SessionState.BULK_TRANSFER: self._handle_chunk,
            SessionState.STREAMING: self._handle_update,
        }

    # ------------------------------------------------------------------- state
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def bulk_complete(self) -> bool:
        return self._reassembler is not None and self._reassembler.complete

    @property
    def reassembler(self) -> Optional[ChunkReassembler]:
        return self._reassembler

    @property
    def updates(self) -> UpdateDecoder:
        return self._updates

    # ------------------------------------------------------- transport signals
    def on_open(self) -> DispatchResult:
        """Send the subscription commands followed by the metadata request."""
        if self._state is not SessionState.CONNECTING:
            raise RuntimeError(f"on_open() called while {self._state.value}")

        selection = self._selection_source.selection()
        commands = list(subscription_commands(selection, self._start_ts, self._stop_ts))
        if not commands:
            raise ValueError("No fields selected; nothing to subscribe to")
        commands.append(meta_command(self._max_plot_points))

        self._transition(SessionState.AWAITING_META)
        return DispatchResult(self._state, commands)

    def dispatch(self, frame: RawFrame) -> DispatchResult:
        """Handle one inbound frame according to the current phase."""
        if self._state is SessionState.CLOSED:
            logger.debug("Dropping frame received after close")
            return DispatchResult(self._state)

        handler = self._handlers.get(self._state)
        try:
            if handler is None:
                raise OutOfSequenceFrame(f"frame received while {self._state.value}")
            commands = handler(frame)
        except StreamProtocolError as exc:
            return self._fail(exc)
        return DispatchResult(self._state, commands)

    def on_close(self, reason: Optional[str] = None) -> DispatchResult:
        if self._state is SessionState.CLOSED:
            return DispatchResult(self._state)

        exc = TransportClosed(reason)
        if self._state is SessionState.BULK_TRANSFER:
            pending = self._reassembler.pending_datasets() if self._reassembler else []
            logger.warning(
                "Connection closed during bulk transfer; dataset(s) %s incomplete", pending
            )
        else:
            logger.info("Connection closed while %s (%s)", self._state.value, exc)
        self.last_error = exc
        self._transition(SessionState.CLOSED)
        self._report(exc)
        return DispatchResult(self._state, error=exc)

    def on_transport_error(self, error: BaseException) -> DispatchResult:
        logger.warning("Transport error while %s: %s", self._state.value, error)
        return self.on_close(str(error) or type(error).__name__)

    def close(self, *, unsubscribe: bool = False) -> DispatchResult:
        """
        End the session from our side.

        With ``unsubscribe=True`` a streaming session returns ``/unsub`` for
        the caller to send before closing the connection.
        """
        commands: List[str] = []
        if unsubscribe and self._state is SessionState.STREAMING:
            commands.append(UNSUB)
        if self._state is not SessionState.CLOSED:
            self._transition(SessionState.CLOSED)
        return DispatchResult(self._state, commands)

    # ---------------------------------------------------------------- handlers
    def _handle_metadata(self, frame: RawFrame) -> List[str]:
        if is_binary(frame):
            raise OutOfSequenceFrame("binary frame received while awaiting metadata")

        metadata = decode_metadata(frame)
        if not metadata.datasets:
            raise MalformedFrame("metadata declares no datasets")

        selection = self._selection_source.selection()
        for meta in metadata.datasets:
            if meta.dataset_id not in selection:
                logger.warning("Metadata lists dataset %d which was not selected", meta.dataset_id)

        self.registry.register(metadata)
        self.store.allocate(self.registry.trace_count, self.registry.capacities())
        self._reassembler = ChunkReassembler(self.registry, self.store, metadata.package_size)
        self._sink.initialize(self.store.trace_buffers())

        self._transition(SessionState.BULK_TRANSFER)
        return [DATA]

    def _handle_chunk(self, frame: RawFrame) -> List[str]:
        if not is_binary(frame):
            raise OutOfSequenceFrame(f"text frame received during bulk transfer: {str(frame)[:80]!r}")
        assert self._reassembler is not None

        chunk = decode_chunk(frame, self.registry.field_count)
        self._reassembler.apply(chunk)
        if not self._reassembler.complete:
            return []

        self._sink.bulk_loaded(self.store.trace_buffers())
        self._transition(SessionState.STREAMING)
        return [SUB]

    def _handle_update(self, frame: RawFrame) -> List[str]:
        if not is_binary(frame):
            raise OutOfSequenceFrame(f"text frame received while streaming: {str(frame)[:80]!r}")
        self._updates.apply(decode_update(frame, self.registry.field_count))
        return []

    # ----------------------------------------------------------------- helpers
    def _fail(self, exc: StreamProtocolError) -> DispatchResult:
        logger.error(
            "Closing session on %s while %s: %s",
            type(exc).__name__,
            self._state.value,
            exc,
        )
        self.last_error = exc
        self._transition(SessionState.CLOSED)
        self._report(exc)
        return DispatchResult(self._state, error=exc)

    def _report(self, exc: Exception) -> None:
        if self._on_error is not None:
            self._on_error(exc)

    def _transition(self, new_state: SessionState) -> None:
        logger.info("Session %s -> %s", self._state.value, new_state.value)
        self._state = new_state


__all__ = ["SessionState", "DispatchResult", "StreamSession", "ErrorCallback"]
