"""Exceptions raised while decoding the live trace feed.

Every in-protocol failure derives from :class:`StreamProtocolError`. None of
them is recoverable for the running session: once a chunk offset or a field
count is wrong there is no safe point to resynchronise from, so the session
closes. :class:`TransportClosed` is reported the same way but is not a
decoder error.
"""

from __future__ import annotations

from typing import Optional


class StreamProtocolError(Exception):
    """Base class for errors detected while decoding frames."""


class MalformedFrame(StreamProtocolError):
    """Frame length or content does not match what the metadata declared."""


class UnknownDataset(StreamProtocolError):
    """Frame references a dataset id that was never registered."""

    def __init__(self, dataset_id: int, message: Optional[str] = None) -> None:
        self.dataset_id = dataset_id
        super().__init__(message or f"unknown dataset id {dataset_id}")


class OutOfSequenceFrame(StreamProtocolError):
    """Frame type does not match the current session phase."""


class BufferOverrun(StreamProtocolError):
    """A write would land outside the allocated buffer capacity."""


class TransportClosed(Exception):
    """The underlying connection went away."""

    def __init__(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(reason or "transport closed")


__all__ = [
    "StreamProtocolError",
    "MalformedFrame",
    "UnknownDataset",
    "OutOfSequenceFrame",
    "BufferOverrun",
    "TransportClosed",
]
