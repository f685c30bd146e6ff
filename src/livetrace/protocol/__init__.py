"""Wire protocol of the live trace feed.

:mod:`frames` decodes the three inbound record types (metadata, bulk chunk,
live update) and can encode them for fixtures and replay; :mod:`commands`
builds the outbound text commands; :mod:`errors` holds the exception types
shared with :mod:`livetrace.core`.
"""

from .commands import (
    DATA,
    META,
    SUB,
    UNSUB,
    meta_command,
    select_command,
    subscription_commands,
)
from .errors import (
    BufferOverrun,
    MalformedFrame,
    OutOfSequenceFrame,
    StreamProtocolError,
    TransportClosed,
    UnknownDataset,
)
from .frames import (
    BulkChunk,
    DatasetMeta,
    LiveUpdate,
    MetadataRecord,
    decode_chunk,
    decode_metadata,
    decode_update,
    encode_chunk,
    encode_metadata,
    encode_update,
)

__all__ = [
    "DATA",
    "META",
    "SUB",
    "UNSUB",
    "meta_command",
    "select_command",
    "subscription_commands",
    "BufferOverrun",
    "MalformedFrame",
    "OutOfSequenceFrame",
    "StreamProtocolError",
    "TransportClosed",
    "UnknownDataset",
    "BulkChunk",
    "DatasetMeta",
    "LiveUpdate",
    "MetadataRecord",
    "decode_chunk",
    "decode_metadata",
    "decode_update",
    "encode_chunk",
    "encode_metadata",
    "encode_update",
]
