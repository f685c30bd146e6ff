from __future__ import annotations

import asyncio
import ssl

import numpy as np
import websockets

from livetrace.core.session import SessionState, StreamSession
from livetrace.core.sinks import CollectingSink
from livetrace.protocol.errors import OutOfSequenceFrame, TransportClosed
from livetrace.protocol.frames import encode_chunk, encode_metadata, encode_update
from livetrace.remote.websocket_client import WebSocketFeed, build_ssl_context

METADATA = encode_metadata([(1, "t"), (1, "h")], numb_of_lines=2, package_size=2)
CHUNK = encode_chunk(0, 1, [1000.0, 1000.5], [[50, 51], [52, 53]])
UPDATE = encode_update(1, 1001.0, [54.0, 55.0])


async def _serve_and_run(handler, session: StreamSession):
    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        feed = WebSocketFeed(f"ws://127.0.0.1:{port}/ws/", session)
        return await asyncio.wait_for(feed.run_async(), timeout=10)


def test_feed_drives_session_through_all_phases() -> None:
    received = []

    async def handler(ws):
        received.append(await ws.recv())
        received.append(await ws.recv())
        await ws.send(METADATA)
        received.append(await ws.recv())
        await ws.send(CHUNK)
        received.append(await ws.recv())
        await ws.send(UPDATE)

    sink = CollectingSink()
    session = StreamSession({1: ["t", "h"]}, sink)
    error = asyncio.run(_serve_and_run(handler, session))

    assert received == ["/select_uncompressed 0 0 1 t h", "/meta", "/data", "/sub"]
    assert sink.extensions == [(0, 1001.0, 54.0), (1, 1001.0, 55.0)]
    np.testing.assert_array_equal(session.store.values(0), [50.0, 52.0, 54.0])
    # the server hung up after streaming; that is reported, not raised
    assert isinstance(error, TransportClosed)
    assert session.state is SessionState.CLOSED


def test_protocol_error_closes_the_connection() -> None:
    async def handler(ws):
        await ws.recv()
        await ws.recv()
        await ws.send(CHUNK)
        await ws.wait_closed()

    errors = []
    session = StreamSession({1: ["t", "h"]}, on_error=errors.append)
    error = asyncio.run(_serve_and_run(handler, session))

    assert isinstance(error, OutOfSequenceFrame)
    assert errors == [error]
    assert session.closed


def test_ssl_context_can_skip_verification() -> None:
    ctx = build_ssl_context(verify_tls=False)
    assert ctx.check_hostname is False
    assert ctx.verify_mode == ssl.CERT_NONE

    strict = build_ssl_context()
    assert strict.verify_mode == ssl.CERT_REQUIRED
