"""WebSocket transport that feeds a :class:`StreamSession`."""

from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.session import DispatchResult, StreamSession

logger = logging.getLogger(__name__)


def build_ssl_context(verify_tls: bool = True) -> ssl.SSLContext:
    """Default client context; ``verify_tls=False`` accepts self-signed certificates."""
    ctx = ssl.create_default_context()
    if not verify_tls:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class WebSocketFeed:
    """
    Owns the network loop for one session.

    Every inbound message goes through :meth:`StreamSession.dispatch` and any
    commands it returns are sent before the next message is read, so frame
    handling is strictly sequential. A protocol error closes the socket.
    Reconnecting is left to the caller: a closed session cannot be reused.
    """

    def __init__(
        self,
        url: str,
        session: StreamSession,
        *,
        verify_tls: bool = True,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self.url = url
        self.session = session
        self._verify_tls = verify_tls
        self._ssl_context = ssl_context
        self._ws = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def run(self) -> Optional[Exception]:
        """Blocking helper that runs the feed in a fresh event loop."""
        return asyncio.run(self.run_async())

    async def run_async(self) -> Optional[Exception]:
        """Run until the connection or the session closes; return the last error."""
        self._loop = asyncio.get_running_loop()
        kwargs = {}
        if self.url.startswith("wss://"):
            kwargs["ssl"] = self._ssl_context or build_ssl_context(self._verify_tls)

        logger.info("Connecting to %s", self.url)
        try:
            async with websockets.connect(self.url, **kwargs) as ws:
                self._ws = ws
                logger.info("Connected to %s", self.url)
                await self._send(ws, self.session.on_open())
                async for message in ws:
                    result = self.session.dispatch(message)
                    await self._send(ws, result)
                    if self.session.closed:
                        break
        except ConnectionClosed as exc:
            self.session.on_close(str(exc))
        except (WebSocketException, OSError) as exc:
            self.session.on_transport_error(exc)
        finally:
            self._ws = None

        if not self.session.closed:
            self.session.on_close("connection closed")
        return self.session.last_error

    async def close(self) -> None:
        """Close the connection from our side."""
        ws = self._ws
        self.session.close()
        if ws is not None:
            await ws.close()

    def stop_threadsafe(self) -> None:
        """Request :meth:`close` from a thread other than the feed's loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self.close(), loop)

    async def _send(self, ws, result: DispatchResult) -> None:
        for command in result.commands:
            logger.debug("SENT: %s", command)
            await ws.send(command)
