"""Network transport for the live trace feed.

:class:`WebSocketFeed` connects to the data server, forwards every inbound
message to a :class:`~livetrace.core.session.StreamSession` and sends the
commands the session asks for.
"""

from .websocket_client import WebSocketFeed, build_ssl_context

__all__ = ["WebSocketFeed", "build_ssl_context"]
