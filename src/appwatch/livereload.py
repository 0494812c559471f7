"""Live reload side-channel: a websocket server that tells browsers to reload."""

import logging

import websockets

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = "reload"

# Snippet for the app's dev page; appwatch does not inject it.
CLIENT_SNIPPET = """\
<script>
  new WebSocket("ws://{host}:{port}").onmessage = (e) => {{
    if (e.data === "reload") location.reload();
  }};
</script>
"""


class LiveReloadServer:
    """Broadcasts a reload message to every connected browser."""

    def __init__(self, host: str = "127.0.0.1", port: int = 35729):
        self.host = host
        self.port = port
        self.clients: set = set()
        self._server = None

    @property
    def started(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        """Start listening. Calling it again is a no-op."""
        if self._server is not None:
            return

        self._server = await websockets.serve(self._handler, self.host, self.port)
        # Resolve the real port when asked for an ephemeral one
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Live reload server listening on ws://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.debug("Live reload server stopped")

    async def _handler(self, websocket) -> None:
        self.clients.add(websocket)
        logger.debug(f"Live reload client connected ({len(self.clients)} total)")
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    def send_reload(self) -> None:
        """Fire-and-forget reload notification to connected clients."""
        if not self.clients:
            logger.debug("No live reload clients connected")
            return
        websockets.broadcast(self.clients, RELOAD_MESSAGE)
        logger.debug(f"Sent reload to {len(self.clients)} client(s)")

    def client_snippet(self) -> str:
        return CLIENT_SNIPPET.format(host=self.host, port=self.port)
