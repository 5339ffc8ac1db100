import asyncio
import logging

from parlor.core.models.config import ServerConfig
from parlor.core.models.state import ServerState
from parlor.core.transport.protocol import ChatProtocol


class ChatServer:
    """
    Owns the lifecycle of the TCP listener accepting chat clients.

    Each accepted connection gets its own ChatProtocol, all sharing one
    ServerState that tracks live connections and the task running the
    application of each of them. Connections are served concurrently;
    within one connection frames are handled strictly in order.

    The server holds no application logic. It wires the configured
    application to the transport so that incoming bytes become Frames and
    the frames the application sends become bytes.

    On shutdown, ChatServer closes the listening socket, asks all active
    connections to close, and waits for connections and application tasks
    to finish. If the graceful shutdown timeout is exceeded, remaining
    tasks are cancelled and an error is logged.
    """
    def __init__(
        self,
        config: ServerConfig,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self.state = ServerState()
        self._logger = logging.getLogger("core.transport.server")

        self._server: asyncio.AbstractServer | None = None

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def listen(self) -> tuple[str, int]:
        """Address actually bound, useful when the configured port is 0."""
        if self._server is None or not self._server.sockets:
            return self._config.host, self._config.port
        host, port = self._server.sockets[0].getsockname()[:2]
        return host, port

    def create_protocol(self) -> asyncio.Protocol:
        return ChatProtocol(
            config=self._config,
            server_state=self.state,
            loop=self._loop,
        )

    async def start(self) -> None:
        config = self._config
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._server = await self._loop.create_server(
            self.create_protocol,
            host=config.host,
            port=config.port,
            backlog=config.backlog,
            ssl=config.ssl_ctx
        )
        self._logger.info("Listening on %s:%d", *self.listen)

    async def serve_until(self, stop_event: asyncio.Event) -> None:
        await self.start()
        try:
            # set from signal handlers, which do not wake the selector
            while not stop_event.is_set():
                await asyncio.sleep(0.1)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        if self._server:
            self._server.close()

        for connection in self.state.connections.copy():
            connection.shutdown()

        try:
            await asyncio.wait_for(
                self._wait_task_complete(),
                timeout=self._config.timeout_graceful_shutdown
            )
        except asyncio.TimeoutError:
            self._logger.error(
                f"Cancel {len(self.state.tasks)} running task(s), "
                f"timeout graceful shutdown: {self.state.tasks}"
            )
            for task in self.state.tasks:
                task.cancel("Task cancelled, timeout graceful shutdown exceeded")

    async def _wait_task_complete(self) -> None:
        if self.state.connections:
            self._logger.info("Waiting for client connections to close.")

        while self.state.connections:
            await asyncio.sleep(0.1)

        if self.state.tasks:
            self._logger.info("Waiting for connection tasks to complete.")

        while self.state.tasks:
            await asyncio.sleep(0.1)

        if self._server:
            await self._server.wait_closed()
