import asyncio
import logging

from parlor.core.codec.frame import FrameDecoder
from parlor.core.errors import MalformedFrame
from parlor.core.models.config import ServerConfig
from parlor.core.models.frame import Frame
from parlor.core.models.state import ServerState
from parlor.core.transport.addr import get_remote_addr
from parlor.core.transport.flow import FlowControl
from parlor.core.transport.stream import Streamer


class ChatProtocol(asyncio.Protocol):
    """
    Implements framing and connection lifecycle for a single TCP client.

    Raw bytes received from the transport are fed to a FrameDecoder.
    Every complete frame is pushed into the queue of the Streamer that
    runs the application for this connection; a frame split over several
    reads is simply held back until its last byte arrives.

    The connection is closed immediately, without any response, when:
    - more than `max_buffer_size` bytes are waiting to form frames,
    - a header declares a payload above `max_payload_size`,
    - the server already serves `limit_concurrency` connections,
    - nothing was received for `idle_timeout` seconds (when configured).

    On connection loss the protocol leaves the server state, releases
    pending writers and signals the Streamer by queueing None.

    ChatProtocol does not interpret opcodes or run application logic;
    that is the Application's job.
    """
    def __init__(
        self,
        config: ServerConfig,
        server_state: ServerState,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._transport: asyncio.Transport = None   # type: ignore[assignment]
        self._flow: FlowControl = None  # type: ignore[assignment]
        self._streamer: Streamer | None = None

        self._config = config
        self._app = config.app
        self._loop = loop or asyncio.get_event_loop()
        self._connections = server_state.connections
        self._tasks = server_state.tasks
        self._decoder = FrameDecoder(max_payload_size=config.max_payload_size)
        self._idle_handle: asyncio.TimerHandle | None = None
        self._client: tuple[str, int] | None = None
        self._logger = logging.getLogger("core.transport.protocol")

    @property
    def who(self) -> str:
        return "%s:%d" % self._client if self._client else "unknown peer"

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport  # type: ignore[assignment]
        self._flow = FlowControl()
        self._client = get_remote_addr(transport)

        if len(self._connections) >= self._config.limit_concurrency:
            self._logger.warning(
                f"{self.who} - Concurrency limit of "
                f"{self._config.limit_concurrency} reached, closing connection"
            )
            self._transport.close()
            return

        self._connections.add(self)
        self._streamer = Streamer(
            transport=self._transport,
            flow=self._flow,
            queue=asyncio.Queue(),
        )
        task = self._loop.create_task(self._streamer.run_app(self._app))
        task.add_done_callback(self._tasks.discard)
        self._tasks.add(task)
        self._arm_idle_timer()

        self._logger.debug(f"{self.who} - Connection made")

    def connection_lost(self, exc: Exception | None) -> None:
        self._connections.discard(self)
        self._cancel_idle_timer()
        self._logger.debug(f"{self.who} - Connection lost")

        if self._flow is not None:
            self._flow.close()
        if exc is None and self._transport is not None:
            self._transport.close()

        if self._streamer is not None:
            self._streamer.queue.put_nowait(None)

    def eof_received(self) -> bool | None:
        return None

    def data_received(self, data: bytes) -> None:
        if self._streamer is None or self._transport.is_closing():
            return

        self._arm_idle_timer()
        self._decoder.feed(data)

        if self._decoder.buffered > self._config.max_buffer_size:
            self._logger.warning(f"{self.who} - Buffer overflow, closing connection")
            self._transport.close()
            return

        try:
            for frame in self._decoder:
                self._enqueue(frame)
        except MalformedFrame as ex:
            self._logger.warning(f"{self.who} - Malformed frame, closing connection: {ex}")
            self._transport.close()

    def pause_writing(self) -> None:
        self._flow.pause_writing()

    def resume_writing(self) -> None:
        self._flow.resume_writing()

    def shutdown(self) -> None:
        self._transport.close()

    def _enqueue(self, frame: Frame) -> None:
        try:
            self._streamer.queue.put_nowait(frame)  # type: ignore[union-attr]
        except Exception as exc:
            self._logger.error(f"Queue error: {exc}")

    def _arm_idle_timer(self) -> None:
        timeout = self._config.idle_timeout
        if timeout is None:
            return

        self._cancel_idle_timer()
        self._idle_handle = self._loop.call_later(timeout, self._on_idle)

    def _cancel_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        self._logger.info(
            f"{self.who} - Idle for {self._config.idle_timeout}s, closing connection"
        )
        self._transport.close()
