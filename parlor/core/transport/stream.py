import asyncio
import logging

from parlor.core.codec.frame import encode_frame
from parlor.core.models.frame import Frame
from parlor.core.transport.application import Application
from parlor.core.transport.flow import FlowControl


class Streamer:
    """
    Moves frames between one connection and its Application.

    Decoded frames are pushed into `queue` by the ChatProtocol and handed
    to the Application through `receive()`; None in the queue means the
    connection is gone. `send()` encodes a frame and writes it in a single
    transport write, waiting on FlowControl first while the transport is
    paused.

    `run_app()` runs the Application for the lifetime of the connection
    and closes the transport when it returns or raises.
    """
    def __init__(
        self,
        transport: asyncio.Transport,
        flow: FlowControl,
        queue: asyncio.Queue[Frame | None],
    ) -> None:
        self.queue = queue
        self._transport = transport
        self._flow = flow
        self._logger = logging.getLogger("core.transport.stream")

    async def send(self, frame: Frame) -> None:
        if self._flow.write_paused:
            await self._flow.drain()

        if self._transport.is_closing():
            self._logger.debug(f"Dropping {frame!r}, transport is closing")
            return

        try:
            data = encode_frame(frame)
            self._transport.write(data)
            self._logger.debug(f"Sent {frame!r}")
        except Exception as exc:
            self._logger.error(f"Failed to send frame: {exc}")
            self._transport.close()

    async def receive(self) -> Frame | None:
        return await self.queue.get()

    async def run_app(self, app: Application) -> None:
        try:
            await app(self.receive, self.send)
        except Exception as exc:
            self._logger.error("Exception in Application", exc_info=exc)
        finally:
            self._transport.close()
