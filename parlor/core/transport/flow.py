import asyncio


class FlowControl:
    """
    Write-side backpressure for one connection.

    The ChatProtocol relays asyncio's pause_writing/resume_writing calls
    here, and the Streamer awaits `drain()` before each write while the
    transport buffer is above its high-water mark. Once the connection is
    lost `drain()` returns immediately so that no sender waits forever on
    a dead peer.
    """

    def __init__(self) -> None:
        self._writable = asyncio.Event()
        self._writable.set()
        self.write_paused = False
        self.closed = False

    async def drain(self) -> None:
        """Wait until writing is allowed again."""
        await self._writable.wait()

    def pause_writing(self) -> None:
        if self.closed:
            return
        self.write_paused = True
        self._writable.clear()

    def resume_writing(self) -> None:
        if self.write_paused:
            self.write_paused = False
            self._writable.set()

    def close(self) -> None:
        """Release every pending drain; later pauses are ignored."""
        self.closed = True
        self.resume_writing()
