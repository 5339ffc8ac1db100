import itertools
import logging
from contextlib import aclosing
from typing import Iterable

from parlor.core.errors import MalformedFrame
from parlor.core.models.context import HandlerContext
from parlor.core.models.frame import ReceiveFrame, SendFrame, VERSION
from parlor.core.models.session import Session
from parlor.core.routing.dispatcher import Dispatcher


class ChatApplication:
    """
    Per-connection application driving the session state machine.

    For every connection the Streamer calls the application once with
    `receive` and `send`. The application owns a fresh Session and:

    - checks the version byte of the first frame; an incompatible version
      ends the session without a single byte sent back;
    - dispatches every frame of the active session and sends all of its
      response frames before receiving the next one;
    - stops when the session ends (END_SESSION_REQUEST, repeated unknown
      opcodes), when a request payload is malformed, or when the peer
      disconnects.

    Returning closes the transport. Whatever the exit path, the connection
    is removed from the presence registry.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        context: HandlerContext,
        compatible_versions: Iterable[int] = (VERSION,),
    ) -> None:
        self._dispatcher = dispatcher
        self._context = context
        self._compatible_versions = frozenset(compatible_versions)
        self._ids = itertools.count(1)
        self._logger = logging.getLogger("core.routing.app")

    @property
    def context(self) -> HandlerContext:
        return self._context

    async def __call__(self, receive: ReceiveFrame, send: SendFrame) -> None:
        connection_id = next(self._ids)
        context = self._context.bind(connection_id, send)
        session = Session(self._compatible_versions)

        try:
            await self._serve(session, context, receive, send)
        finally:
            context.presence.unregister(connection_id)
            self._logger.debug(f"Connection {connection_id} finished with {session!r}")

    async def _serve(
        self,
        session: Session,
        context: HandlerContext,
        receive: ReceiveFrame,
        send: SendFrame,
    ) -> None:
        while not session.terminated:
            frame = await receive()
            if frame is None:
                self._logger.debug(f"Connection {context.connection_id} closed by peer")
                return

            if not session.version_negotiated and not session.negotiate(frame.version):
                return

            try:
                async with aclosing(self._dispatcher.dispatch(frame, session, context)) as responses:
                    async for response in responses:
                        await send(response)
            except MalformedFrame as ex:
                self._logger.warning(f"Malformed {frame!r}: {ex}")
                session.end()
                return
