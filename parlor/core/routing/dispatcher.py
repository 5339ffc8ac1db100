import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable

from parlor.core.codec.payload import pack_strings
from parlor.core.errors import MalformedFrame, RequestRejected, StoreError
from parlor.core.models.context import HandlerContext
from parlor.core.models.frame import Frame, Opcode
from parlor.core.models.session import Session


Handler = Callable[[Frame, Session, HandlerContext], AsyncIterator[Frame]]


@dataclass(frozen=True)
class Route:
    handler: Handler
    failure: Opcode | None = None


class Dispatcher:
    """
    Routes each frame of an active session to the handler registered for
    its opcode and streams back the response frames.

    Handlers are async generators registered with `request()`. They may
    yield any number of frames, produced lazily as the connection sends
    them. Three kinds of frames never reach a handler:

    - opcodes outside the protocol table answer UNKNOWN_OPCODE; the second
      one also answers END_SESSION_SUCCESS and ends the session;
    - server-originated opcodes sent by a client are dropped silently
      and leave the session untouched;
    - requests with no registered handler are treated as unknown.

    A handler raising MalformedFrame ends the connection, so the error is
    propagated untouched. Any other exception is reported to the client
    as the route's failure opcode carrying the error text, emitted after
    whatever frames the handler had already yielded.
    """

    def __init__(self) -> None:
        self._routes: dict[Opcode, Route] = {}
        self._logger = logging.getLogger("core.routing.dispatcher")

    def request(self, opcode: Opcode, failure: Opcode | None = None) -> Callable[[Handler], Handler]:
        if not (opcode.is_request or opcode is Opcode.HEARTBEAT):
            raise ValueError(f"{opcode.name} is not a client request")

        def decorator(func: Handler) -> Handler:
            if opcode in self._routes:
                raise RuntimeError(f"Handler already registered for {opcode.name}")
            self._routes[opcode] = Route(handler=func, failure=failure)
            return func

        return decorator

    def resolve(self, opcode: Opcode) -> Route | None:
        return self._routes.get(opcode)

    def routes(self) -> dict[Opcode, Route]:
        return dict(self._routes)

    async def dispatch(
        self,
        frame: Frame,
        session: Session,
        context: HandlerContext,
    ) -> AsyncIterator[Frame]:
        if not session.active:
            self._logger.debug(f"Dropping {frame!r}, session is {session.phase.value}")
            return

        opcode = frame.known_opcode
        if opcode is not None and opcode.is_server_originated:
            self._logger.debug(f"Ignoring server-originated {opcode.name} sent by client")
            return

        route = self._routes.get(opcode) if opcode is not None else None
        if route is None:
            async for response in self._unknown(frame, session):
                yield response
            return

        try:
            async with aclosing(route.handler(frame, session, context)) as responses:
                async for response in responses:
                    yield response
        except MalformedFrame:
            raise
        except (StoreError, RequestRejected) as ex:
            self._logger.info(f"{opcode.name} rejected: {ex}")
            if route.failure is None:
                raise
            yield Frame.build(route.failure, pack_strings(str(ex)))
        except Exception as ex:
            self._logger.error(f"Error in handler for {opcode.name}: {ex}", exc_info=ex)
            if route.failure is None:
                raise
            yield Frame.build(route.failure, pack_strings(str(ex) or type(ex).__name__))

    async def _unknown(self, frame: Frame, session: Session) -> AsyncIterator[Frame]:
        self._logger.info(
            f"Unknown opcode 0x{frame.opcode:02x} "
            f"({session.unknown_opcode_count + 1} so far)"
        )
        yield Frame.build(Opcode.UNKNOWN_OPCODE)

        if session.record_unknown_opcode():
            self._logger.info("Too many unknown opcodes, ending session")
            yield Frame.build(Opcode.END_SESSION_SUCCESS)
