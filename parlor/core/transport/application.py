from typing import Protocol

from parlor.core.models.frame import ReceiveFrame, SendFrame


class Application(Protocol):
    """
    Per-connection handler executed by the Streamer.

    An Application is an asynchronous callable receiving two functions:
    `receive`, which waits for the next decoded Frame (None once the peer
    is gone), and `send`, which encodes and writes a Frame to the peer.

    The connection stays open while the Application runs. When it returns
    or raises, the Streamer closes the transport.

    The Application never sees raw bytes: framing and the payload length
    guard belong to the ChatProtocol.
    """
    async def __call__(self, receive: ReceiveFrame, send: SendFrame) -> None:
        ...
