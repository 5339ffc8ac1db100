from dataclasses import dataclass
from enum import IntEnum
from typing import Awaitable, Callable


HEADER_SIZE = 6
"""
version (1 byte) + opcode (1 byte) + payload length (4 bytes, big-endian).
"""

VERSION = 0x01
"""
Protocol version spoken by this implementation.
"""

MAX_PAYLOAD_LENGTH = 2 ** 31 - 1
"""
Upper bound of the payload length field, kept within a signed 32-bit int.
"""


class Opcode(IntEnum):
    """
    Operation codes of the chat protocol.

    Requests are sent by clients only, `*_SUCCESS` / `*_FAILURE`,
    notifications, END_SESSION_SUCCESS and UNKNOWN_OPCODE are sent by
    servers only. HEARTBEAT travels both ways.
    """
    CREATE_ACCOUNT_REQUEST = 0x10
    CREATE_ACCOUNT_SUCCESS = 0x11
    CREATE_ACCOUNT_FAILURE = 0x12
    LOGIN_REQUEST = 0x13
    LOGIN_SUCCESS = 0x14
    LOGIN_FAILURE = 0x15

    DELETE_ACCOUNT_REQUEST = 0x20
    DELETE_ACCOUNT_SUCCESS = 0x21
    DELETE_ACCOUNT_FAILURE = 0x22

    LIST_ALL_ACCOUNTS_REQUEST = 0x30
    LIST_ALL_ACCOUNTS_SUCCESS = 0x31
    LIST_ALL_ACCOUNTS_FAILURE = 0x32

    SEND_MESSAGE_REQUEST = 0x40
    SEND_MESSAGE_SUCCESS = 0x41
    SEND_MESSAGE_FAILURE = 0x42

    PULL_ALL_MESSAGES_REQUEST = 0x50
    PULL_ALL_MESSAGES_SUCCESS = 0x51
    PULL_ALL_MESSAGES_FAILURE = 0x52
    PUSH_MESSAGE_NOTIFICATION = 0x53

    END_SESSION_REQUEST = 0x60
    END_SESSION_SUCCESS = 0x61
    HEARTBEAT = 0x62

    UNKNOWN_OPCODE = 0x70

    @classmethod
    def lookup(cls, value: int) -> "Opcode | None":
        """Return the Opcode for a raw byte, or None if it is not in the table."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_request(self) -> bool:
        return self in CLIENT_REQUESTS

    @property
    def is_server_originated(self) -> bool:
        return self not in CLIENT_REQUESTS and self is not Opcode.HEARTBEAT

    @property
    def success(self) -> "Opcode | None":
        """SUCCESS opcode answering this request."""
        return REPLIES.get(self, (None, None))[0]

    @property
    def failure(self) -> "Opcode | None":
        """FAILURE opcode answering this request, None if it cannot fail."""
        return REPLIES.get(self, (None, None))[1]


CLIENT_REQUESTS = frozenset({
    Opcode.CREATE_ACCOUNT_REQUEST,
    Opcode.LOGIN_REQUEST,
    Opcode.DELETE_ACCOUNT_REQUEST,
    Opcode.LIST_ALL_ACCOUNTS_REQUEST,
    Opcode.SEND_MESSAGE_REQUEST,
    Opcode.PULL_ALL_MESSAGES_REQUEST,
    Opcode.END_SESSION_REQUEST,
})


REPLIES: dict[Opcode, tuple[Opcode, Opcode | None]] = {
    Opcode.CREATE_ACCOUNT_REQUEST: (Opcode.CREATE_ACCOUNT_SUCCESS, Opcode.CREATE_ACCOUNT_FAILURE),
    Opcode.LOGIN_REQUEST: (Opcode.LOGIN_SUCCESS, Opcode.LOGIN_FAILURE),
    Opcode.DELETE_ACCOUNT_REQUEST: (Opcode.DELETE_ACCOUNT_SUCCESS, Opcode.DELETE_ACCOUNT_FAILURE),
    Opcode.LIST_ALL_ACCOUNTS_REQUEST: (Opcode.LIST_ALL_ACCOUNTS_SUCCESS, Opcode.LIST_ALL_ACCOUNTS_FAILURE),
    Opcode.SEND_MESSAGE_REQUEST: (Opcode.SEND_MESSAGE_SUCCESS, Opcode.SEND_MESSAGE_FAILURE),
    Opcode.PULL_ALL_MESSAGES_REQUEST: (Opcode.PULL_ALL_MESSAGES_SUCCESS, Opcode.PULL_ALL_MESSAGES_FAILURE),
    Opcode.END_SESSION_REQUEST: (Opcode.END_SESSION_SUCCESS, None),
}


@dataclass(frozen=True)
class Frame:
    """
    One protocol message as it travels on the wire.

    `opcode` holds the raw byte rather than an Opcode member so that frames
    carrying values outside the table can still be decoded and reported
    as unknown by the dispatcher.
    """
    version: int
    opcode: int
    payload: bytes = b""

    @classmethod
    def build(cls, opcode: Opcode, payload: bytes = b"", version: int = VERSION) -> "Frame":
        return cls(version=version, opcode=int(opcode), payload=payload)

    @property
    def known_opcode(self) -> Opcode | None:
        return Opcode.lookup(self.opcode)

    def __repr__(self) -> str:
        op = self.known_opcode
        name = op.name if op is not None else f"0x{self.opcode:02x}"
        return f"Frame(version={self.version}, opcode={name}, payload={len(self.payload)}B)"


ReceiveFrame = Callable[[], Awaitable[Frame | None]]
"""
Coroutine provided to the application for receiving the next frame.
It suspends until a frame is available and returns None once the peer
has disconnected.
"""


SendFrame = Callable[[Frame], Awaitable[None]]
"""
Coroutine provided to the application for sending a frame to the client.
"""
