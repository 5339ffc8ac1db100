import socket
import ssl

from parlor.core.codec.frame import NEED_MORE_BYTES, FrameDecoder, encode_frame
from parlor.core.codec.payload import PayloadReader, pack_strings, unpack_strings
from parlor.core.models.frame import CLIENT_REQUESTS, Frame, Opcode
from parlor.core.models.message import Message


class RequestFailed(Exception):
    """The server answered a request with a failure frame."""
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ChatClient:
    """
    Synchronous TCP client for Parlor.

    Every request is a single frame:

        [version:1][opcode:1][length:4 big-endian][payload]

    and is answered by one or more frames of the matching SUCCESS or
    FAILURE opcode. Push notifications that arrive in between are kept in
    `notifications`; frames carrying client-side opcodes are ignored.

    This client is minimal and blocking. It is intended for CLI usage,
    debugging, and simple scripts.
    """
    def __init__(self, host: str, port: int, ssl_ctx: ssl.SSLContext | None = None) -> None:
        self._host = host
        self._port = port
        self._ssl_ctx = ssl_ctx
        self._sock: socket.socket | None = None
        self._decoder = FrameDecoder()
        self.account: str | None = None
        self.notifications: list[Frame] = []

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        if self._sock is not None:
            return

        raw_sock = socket.create_connection((self._host, self._port))
        if self._ssl_ctx is None:
            self._sock = raw_sock
        else:
            self._sock = self._ssl_ctx.wrap_socket(raw_sock, server_hostname=self._host)

    def close(self) -> None:
        if self._sock:
            try:
                self._sock.close()
            finally:
                self._sock = None
                self._decoder = FrameDecoder()
                self.account = None

    def __enter__(self) -> "ChatClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, frame: Frame) -> None:
        if not self._sock:
            self.connect()

        self._sock.sendall(encode_frame(frame))  # type: ignore[union-attr]

    def recv(self) -> Frame:
        """Blocking read of the next complete frame."""
        if not self._sock:
            self.connect()

        while True:
            frame = self._decoder.decode()
            if frame is not NEED_MORE_BYTES:
                return frame  # type: ignore[return-value]

            chunk = self._sock.recv(4096)  # type: ignore[union-attr]
            if not chunk:
                raise ConnectionError("Connection closed by peer")
            self._decoder.feed(chunk)

    def reply(self) -> Frame:
        """Next frame answering a request, skipping notifications."""
        while True:
            frame = self.recv()
            if frame.opcode == Opcode.PUSH_MESSAGE_NOTIFICATION:
                self.notifications.append(frame)
                continue
            if frame.opcode == Opcode.HEARTBEAT or frame.opcode in CLIENT_REQUESTS:
                continue
            return frame

    def request(self, opcode: Opcode, payload: bytes = b"") -> Frame:
        self.send(Frame.build(opcode, payload))
        return self._expect(opcode)

    def create_account(self, name: str) -> str:
        frame = self.request(Opcode.CREATE_ACCOUNT_REQUEST, pack_strings(name))
        (created,) = unpack_strings(frame.payload, 1)
        return created

    def login(self, name: str) -> bool:
        """Log in as `name`; returns whether unread messages are waiting."""
        frame = self.request(Opcode.LOGIN_REQUEST, pack_strings(name))
        reader = PayloadReader(frame.payload)
        self.account = reader.string()
        unread = reader.boolean()
        reader.finish()
        return unread

    def delete_account(self, name: str) -> None:
        self.request(Opcode.DELETE_ACCOUNT_REQUEST, pack_strings(name))
        if self.account == name:
            self.account = None

    def list_accounts(self, pattern: str = ".*") -> list[str]:
        opener = self.request(Opcode.LIST_ALL_ACCOUNTS_REQUEST, pack_strings(pattern))
        return [name for (name,) in self._stream(opener, Opcode.LIST_ALL_ACCOUNTS_REQUEST, 1)]

    def send_message(self, receiver: str, body: str, sender: str | None = None) -> None:
        sender = sender or self.account
        if sender is None:
            raise ValueError("Log in first or give an explicit sender")

        self.request(Opcode.SEND_MESSAGE_REQUEST, pack_strings(sender, receiver, body))

    def pull_messages(self) -> list[Message]:
        first = self.request(Opcode.PULL_ALL_MESSAGES_REQUEST)

        return [
            Message(sender=sender, receiver=receiver, body=body, read=True)
            for sender, receiver, body in self._stream(first, Opcode.PULL_ALL_MESSAGES_REQUEST, 3)
        ]

    def heartbeat(self) -> None:
        self.send(Frame.build(Opcode.HEARTBEAT))

    def end_session(self) -> None:
        try:
            self.request(Opcode.END_SESSION_REQUEST)
        finally:
            self.close()

    def _expect(self, request: Opcode) -> Frame:
        frame = self.reply()
        if frame.opcode == request.success:
            return frame
        raise self._failed(frame, request)

    def _stream(self, first: Frame, request: Opcode, count: int) -> list[tuple[str, ...]]:
        """
        Collect a streamed reply. Pulls start with the first item, listings
        with an empty opener; both end on an empty SUCCESS frame.
        """
        items: list[tuple[str, ...]] = []
        frame = first

        if request == Opcode.LIST_ALL_ACCOUNTS_REQUEST:
            frame = self.reply()

        while frame.payload:
            if frame.opcode != request.success:
                raise self._failed(frame, request)
            items.append(tuple(unpack_strings(frame.payload, count)))
            frame = self.reply()

        return items

    @staticmethod
    def _failed(frame: Frame, request: Opcode) -> RequestFailed:
        if request.failure is not None and frame.opcode == request.failure:
            (reason,) = unpack_strings(frame.payload, 1)
            return RequestFailed(reason)

        if frame.opcode == Opcode.UNKNOWN_OPCODE:
            return RequestFailed(f"Server does not know {request.name}")

        return RequestFailed(f"Unexpected {frame!r} in reply to {request.name}")
