import logging
import struct
from typing import Final, Iterator

from parlor.core.errors import MalformedFrame
from parlor.core.models.frame import Frame, HEADER_SIZE, MAX_PAYLOAD_LENGTH


# "!BBI" = version:u8, opcode:u8, payload length:uint32 big-endian (network order)
_HEADER = struct.Struct("!BBI")


class _NeedMoreBytes:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NEED_MORE_BYTES"

    def __bool__(self) -> bool:
        return False


NEED_MORE_BYTES: Final = _NeedMoreBytes()
"""
Returned by FrameDecoder.decode() while the buffer holds less than one
complete frame.
"""


def encode_frame(frame: Frame) -> bytes:
    length = len(frame.payload)
    if length > MAX_PAYLOAD_LENGTH:
        raise MalformedFrame(f"Payload of {length} bytes does not fit the length field")

    return _HEADER.pack(frame.version, frame.opcode, length) + frame.payload


def decode_header(data: bytes | bytearray | memoryview) -> tuple[int, int, int]:
    """Return (version, opcode, payload length) from the first HEADER_SIZE bytes."""
    return _HEADER.unpack_from(data, 0)


class FrameDecoder:
    """
    Incremental decoder turning an arbitrary chunked byte stream into
    Frame values.

    Bytes are appended with `feed()` as they arrive from the transport and
    complete frames are taken out with `decode()` (or by iterating over
    the decoder). The decoder never assumes that a whole frame is present:
    a header split across chunks, or a payload delivered one byte at a
    time, decodes to the same frames as a single contiguous write.

    A header advertising a payload above `max_payload_size` raises
    MalformedFrame as soon as the header is complete, before any payload
    byte is buffered. After a MalformedFrame the stream cannot be
    resynchronised and the decoder must be discarded along with its
    connection.
    """

    def __init__(self, max_payload_size: int = MAX_PAYLOAD_LENGTH) -> None:
        if not 0 <= max_payload_size <= MAX_PAYLOAD_LENGTH:
            raise ValueError(f"max_payload_size must be within [0, {MAX_PAYLOAD_LENGTH}]")

        self._max_payload_size = max_payload_size
        self._buffer = bytearray()
        self._header: tuple[int, int, int] | None = None
        self._logger = logging.getLogger("core.codec")

    @property
    def buffered(self) -> int:
        """Number of received bytes not yet returned as part of a frame."""
        pending = HEADER_SIZE if self._header is not None else 0
        return pending + len(self._buffer)

    def feed(self, data: bytes | bytearray | memoryview) -> None:
        self._buffer.extend(data)

    def decode(self) -> Frame | _NeedMoreBytes:
        if self._header is None:
            if len(self._buffer) < HEADER_SIZE:
                return NEED_MORE_BYTES

            version, opcode, length = decode_header(self._buffer)
            if length > self._max_payload_size:
                raise MalformedFrame(
                    f"Declared payload length {length} exceeds the maximum "
                    f"of {self._max_payload_size} bytes"
                )

            self._header = (version, opcode, length)
            del self._buffer[:HEADER_SIZE]

        version, opcode, length = self._header
        if len(self._buffer) < length:
            return NEED_MORE_BYTES

        payload = bytes(self._buffer[:length])
        del self._buffer[:length]
        self._header = None

        frame = Frame(version=version, opcode=opcode, payload=payload)
        self._logger.debug(f"Decoded {frame!r}")
        return frame

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.decode()
            if frame is NEED_MORE_BYTES:
                return
            yield frame


def decode_frame(data: bytes, max_payload_size: int = MAX_PAYLOAD_LENGTH) -> Frame | _NeedMoreBytes:
    """
    One-shot decode of the first frame in `data`. Any byte following that
    frame is ignored; use FrameDecoder for streams.
    """
    decoder = FrameDecoder(max_payload_size)
    decoder.feed(data)
    return decoder.decode()
