import struct

from parlor.core.errors import MalformedFrame


_LENGTH = struct.Struct("!I")


class PayloadWriter:
    """
    Builds a frame payload field by field.

    Strings are written as a 4-byte big-endian length followed by their
    UTF-8 bytes. Scalar flags are single bytes and, by protocol
    convention, come after every string of the payload.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def string(self, value: str) -> "PayloadWriter":
        data = value.encode("utf-8")
        self._buffer += _LENGTH.pack(len(data))
        self._buffer += data
        return self

    def boolean(self, value: bool) -> "PayloadWriter":
        self._buffer.append(1 if value else 0)
        return self

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class PayloadReader:
    """
    Consumes the fields of a frame payload in documented order.

    Every read checks the remaining bytes first and raises MalformedFrame
    rather than reading past the end. `finish()` must be called once all
    expected fields have been read: leftover bytes are also malformed.
    """

    def __init__(self, payload: bytes) -> None:
        self._view = memoryview(payload)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._view) - self._offset

    def string(self) -> str:
        if self.remaining < _LENGTH.size:
            raise MalformedFrame(
                f"Expected a string length at offset {self._offset}, "
                f"only {self.remaining} byte(s) left"
            )

        (length,) = _LENGTH.unpack_from(self._view, self._offset)
        self._offset += _LENGTH.size

        if length > self.remaining:
            raise MalformedFrame(
                f"String length {length} exceeds the {self.remaining} "
                f"remaining payload byte(s)"
            )

        raw = self._view[self._offset:self._offset + length]
        self._offset += length

        try:
            return str(raw, "utf-8")
        except UnicodeDecodeError as ex:
            raise MalformedFrame(f"String is not valid UTF-8: {ex}") from ex

    def boolean(self) -> bool:
        if self.remaining < 1:
            raise MalformedFrame("Expected a boolean flag, payload exhausted")

        value = self._view[self._offset]
        self._offset += 1

        if value not in (0, 1):
            raise MalformedFrame(f"Invalid boolean flag 0x{value:02x}")
        return value == 1

    def finish(self) -> None:
        if self.remaining:
            raise MalformedFrame(f"{self.remaining} unexpected trailing byte(s)")


def pack_strings(*values: str) -> bytes:
    writer = PayloadWriter()
    for value in values:
        writer.string(value)
    return writer.getvalue()


def unpack_strings(payload: bytes, count: int) -> tuple[str, ...]:
    """Decode exactly `count` length-prefixed strings, nothing more."""
    reader = PayloadReader(payload)
    values = tuple(reader.string() for _ in range(count))
    reader.finish()
    return values
