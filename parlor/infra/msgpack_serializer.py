from typing import Any

import msgpack

from parlor.core.models.message import Message
from parlor.core.ports.serializer import Serializer


class MsgPackSerializer(Serializer):
    """
    MsgPack-based implementation of the Serializer interface, used for the
    records the LMDB stores keep on disk.

    - compact, deterministic binary encoding
    - strings round-trip as str, bytes as bytes
    """
    def serialize(self, record: Any) -> bytes:
        return msgpack.packb(record, use_bin_type=True)

    def deserialize(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False)

    def dump_message(self, message: Message) -> bytes:
        return self.serialize([message.sender, message.receiver, message.body])

    def load_message(self, data: bytes, read: bool = False) -> Message:
        sender, receiver, body = self.deserialize(data)
        return Message(sender=sender, receiver=receiver, body=body, read=read)
