from typing import Protocol, Any


class Serializer(Protocol):
    """
    Defines the interface used by durable stores to encode records
    (messages, mailbox metadata) before writing them to disk.

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - able to round-trip plain dicts, lists, str, int and bool values
    """

    def serialize(self, record: Any) -> bytes:
        """Encode a Python object into bytes suitable for storage."""

    def deserialize(self, data: bytes) -> Any:
        """Decode bytes read from storage into a Python object."""
