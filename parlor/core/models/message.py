from dataclasses import dataclass, asdict, replace
from typing import Any


@dataclass(frozen=True)
class Message:
    """
    A chat message stored in the receiver's mailbox.

    Messages are created unread by SEND_MESSAGE_REQUEST handling and flip
    to read once delivered by a pull. Nothing else ever changes them.
    """
    sender: str
    receiver: str
    body: str
    read: bool = False

    def mark_read(self) -> "Message":
        return replace(self, read=True)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dictionary representation of the message."""
        return asdict(self)
